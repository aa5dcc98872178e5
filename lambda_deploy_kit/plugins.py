"""
plugins
-------

패키지 안의 API 정의 모듈을 로드한다.

모듈 계약:
    api_config() -> {"routes": {...}, ...}          (필수)
    post_deploy(options, summary, capabilities)      (선택)

경로는 패키징된 작업 디렉토리 기준으로 해석한다.
"""

from __future__ import annotations

import contextlib
import importlib.util
import sys
from concurrent.futures import Future
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

import boto3

from .exceptions import MalformedPluginError, PluginNotFoundError
from .logging_utils import get_logger
from .packaging import resolve_module_file


logger = get_logger(__name__)


@dataclass(frozen=True)
class DeploymentSummary:
    name: str
    alias: str
    api_id: str
    api_url: str
    region: str


@dataclass(frozen=True)
class HookCapabilities:
    apigateway: Any
    boto3: ModuleType = boto3
    Future: type = Future


@dataclass
class ApiModule:
    path: str
    module: ModuleType
    definition: Dict[str, Any] = field(default_factory=dict)

    @property
    def post_deploy(self) -> Optional[Callable[..., Any]]:
        hook = getattr(self.module, "post_deploy", None)
        return hook if callable(hook) else None


@contextlib.contextmanager
def _package_on_path(package_dir: str) -> Iterator[None]:
    # API 모듈이 패키지 안의 다른 모듈/의존성을 import 할 수 있도록 한다.
    sys.path.insert(0, package_dir)
    try:
        yield
    finally:
        with contextlib.suppress(ValueError):
            sys.path.remove(package_dir)


def load_api_module(package_dir: str, module_path: str) -> ApiModule:
    resolved = resolve_module_file(package_dir, module_path)
    if resolved is None:
        raise PluginNotFoundError(f"{package_dir}/{module_path}")

    module_name = f"_lambda_deploy_api_{abs(hash(resolved))}"
    spec = importlib.util.spec_from_file_location(module_name, resolved)
    if spec is None or spec.loader is None:
        raise MalformedPluginError(resolved, "모듈 spec 을 만들 수 없습니다")

    module = importlib.util.module_from_spec(spec)
    # pickle, dataclasses 등은 sys.modules 에서 자기 모듈을 찾는다.
    sys.modules[module_name] = module
    try:
        definition = _read_definition(package_dir, resolved, spec, module)
    except MalformedPluginError:
        sys.modules.pop(module_name, None)
        raise

    return ApiModule(path=resolved, module=module, definition=dict(definition))


def _read_definition(package_dir: str, resolved: str, spec: Any, module: ModuleType) -> Mapping[str, Any]:
    with _package_on_path(package_dir):
        try:
            spec.loader.exec_module(module)
        except Exception as e:  # noqa: BLE001
            logger.exception("API 모듈 import 실패: %s", resolved)
            raise MalformedPluginError(resolved, f"import 실패: {e}") from e

        producer = getattr(module, "api_config", None)
        if not callable(producer):
            raise MalformedPluginError(resolved, "api_config() 가 정의되어 있지 않습니다")

        try:
            definition = producer()
        except Exception as e:  # noqa: BLE001
            logger.exception("api_config() 실행 실패: %s", resolved)
            raise MalformedPluginError(resolved, f"api_config() 실패: {e}") from e

    if not isinstance(definition, Mapping) or not isinstance(definition.get("routes"), Mapping):
        raise MalformedPluginError(resolved, "api_config() 는 routes 를 포함한 dict 를 반환해야 합니다")
    return definition

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dotenv import load_dotenv

from .exceptions import ConfigError


ENV_FILES_DEFAULT_ORDER = [".env", ".env.deploy"]

CONFIG_FILE_DEFAULT = "lambda-deploy.json"

# update 명령에 필요한 최소 설정 키
REQUIRED_KEYS: Dict[str, Sequence[str]] = {"lambda": ("name", "region")}


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    (AWS_PROFILE, AWS_DEFAULT_REGION, API_RETRY_* 등을 프로젝트별로 지정하는 용도)
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


@dataclass(frozen=True)
class UpdateOptions:
    """
    update 명령 1회 실행에 대한 옵션.
    파이프라인이 시작된 뒤에는 변경하지 않는다.
    """

    source: Optional[str] = None
    version: Optional[str] = None
    config: Optional[str] = None
    no_optional_dependencies: bool = False
    use_local_dependencies: bool = False
    cache_api_config: Optional[str] = None
    keep: bool = False
    use_s3_bucket: Optional[str] = None

    def config_path(self) -> str:
        if self.config:
            return self.config
        return os.path.join(self.source or os.getcwd(), CONFIG_FILE_DEFAULT)


@dataclass(frozen=True)
class FunctionIdentity:
    name: str
    region: str


@dataclass(frozen=True)
class ApiIdentity:
    id: str
    module: Optional[str] = None


@dataclass(frozen=True)
class ProjectConfig:
    function: FunctionIdentity
    api: Optional[ApiIdentity] = None


def _read_json(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        raise ConfigError(f"설정 파일이 없습니다: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"설정 파일을 JSON 으로 읽을 수 없습니다: {path} ({e})") from e
    if not isinstance(data, dict):
        raise ConfigError(f"설정 파일의 최상위 값은 객체여야 합니다: {path}")
    return data


def load_config(options: UpdateOptions,
                required: Mapping[str, Sequence[str]] = REQUIRED_KEYS) -> ProjectConfig:
    """
    JSON 설정 파일을 읽어 ProjectConfig 로 변환한다.

    필수 키가 하나라도 없으면 ConfigError 를 던진다.
    """
    path = options.config_path()
    data = _read_json(path)

    missing: List[str] = []
    for section, keys in required.items():
        values = data.get(section)
        if not isinstance(values, dict):
            missing.extend(f"{section}.{k}" for k in keys)
            continue
        missing.extend(f"{section}.{k}" for k in keys if not values.get(k))

    if missing:
        raise ConfigError(
            f"{path} 에 필수 설정이 누락되었습니다: " + ", ".join(missing)
        )

    lambda_cfg = data["lambda"]
    function = FunctionIdentity(name=lambda_cfg["name"], region=lambda_cfg["region"])

    api = None
    api_cfg = data.get("api")
    if isinstance(api_cfg, dict) and api_cfg.get("id"):
        api = ApiIdentity(id=api_cfg["id"], module=api_cfg.get("module"))

    return ProjectConfig(function=function, api=api)

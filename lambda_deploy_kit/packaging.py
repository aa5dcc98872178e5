"""
packaging
---------

로컬 프로젝트를 Lambda 업로드용 디렉토리/zip 으로 만드는 단계들.

collect_files → validate_package → (clean_optional_dependencies) → zip_directory
순서로 호출되며, 각 단계는 이전 단계의 결과를 입력으로 받는다.
"""

from __future__ import annotations

import ast
import contextlib
import csv
import logging
import os
import re
import shutil
import sys
import tempfile
import zipfile
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import CONFIG_FILE_DEFAULT
from .exceptions import PackageValidationError, PreconditionError
from .logging_utils import DeployLogger, NullLogger, get_logger
from . import subprocess_utils


logger = get_logger(__name__)


REQUIREMENTS_FILE = "requirements.txt"
OPTIONAL_REQUIREMENTS_FILE = "requirements-optional.txt"

IGNORED_PATTERNS = (
    ".git",
    "__pycache__",
    "*.pyc",
    ".venv",
    ".env",
    ".env.*",
    CONFIG_FILE_DEFAULT,
)


@dataclass
class PackageArtifact:
    directory: str
    archive_path: Optional[str] = None

    def remove(self) -> None:
        """작업 디렉토리와 zip 파일(및 이를 담은 임시 디렉토리)을 삭제한다."""
        if self.archive_path and os.path.exists(self.archive_path):
            os.remove(self.archive_path)
            with contextlib.suppress(OSError):
                os.rmdir(os.path.dirname(self.archive_path))
        if os.path.isdir(self.directory):
            shutil.rmtree(self.directory)
            with contextlib.suppress(OSError):
                os.rmdir(os.path.dirname(self.directory))


def _pip_install(requirements: str, target: str) -> None:
    # -v 로 실행하면 pip 출력을 그대로 흘려서 설치 진행 상황을 볼 수 있게 한다.
    verbose = logger.isEnabledFor(logging.DEBUG)
    cmd = [
        sys.executable,
        "-m",
        "pip",
        "install",
        "--requirement",
        requirements,
        "--target",
        target,
        "--disable-pip-version-check",
        "--no-input",
    ]
    if not verbose:
        cmd.append("--quiet")
    subprocess_utils.run_command(cmd, stream_output=verbose)


def collect_files(source_dir: str,
                  use_local_dependencies: bool = False,
                  deploy_logger: Optional[DeployLogger] = None) -> str:
    """
    source_dir 를 새 임시 디렉토리로 복사하고 의존성을 설치한 뒤,
    그 작업 디렉토리 경로를 반환한다.

    use_local_dependencies=True 이면 pip 설치를 건너뛰고
    소스에 포함된(vendored) 패키지를 그대로 사용한다.
    """
    deploy_logger = deploy_logger or NullLogger()
    if not os.path.isdir(source_dir) or not os.access(source_dir, os.R_OK | os.X_OK):
        raise PreconditionError(f"소스 디렉토리를 읽을 수 없습니다: {source_dir}")

    deploy_logger.log_stage("packaging files")
    temp_root = tempfile.mkdtemp(prefix="lambda-deploy-")
    work_dir = os.path.join(temp_root, "package")
    try:
        try:
            shutil.copytree(source_dir, work_dir, ignore=shutil.ignore_patterns(*IGNORED_PATTERNS))
        except OSError as e:
            raise PreconditionError(f"소스 디렉토리를 복사할 수 없습니다: {source_dir} ({e})") from e
        logger.debug("작업 디렉토리: %s", work_dir)

        if use_local_dependencies:
            logger.info("--use-local-dependencies: 의존성 설치를 건너뜁니다.")
            return work_dir

        for name in (REQUIREMENTS_FILE, OPTIONAL_REQUIREMENTS_FILE):
            path = os.path.join(work_dir, name)
            if os.path.exists(path):
                deploy_logger.log_stage(f"installing dependencies from {name}")
                _pip_install(path, work_dir)
    except Exception:
        # 호출자는 아직 작업 디렉토리를 모르므로 여기서 지운다.
        shutil.rmtree(temp_root, ignore_errors=True)
        raise

    return work_dir


def resolve_module_file(base_dir: str, module_path: str) -> Optional[str]:
    """
    'api.py', 'api', 'web/api' 같은 프로젝트 상대 모듈 경로를
    실제 파일 경로로 바꾼다. 없으면 None.
    """
    rel = module_path.replace("\\", "/").strip("/")
    candidates = [rel] if rel.endswith(".py") else [rel + ".py", rel + "/__init__.py"]
    for candidate in candidates:
        full = os.path.abspath(os.path.join(base_dir, candidate))
        if os.path.isfile(full):
            return full
    return None


def _defines_name(source_file: str, name: str) -> bool:
    with open(source_file, "rb") as f:
        tree = ast.parse(f.read(), filename=source_file)
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)) and node.name == name:
            return True
        if isinstance(node, ast.Assign):
            if any(isinstance(t, ast.Name) and t.id == name for t in node.targets):
                return True
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                if (alias.asname or alias.name.split(".")[0]) == name:
                    return True
    return False


def validate_package(work_dir: str, handler: str, api_module: Optional[str] = None) -> str:
    """
    작업 디렉토리에 Lambda handler 와 (있다면) API 모듈이 존재하는지 확인한다.

    handler 는 Lambda 형식의 'path.to.module.function' 문자열이다.
    사용자 코드를 실행하지 않도록 ast 로만 검사한다.
    """
    if not handler or "." not in handler:
        raise PackageValidationError(f"Lambda handler 형식이 올바르지 않습니다: {handler!r}")

    module_name, function_name = handler.rsplit(".", 1)
    module_rel = module_name.replace(".", "/")
    handler_file = resolve_module_file(work_dir, module_rel)
    if handler_file is None:
        raise PackageValidationError(
            f"Lambda handler 모듈을 패키지에서 찾을 수 없습니다: {module_rel}.py (handler={handler})"
        )

    try:
        defined = _defines_name(handler_file, function_name)
    except SyntaxError as e:
        raise PackageValidationError(f"handler 모듈을 파싱할 수 없습니다: {handler_file} ({e})") from e
    if not defined:
        raise PackageValidationError(
            f"{module_rel}.py 에 {function_name} 이(가) 정의되어 있지 않습니다 (handler={handler})"
        )

    if api_module and resolve_module_file(work_dir, api_module) is None:
        raise PackageValidationError(f"API 모듈을 패키지에서 찾을 수 없습니다: {api_module}")

    return work_dir


def _normalize(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def _requirement_names(path: str) -> List[str]:
    names: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.split("#", 1)[0].strip()
            # -r / -e / --index-url 같은 pip 옵션 줄은 무시
            if not line or line.startswith("-"):
                continue
            m = re.match(r"[A-Za-z0-9][A-Za-z0-9._-]*", line)
            if m:
                names.append(_normalize(m.group(0)))
    return names


def _dist_info_dirs(work_dir: str) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for entry in os.listdir(work_dir):
        if not entry.endswith(".dist-info"):
            continue
        dist_name = entry[: -len(".dist-info")].rsplit("-", 1)[0]
        result[_normalize(dist_name)] = os.path.join(work_dir, entry)
    return result


def _remove_distribution(work_dir: str, dist_info: str) -> int:
    root = os.path.realpath(work_dir)
    removed = 0
    record = os.path.join(dist_info, "RECORD")
    rows: List[List[str]] = []
    if os.path.exists(record):
        with open(record, "r", encoding="utf-8", newline="") as f:
            rows = [row for row in csv.reader(f) if row]

    for row in rows:
        target = os.path.realpath(os.path.join(work_dir, row[0]))
        # --target 설치 시 bin/ 스크립트가 상위 경로로 기록되는 경우가 있다.
        if not target.startswith(root + os.sep):
            continue
        if os.path.isfile(target) or os.path.islink(target):
            os.remove(target)
            removed += 1
    if os.path.isdir(dist_info):
        shutil.rmtree(dist_info)
    return removed


def _prune_empty_dirs(work_dir: str) -> None:
    for dirpath, _dirnames, _filenames in os.walk(work_dir, topdown=False):
        if dirpath == work_dir:
            continue
        if not os.listdir(dirpath):
            os.rmdir(dirpath)


def clean_optional_dependencies(work_dir: str,
                                deploy_logger: Optional[DeployLogger] = None) -> str:
    """
    requirements-optional.txt 에 나열된 배포판을 작업 디렉토리에서 제거한다.
    각 배포판의 *.dist-info/RECORD 에 기록된 파일만 지운다.
    """
    deploy_logger = deploy_logger or NullLogger()
    path = os.path.join(work_dir, OPTIONAL_REQUIREMENTS_FILE)
    if not os.path.exists(path):
        logger.debug("%s 가 없어 optional 의존성 정리를 건너뜁니다.", OPTIONAL_REQUIREMENTS_FILE)
        return work_dir

    deploy_logger.log_stage("removing optional dependencies")
    installed = _dist_info_dirs(work_dir)
    for name in _requirement_names(path):
        dist_info = installed.get(name)
        if dist_info is None:
            logger.debug("optional 의존성이 설치되어 있지 않습니다: %s", name)
            continue
        removed = _remove_distribution(work_dir, dist_info)
        logger.info("optional 의존성 제거: %s (파일 %d개)", name, removed)

    _prune_empty_dirs(work_dir)
    return work_dir


def zip_directory(work_dir: str, name: str = "lambda") -> str:
    """
    작업 디렉토리를 새 임시 디렉토리 안의 zip 으로 묶고 경로를 반환한다.
    파일은 정렬된 순서로 추가되며, 빈 디렉토리는 거부한다.
    """
    files: List[str] = []
    for dirpath, dirnames, filenames in os.walk(work_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            files.append(os.path.join(dirpath, filename))

    if not files:
        raise PackageValidationError(f"패키지 디렉토리가 비어 있습니다: {work_dir}")

    target = os.path.join(tempfile.mkdtemp(prefix="lambda-deploy-zip-"), f"{name}.zip")
    with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zf:
        for full in files:
            zf.write(full, os.path.relpath(full, work_dir))

    logger.debug("zip 생성: %s (파일 %d개)", target, len(files))
    return target

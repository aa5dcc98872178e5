"""
exceptions
----------

배포 파이프라인에서 직접 발생시키는 예외 계층.
원격 호출(botocore) 예외는 여기로 감싸지 않고 그대로 전파한다.
"""

from __future__ import annotations


class DeployError(RuntimeError):
    pass


class PreconditionError(DeployError):
    """원격 호출 전에 감지되는 옵션/소스 디렉토리 문제."""


class ConfigError(DeployError, ValueError):
    """설정 파일 누락 또는 필수 항목 누락."""


class PackageValidationError(DeployError):
    """패키지 안에서 handler 또는 API 모듈을 찾을 수 없음."""


class PluginLoadError(DeployError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"API 설정을 로드할 수 없습니다: {path} ({reason})")


class PluginNotFoundError(PluginLoadError):
    def __init__(self, path: str) -> None:
        super().__init__(path, "파일이 없습니다")


class MalformedPluginError(PluginLoadError):
    pass


class PostDeployHookError(DeployError):
    def __init__(self, module_path: str, cause: BaseException) -> None:
        self.module_path = module_path
        super().__init__(f"post_deploy 실행 실패 ({module_path}): {cause}")

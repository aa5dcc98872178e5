from __future__ import annotations

import logging
import sys
from typing import Any, Mapping, Optional, Protocol


def setup_logging(verbosity: int = 0) -> None:
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # -vv 미만에서는 boto 내부 로그가 너무 많으므로 한 단계 낮춘다.
    if verbosity < 2:
        logging.getLogger("botocore").setLevel(logging.WARNING)
        logging.getLogger("boto3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class DeployLogger(Protocol):
    """
    파이프라인 진행 상황을 받는 logger 협력 객체.

    - log_stage: 단계 전환 알림
    - log_api_call: 원격 API 호출 1건마다 호출
    """

    def log_stage(self, stage: str) -> None: ...

    def log_api_call(self, name: str, args: Optional[Mapping[str, Any]] = None) -> None: ...


class NullLogger:
    """호출자가 logger 를 넘기지 않았을 때 쓰는 no-op 구현."""

    def log_stage(self, stage: str) -> None:
        pass

    def log_api_call(self, name: str, args: Optional[Mapping[str, Any]] = None) -> None:
        pass


class ConsoleLogger:
    """
    표준 logging 으로 전달하는 구현. CLI 에서 사용한다.
    단계는 INFO, API 호출은 DEBUG 레벨로 남긴다.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or get_logger("lambda_deploy_kit.pipeline")

    def log_stage(self, stage: str) -> None:
        self._logger.info("%s", stage)

    def log_api_call(self, name: str, args: Optional[Mapping[str, Any]] = None) -> None:
        # ZipFile 같은 바이너리 payload 는 로그에 남기지 않는다.
        keys = sorted(args) if args else []
        self._logger.debug("API 호출: %s (%s)", name, ", ".join(keys))

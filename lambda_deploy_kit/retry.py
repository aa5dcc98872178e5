"""
retry
-----

요청 제한(rate limit)에 걸린 원격 호출을 일정 시간 대기 후 재시도하는 래퍼.

클라이언트 생성 시점에 RetryingApiClient 로 감싸서 적용한다.
어떤 예외를 재시도할지(is_retriable)와 대기 정책(RetryPolicy)은 인자로 받는다.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from botocore.exceptions import ClientError

from .exceptions import ConfigError
from .logging_utils import get_logger


logger = get_logger(__name__)


RATE_LIMIT_ERROR_CODES = {"TooManyRequestsException", "ThrottlingException"}


def is_rate_limited(exc: BaseException) -> bool:
    if not isinstance(exc, ClientError):
        return False
    code = exc.response.get("Error", {}).get("Code")
    return code in RATE_LIMIT_ERROR_CODES


def _env_number(name: str, cast: Callable[[str], Any], default: Any) -> Any:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw.strip())
    except ValueError as e:
        raise ConfigError(f"{name} 값이 올바르지 않습니다: {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} 값은 0 이상이어야 합니다: {raw!r}")
    return value


@dataclass(frozen=True)
class RetryPolicy:
    delay: float = 3.0
    attempts: int = 10

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        return cls(
            delay=_env_number("API_RETRY_DELAY_SECONDS", float, cls.delay),
            attempts=max(_env_number("API_RETRY_ATTEMPTS", int, cls.attempts), 1),
        )


class RetryingApiClient:
    """
    client 의 메서드 호출을 가로채서, is_retriable 예외이면
    on_retry 호출 → policy.delay 대기 → 동일 호출 재시도를 반복한다.
    그 외 예외는 즉시 전파한다.
    """

    def __init__(
        self,
        client: Any,
        policy: Optional[RetryPolicy] = None,
        *,
        is_retriable: Callable[[BaseException], bool] = is_rate_limited,
        on_retry: Optional[Callable[[BaseException], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._policy = policy or RetryPolicy()
        self._is_retriable = is_retriable
        self._on_retry = on_retry
        self._sleep = sleep

    @property
    def wrapped(self) -> Any:
        return self._client

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if not callable(attr):
            return attr

        def _call(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return attr(*args, **kwargs)
                except Exception as e:  # noqa: BLE001
                    if not self._is_retriable(e) or attempt >= self._policy.attempts:
                        raise
                    logger.debug(
                        "%s 재시도 %d/%d (%.1fs 대기): %s",
                        name, attempt, self._policy.attempts, self._policy.delay, e,
                    )
                    if self._on_retry is not None:
                        self._on_retry(e)
                    self._sleep(self._policy.delay)
                    attempt += 1

        return _call

"""
aws_clients
-----------

update 파이프라인에서 사용하는 boto3 클라이언트를 생성한다.

- 모든 클라이언트는 LoggedClient 로 감싸서 API 호출마다 logger.log_api_call 을 호출한다.
- retry_services 에 포함된 서비스는 RetryingApiClient 로 한 번 더 감싼다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

import boto3

from .logging_utils import DeployLogger, NullLogger, get_logger
from .retry import RetryPolicy, RetryingApiClient


logger = get_logger(__name__)


DEFAULT_RETRY_SERVICES = ("apigateway",)


class LoggedClient:
    def __init__(self, client: Any, log_name: str, deploy_logger: DeployLogger) -> None:
        self._client = client
        self._log_name = log_name
        self._deploy_logger = deploy_logger

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if not callable(attr):
            return attr

        def _call(*args: Any, **kwargs: Any) -> Any:
            self._deploy_logger.log_api_call(f"{self._log_name}.{name}", kwargs)
            return attr(*args, **kwargs)

        return _call


@dataclass
class AwsClients:
    lambda_: Any
    apigateway: Any
    s3: Any


def build_clients(
    region: str,
    deploy_logger: Optional[DeployLogger] = None,
    retry_policy: Optional[RetryPolicy] = None,
    retry_services: Iterable[str] = DEFAULT_RETRY_SERVICES,
) -> AwsClients:
    deploy_logger = deploy_logger or NullLogger()
    policy = retry_policy or RetryPolicy()
    retry_set = set(retry_services)
    session = boto3.session.Session(region_name=region)

    def _on_retry(_exc: BaseException) -> None:
        deploy_logger.log_stage("rate-limited by AWS, waiting before retry")

    def _make(service: str) -> Any:
        client: Any = LoggedClient(session.client(service), service, deploy_logger)
        if service in retry_set:
            client = RetryingApiClient(client, policy, on_retry=_on_retry)
        return client

    logger.debug("boto3 클라이언트 생성: region=%s retry=%s", region, sorted(retry_set))
    return AwsClients(
        lambda_=_make("lambda"),
        apigateway=_make("apigateway"),
        s3=_make("s3"),
    )

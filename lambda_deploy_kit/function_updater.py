"""
function_updater
----------------

Lambda 함수 설정 조회 및 코드 업데이트(새 버전 publish)를 담당하는 모듈.
원격 오류는 그대로 전파한다. 재시도가 필요하면 클라이언트 생성 시점에
RetryingApiClient 로 감싸서 넘긴다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .config import FunctionIdentity
from .lambda_code import CodeReference
from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RemoteFunctionState:
    handler: str
    function_arn: str
    runtime: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def account_id(self) -> str:
        # arn:aws:lambda:{region}:{account}:function:{name}[:{qualifier}]
        return self.function_arn.split(":")[4]


@dataclass
class DeploymentResult:
    """
    update 파이프라인의 최종 결과.
    코드 업데이트가 성공한 뒤에 생성되며, 이후 단계는 필드를 추가만 한다.
    """

    function_name: str
    version: str
    url: Optional[str] = None
    s3key: Optional[str] = None
    archive: Optional[str] = None
    deploy: Any = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "FunctionName": self.function_name,
            "Version": self.version,
        }
        for key in ("url", "s3key", "archive", "deploy"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


class FunctionUpdater:
    def __init__(self, lambda_client: Any) -> None:
        self._client = lambda_client

    def read_current_config(self, identity: FunctionIdentity) -> RemoteFunctionState:
        resp = self._client.get_function_configuration(FunctionName=identity.name)
        return RemoteFunctionState(
            handler=resp.get("Handler", ""),
            function_arn=resp["FunctionArn"],
            runtime=resp.get("Runtime"),
            raw=resp,
        )

    def update_code(self,
                    identity: FunctionIdentity,
                    code: CodeReference,
                    publish: bool = True) -> DeploymentResult:
        params: Dict[str, Any] = dict(code.payload)
        params["FunctionName"] = identity.name
        params["Publish"] = publish
        resp = self._client.update_function_code(**params)
        logger.info("Lambda 코드 업데이트 완료: %s (version=%s)", resp["FunctionName"], resp["Version"])

        result = DeploymentResult(
            function_name=resp["FunctionName"],
            version=resp["Version"],
            raw=resp,
        )
        if code.s3_key:
            result.s3key = code.s3_key
        return result

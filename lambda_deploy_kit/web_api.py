"""
web_api
-------

API Gateway REST API 를 패키지의 API 정의에 맞춰 재구성하고,
API 모듈의 post_deploy 훅을 호출하는 모듈.

API 정의 형식 (api_config() 반환값):

    {
        "routes": {
            "": {"GET": {}},
            "users/{id}": {"GET": {}, "DELETE": {"authorizationType": "AWS_IAM"}},
        },
        "corsHandlers": True,   # 기본 True, False 이면 OPTIONS 메서드를 만들지 않음
    }
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Mapping, Optional

from botocore.exceptions import ClientError

from .apigw_url import api_gateway_url
from .config import ApiIdentity, FunctionIdentity, UpdateOptions
from .exceptions import PostDeployHookError
from .function_updater import DeploymentResult
from .logging_utils import DeployLogger, NullLogger, get_logger
from .plugins import DeploymentSummary, HookCapabilities, load_api_module


logger = get_logger(__name__)


LAMBDA_VERSION_STAGE_VARIABLE = "lambdaVersion"

CORS_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get("Error", {}).get("Code")


def config_signature(api_def: Mapping[str, Any]) -> str:
    canonical = json.dumps(api_def, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _cached_signature(apigateway: Any, api_id: str, stage: str, variable: str) -> Optional[str]:
    try:
        resp = apigateway.get_stage(restApiId=api_id, stageName=stage)
    except ClientError as e:
        if _error_code(e) == "NotFoundException":
            return None
        raise
    return (resp.get("variables") or {}).get(variable)


def _list_resources(apigateway: Any, api_id: str) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    params: Dict[str, Any] = {"restApiId": api_id, "limit": 500, "embed": ["methods"]}
    while True:
        resp = apigateway.get_resources(**params)
        items.extend(resp.get("items", []))
        position = resp.get("position")
        if not position:
            return items
        params["position"] = position


def _normalize_path(route: str) -> str:
    return route.strip().strip("/")


class _ResourceTree:
    """경로 → resource id. 중간 경로는 필요할 때 생성한다."""

    def __init__(self, apigateway: Any, api_id: str, root_id: str) -> None:
        self._apigateway = apigateway
        self._api_id = api_id
        self._ids: Dict[str, str] = {"": root_id}

    def ensure(self, path: str) -> str:
        if path in self._ids:
            return self._ids[path]
        parent, _, part = path.rpartition("/")
        parent_id = self.ensure(parent)
        resp = self._apigateway.create_resource(
            restApiId=self._api_id, parentId=parent_id, pathPart=part
        )
        self._ids[path] = resp["id"]
        return resp["id"]


def _lambda_integration_uri(region: str, account_id: str, function_name: str) -> str:
    function_arn = (
        f"arn:aws:lambda:{region}:{account_id}:function:{function_name}"
        f":${{stageVariables.{LAMBDA_VERSION_STAGE_VARIABLE}}}"
    )
    return f"arn:aws:apigateway:{region}:lambda:path/2015-03-31/functions/{function_arn}/invocations"


def _put_cors_options(apigateway: Any, api_id: str, resource_id: str, methods: List[str]) -> None:
    allow_methods = ",".join(sorted(set(methods) | {"OPTIONS"}))
    apigateway.put_method(
        restApiId=api_id, resourceId=resource_id, httpMethod="OPTIONS", authorizationType="NONE",
    )
    apigateway.put_integration(
        restApiId=api_id,
        resourceId=resource_id,
        httpMethod="OPTIONS",
        type="MOCK",
        requestTemplates={"application/json": '{"statusCode": 200}'},
    )
    apigateway.put_method_response(
        restApiId=api_id,
        resourceId=resource_id,
        httpMethod="OPTIONS",
        statusCode="200",
        responseParameters={
            "method.response.header.Access-Control-Allow-Origin": False,
            "method.response.header.Access-Control-Allow-Headers": False,
            "method.response.header.Access-Control-Allow-Methods": False,
        },
    )
    apigateway.put_integration_response(
        restApiId=api_id,
        resourceId=resource_id,
        httpMethod="OPTIONS",
        statusCode="200",
        responseParameters={
            "method.response.header.Access-Control-Allow-Origin": "'*'",
            "method.response.header.Access-Control-Allow-Headers": f"'{CORS_ALLOW_HEADERS}'",
            "method.response.header.Access-Control-Allow-Methods": f"'{allow_methods}'",
        },
    )


def _allow_api_gateway_invoke(lambda_client: Any, function_name: str, alias: str,
                              api_id: str, region: str, account_id: str) -> None:
    try:
        lambda_client.add_permission(
            FunctionName=function_name,
            Qualifier=alias,
            StatementId=f"web-api-access-{api_id}-{alias}",
            Action="lambda:InvokeFunction",
            Principal="apigateway.amazonaws.com",
            SourceArn=f"arn:aws:execute-api:{region}:{account_id}:{api_id}/*/*/*",
        )
    except ClientError as e:
        if _error_code(e) != "ResourceConflictException":
            raise
        logger.debug("API Gateway invoke 권한이 이미 존재합니다: %s:%s", function_name, alias)


def rebuild_web_api(
    function_name: str,
    alias: str,
    api_id: str,
    api_def: Mapping[str, Any],
    region: str,
    account_id: str,
    apigateway: Any,
    lambda_client: Any,
    deploy_logger: Optional[DeployLogger] = None,
    cache_stage_variable: Optional[str] = None,
) -> Dict[str, Any]:
    """
    REST API 의 리소스/메서드를 api_def 기준으로 다시 만들고 alias 스테이지로 배포한다.

    cache_stage_variable 이 주어지면 해당 스테이지 변수에 정의 서명을 저장하고,
    이미 같은 서명이 배포되어 있으면 재구성을 건너뛴다.
    """
    deploy_logger = deploy_logger or NullLogger()
    signature = config_signature(api_def)

    if cache_stage_variable:
        cached = _cached_signature(apigateway, api_id, alias, cache_stage_variable)
        if cached == signature:
            deploy_logger.log_stage("Reusing cached API configuration")
            logger.info("API 설정 변경 없음, 재구성을 건너뜁니다: %s (stage=%s)", api_id, alias)
            return {"cacheReused": True}

    deploy_logger.log_stage("rebuilding web API")
    resources = _list_resources(apigateway, api_id)
    root = next((r for r in resources if r.get("path") == "/"), None)
    if root is None:
        raise RuntimeError(f"REST API {api_id} 의 루트 리소스를 찾을 수 없습니다.")

    # 루트 리소스 자체는 지울 수 없으므로 메서드만 지운다.
    for method_name in sorted(root.get("resourceMethods") or {}):
        apigateway.delete_method(restApiId=api_id, resourceId=root["id"], httpMethod=method_name)

    for resource in resources:
        if resource.get("parentId") == root["id"]:
            apigateway.delete_resource(restApiId=api_id, resourceId=resource["id"])

    tree = _ResourceTree(apigateway, api_id, root["id"])
    uri = _lambda_integration_uri(region, account_id, function_name)
    cors = api_def.get("corsHandlers", True) is not False

    for route, methods in sorted(api_def["routes"].items()):
        resource_id = tree.ensure(_normalize_path(route))
        method_names = [m.upper() for m in methods]
        for method_name, method_cfg in sorted(methods.items()):
            method_cfg = method_cfg or {}
            apigateway.put_method(
                restApiId=api_id,
                resourceId=resource_id,
                httpMethod=method_name.upper(),
                authorizationType=method_cfg.get("authorizationType", "NONE"),
                apiKeyRequired=bool(method_cfg.get("apiKeyRequired", False)),
            )
            apigateway.put_integration(
                restApiId=api_id,
                resourceId=resource_id,
                httpMethod=method_name.upper(),
                type="AWS_PROXY",
                integrationHttpMethod="POST",
                uri=uri,
            )
        if cors and "OPTIONS" not in method_names:
            _put_cors_options(apigateway, api_id, resource_id, method_names)

    _allow_api_gateway_invoke(lambda_client, function_name, alias, api_id, region, account_id)

    variables = {LAMBDA_VERSION_STAGE_VARIABLE: alias}
    if cache_stage_variable:
        variables[cache_stage_variable] = signature
    apigateway.create_deployment(restApiId=api_id, stageName=alias, variables=variables)
    logger.info("REST API 배포 완료: %s (stage=%s, routes=%d)", api_id, alias, len(api_def["routes"]))
    return {"cacheReused": False}


def update_web_api(
    *,
    package_dir: str,
    api: Optional[ApiIdentity],
    function: FunctionIdentity,
    account_id: str,
    alias: str,
    options: UpdateOptions,
    result: DeploymentResult,
    apigateway: Any,
    lambda_client: Any,
    deploy_logger: Optional[DeployLogger] = None,
) -> DeploymentResult:
    """
    API 설정(id, module)이 있으면 API 모듈 로드 → URL 계산 → REST API 재구성
    → post_deploy 훅 순서로 실행하고 result 를 보강한다. 없으면 아무것도 하지 않는다.
    """
    if api is None or not api.id or not api.module:
        return result

    deploy_logger = deploy_logger or NullLogger()
    deploy_logger.log_stage("updating REST API")
    api_module = load_api_module(package_dir, api.module)

    # URL 은 재구성 결과와 무관하게 계산 가능하므로 먼저 붙인다.
    result.url = api_gateway_url(api.id, function.region, alias)

    rebuild_web_api(
        function.name,
        alias,
        api.id,
        api_module.definition,
        function.region,
        account_id,
        apigateway,
        lambda_client,
        deploy_logger,
        options.cache_api_config,
    )

    hook = api_module.post_deploy
    if hook is None:
        return result

    summary = DeploymentSummary(
        name=function.name,
        alias=alias,
        api_id=api.id,
        api_url=result.url,
        region=function.region,
    )
    try:
        deploy_result = hook(options, summary, HookCapabilities(apigateway=apigateway))
    except Exception as e:  # noqa: BLE001
        logger.exception("post_deploy 실행 중 오류: %s", api_module.path)
        raise PostDeployHookError(api_module.path, e) from e

    if deploy_result:
        result.deploy = deploy_result
    return result

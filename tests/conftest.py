"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 lambda_deploy_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.

또한 boto3 클라이언트 대신 쓰는 fake 클라이언트와 샘플 프로젝트 fixture 를 제공한다.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Any, Dict, List, Tuple

import pytest
from botocore.exceptions import ClientError


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


ACCOUNT_ID = "123456789012"


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Recorder:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def _record(self, name: str, kwargs: Dict[str, Any]) -> None:
        self.calls.append((name, kwargs))

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> List[Dict[str, Any]]:
        return [kwargs for n, kwargs in self.calls if n == name]


class FakeLambda(_Recorder):
    def __init__(self, handler: str = "main.handler", version: str = "7") -> None:
        super().__init__()
        self.handler = handler
        self.version = version
        self.aliases: Dict[str, str] = {}

    def _arn(self, name: str) -> str:
        return f"arn:aws:lambda:us-east-1:{ACCOUNT_ID}:function:{name}"

    def get_function_configuration(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_function_configuration", kwargs)
        name = kwargs["FunctionName"]
        return {
            "FunctionName": name,
            "FunctionArn": self._arn(name),
            "Handler": self.handler,
            "Runtime": "python3.12",
        }

    def update_function_code(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("update_function_code", kwargs)
        name = kwargs["FunctionName"]
        return {
            "FunctionName": name,
            "FunctionArn": f"{self._arn(name)}:{self.version}",
            "Version": self.version,
        }

    def get_alias(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_alias", kwargs)
        if kwargs["Name"] not in self.aliases:
            raise client_error("ResourceNotFoundException", "GetAlias")
        return {"Name": kwargs["Name"], "FunctionVersion": self.aliases[kwargs["Name"]]}

    def create_alias(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_alias", kwargs)
        self.aliases[kwargs["Name"]] = kwargs["FunctionVersion"]
        return {}

    def update_alias(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("update_alias", kwargs)
        self.aliases[kwargs["Name"]] = kwargs["FunctionVersion"]
        return {}

    def add_permission(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("add_permission", kwargs)
        return {}


class FakeApiGateway(_Recorder):
    """리소스/메서드 상태를 유지하고, 실제 API Gateway 처럼 중복 메서드는 ConflictException 을 낸다."""

    def __init__(self) -> None:
        super().__init__()
        self.resources: Dict[str, Dict[str, Any]] = {
            "root": {"id": "root", "path": "/", "resourceMethods": {}},
            "old": {
                "id": "old",
                "parentId": "root",
                "path": "/old",
                "pathPart": "old",
                "resourceMethods": {"GET": {}},
            },
        }
        self.stages: Dict[str, Dict[str, Any]] = {}
        self._next_id = 0

    def methods(self, resource_id: str) -> List[str]:
        return sorted(self.resources[resource_id]["resourceMethods"])

    def _resource(self, resource_id: str, operation: str) -> Dict[str, Any]:
        if resource_id not in self.resources:
            raise client_error("NotFoundException", operation)
        return self.resources[resource_id]

    def get_rest_api(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_rest_api", kwargs)
        return {"id": kwargs["restApiId"], "name": "test-api"}

    def get_stage(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_stage", kwargs)
        if kwargs["stageName"] not in self.stages:
            raise client_error("NotFoundException", "GetStage")
        return self.stages[kwargs["stageName"]]

    def get_resources(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_resources", kwargs)
        embed_methods = "methods" in (kwargs.get("embed") or [])
        items = []
        for resource in self.resources.values():
            item = {k: v for k, v in resource.items() if k != "resourceMethods"}
            if embed_methods and resource["resourceMethods"]:
                item["resourceMethods"] = {m: {} for m in resource["resourceMethods"]}
            items.append(item)
        return {"items": items}

    def delete_resource(self, **kwargs: Any) -> None:
        self._record("delete_resource", kwargs)
        path = self._resource(kwargs["resourceId"], "DeleteResource")["path"]
        for rid, resource in list(self.resources.items()):
            if resource["path"] == path or resource["path"].startswith(path + "/"):
                del self.resources[rid]

    def create_resource(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_resource", kwargs)
        parent = self._resource(kwargs["parentId"], "CreateResource")
        self._next_id += 1
        rid = f"r{self._next_id}"
        self.resources[rid] = {
            "id": rid,
            "parentId": parent["id"],
            "path": parent["path"].rstrip("/") + "/" + kwargs["pathPart"],
            "pathPart": kwargs["pathPart"],
            "resourceMethods": {},
        }
        return {"id": rid, "pathPart": kwargs["pathPart"]}

    def put_method(self, **kwargs: Any) -> None:
        self._record("put_method", kwargs)
        methods = self._resource(kwargs["resourceId"], "PutMethod")["resourceMethods"]
        if kwargs["httpMethod"] in methods:
            raise client_error("ConflictException", "PutMethod")
        methods[kwargs["httpMethod"]] = dict(kwargs)

    def delete_method(self, **kwargs: Any) -> None:
        self._record("delete_method", kwargs)
        methods = self._resource(kwargs["resourceId"], "DeleteMethod")["resourceMethods"]
        if kwargs["httpMethod"] not in methods:
            raise client_error("NotFoundException", "DeleteMethod")
        del methods[kwargs["httpMethod"]]

    def _require_method(self, kwargs: Dict[str, Any], operation: str) -> None:
        methods = self._resource(kwargs["resourceId"], operation)["resourceMethods"]
        if kwargs["httpMethod"] not in methods:
            raise client_error("NotFoundException", operation)

    def put_integration(self, **kwargs: Any) -> None:
        self._record("put_integration", kwargs)
        self._require_method(kwargs, "PutIntegration")

    def put_method_response(self, **kwargs: Any) -> None:
        self._record("put_method_response", kwargs)
        self._require_method(kwargs, "PutMethodResponse")

    def put_integration_response(self, **kwargs: Any) -> None:
        self._record("put_integration_response", kwargs)
        self._require_method(kwargs, "PutIntegrationResponse")

    def create_deployment(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_deployment", kwargs)
        self.stages[kwargs["stageName"]] = {"variables": dict(kwargs.get("variables") or {})}
        return {"id": "dep1"}


class FakeS3(_Recorder):
    def upload_file(self, filename: str, bucket: str, key: str) -> None:
        self._record("upload_file", {"Filename": filename, "Bucket": bucket, "Key": key})


@pytest.fixture
def fake_lambda() -> FakeLambda:
    return FakeLambda()


@pytest.fixture
def fake_apigateway() -> FakeApiGateway:
    return FakeApiGateway()


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def project_dir(tmp_path) -> str:  # noqa: ANN001
    """handler 하나와 lambda-deploy.json 만 있는 최소 프로젝트."""
    proj = tmp_path / "proj"
    proj.mkdir()
    (proj / "main.py").write_text(
        "def handler(event, context):\n    return {'statusCode': 200}\n",
        encoding="utf-8",
    )
    (proj / "lambda-deploy.json").write_text(
        json.dumps({"lambda": {"name": "hello", "region": "us-east-1"}}),
        encoding="utf-8",
    )
    return str(proj)

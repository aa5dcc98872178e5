from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from .logging_utils import get_logger


logger = get_logger(__name__)


def mark_alias(function_name: str, lambda_client: Any, version: str, alias_name: str) -> None:
    """
    alias_name 이 version 을 가리키도록 한다.
    이미 있는 alias 는 update, 없으면 create 한다.
    """
    try:
        lambda_client.get_alias(FunctionName=function_name, Name=alias_name)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
            raise
        lambda_client.create_alias(FunctionName=function_name, Name=alias_name, FunctionVersion=version)
        logger.info("alias 생성: %s:%s -> %s", function_name, alias_name, version)
        return

    lambda_client.update_alias(FunctionName=function_name, Name=alias_name, FunctionVersion=version)
    logger.info("alias 갱신: %s:%s -> %s", function_name, alias_name, version)

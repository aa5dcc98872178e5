"""
lambda_code
-----------

zip 파일을 UpdateFunctionCode 에 넘길 코드 참조(payload)로 바꾼다.

- 버킷 미지정: ZipFile 바이트를 그대로 전달
- 버킷 지정: S3 에 업로드 후 S3Bucket/S3Key 를 전달
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .logging_utils import DeployLogger, NullLogger, get_logger


logger = get_logger(__name__)


@dataclass
class CodeReference:
    payload: Dict[str, Any] = field(default_factory=dict)
    s3_key: Optional[str] = None


def lambda_code(archive_path: str,
                bucket: Optional[str] = None,
                s3_client: Any = None,
                deploy_logger: Optional[DeployLogger] = None) -> CodeReference:
    deploy_logger = deploy_logger or NullLogger()

    if not bucket:
        with open(archive_path, "rb") as f:
            return CodeReference(payload={"ZipFile": f.read()})

    if s3_client is None:
        raise ValueError("S3 버킷 업로드에는 s3_client 가 필요합니다.")

    key = f"{uuid.uuid4()}-{os.path.basename(archive_path)}"
    deploy_logger.log_stage(f"uploading to s3://{bucket}/{key}")
    logger.info("S3 업로드: %s -> s3://%s/%s", archive_path, bucket, key)
    s3_client.upload_file(archive_path, bucket, key)

    return CodeReference(payload={"S3Bucket": bucket, "S3Key": key}, s3_key=key)

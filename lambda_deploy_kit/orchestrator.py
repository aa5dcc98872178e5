from __future__ import annotations

import enum
import os
import tempfile
from dataclasses import dataclass, replace
from typing import Optional

from .config import ProjectConfig, UpdateOptions, load_config
from .exceptions import PreconditionError
from .function_updater import DeploymentResult, FunctionUpdater, RemoteFunctionState
from .lambda_code import CodeReference
from .logging_utils import DeployLogger, NullLogger, get_logger
from .packaging import PackageArtifact
from .retry import RetryPolicy
from . import (
    alias,
    aws_clients,
    lambda_code,
    packaging,
    web_api,
)


logger = get_logger(__name__)

# version 옵션이 없을 때 URL/스테이지에 사용하는 alias
DEFAULT_ALIAS = "latest"


class Stage(enum.Enum):
    VALIDATING_OPTIONS = "validating options"
    LOADING_CONFIG = "loading Lambda config"
    READING_REMOTE_STATE = "reading current function configuration"
    BUILDING_PACKAGE = "building package"
    UPLOADING = "uploading package"
    UPDATING_FUNCTION_CODE = "updating Lambda"
    MARKING_ALIAS = "setting version alias"
    REBUILDING_WEB_API = "updating REST API"
    CLEANING_UP = "cleaning up"
    DONE = "done"


@dataclass
class UpdateContext:
    """
    update 1회 실행 동안의 상태. 각 단계 함수가 순서대로 채운다.
    """

    options: UpdateOptions
    deploy_logger: DeployLogger
    stage: Stage = Stage.VALIDATING_OPTIONS
    project: Optional[ProjectConfig] = None
    clients: Optional[aws_clients.AwsClients] = None
    remote: Optional[RemoteFunctionState] = None
    artifact: Optional[PackageArtifact] = None
    code: Optional[CodeReference] = None
    result: Optional[DeploymentResult] = None

    @property
    def alias(self) -> str:
        return self.options.version or DEFAULT_ALIAS


def _enter(ctx: UpdateContext, stage: Stage) -> None:
    ctx.stage = stage
    logger.debug("단계 진입: %s", stage.name)


def _validate_options(ctx: UpdateContext) -> None:
    _enter(ctx, Stage.VALIDATING_OPTIONS)
    opts = ctx.options
    if os.path.abspath(opts.source or "") == os.path.abspath(tempfile.gettempdir()):
        raise PreconditionError(
            f"소스 디렉토리가 임시 디렉토리({opts.source})입니다. "
            "재귀 복사로 디스크를 채울 수 있어 진행하지 않습니다."
        )
    if not os.path.isdir(opts.source) or not os.access(opts.source, os.R_OK | os.X_OK):
        raise PreconditionError(f"소스 디렉토리를 읽을 수 없습니다: {opts.source}")
    if opts.no_optional_dependencies and opts.use_local_dependencies:
        raise PreconditionError(
            "--use-local-dependencies 와 --no-optional-dependencies 는 함께 사용할 수 없습니다."
        )


def _load_config(ctx: UpdateContext, retry_policy: Optional[RetryPolicy]) -> None:
    _enter(ctx, Stage.LOADING_CONFIG)
    ctx.deploy_logger.log_stage(Stage.LOADING_CONFIG.value)
    ctx.project = load_config(ctx.options)
    policy = retry_policy or RetryPolicy.from_env()
    ctx.clients = aws_clients.build_clients(
        ctx.project.function.region,
        ctx.deploy_logger,
        retry_policy=policy,
    )


def _read_remote_state(ctx: UpdateContext) -> None:
    _enter(ctx, Stage.READING_REMOTE_STATE)
    ctx.remote = FunctionUpdater(ctx.clients.lambda_).read_current_config(ctx.project.function)
    if ctx.project.api is not None:
        # 패키징 전에 REST API 가 실제로 존재하는지 확인한다.
        ctx.clients.apigateway.get_rest_api(restApiId=ctx.project.api.id)


def _build_package(ctx: UpdateContext) -> None:
    _enter(ctx, Stage.BUILDING_PACKAGE)
    opts = ctx.options
    api = ctx.project.api

    work_dir = packaging.collect_files(opts.source, opts.use_local_dependencies, ctx.deploy_logger)
    ctx.artifact = PackageArtifact(directory=work_dir)

    ctx.deploy_logger.log_stage("validating package")
    packaging.validate_package(work_dir, ctx.remote.handler, api.module if api else None)

    if opts.no_optional_dependencies:
        packaging.clean_optional_dependencies(work_dir, ctx.deploy_logger)

    ctx.deploy_logger.log_stage("zipping package")
    ctx.artifact.archive_path = packaging.zip_directory(work_dir)


def _upload(ctx: UpdateContext) -> None:
    _enter(ctx, Stage.UPLOADING)
    ctx.code = lambda_code.lambda_code(
        ctx.artifact.archive_path,
        ctx.options.use_s3_bucket,
        ctx.clients.s3,
        ctx.deploy_logger,
    )


def _update_function_code(ctx: UpdateContext) -> None:
    _enter(ctx, Stage.UPDATING_FUNCTION_CODE)
    ctx.deploy_logger.log_stage(Stage.UPDATING_FUNCTION_CODE.value)
    ctx.result = FunctionUpdater(ctx.clients.lambda_).update_code(ctx.project.function, ctx.code)


def _mark_alias(ctx: UpdateContext) -> None:
    if not ctx.options.version:
        return
    _enter(ctx, Stage.MARKING_ALIAS)
    ctx.deploy_logger.log_stage(Stage.MARKING_ALIAS.value)
    alias.mark_alias(
        ctx.result.function_name,
        ctx.clients.lambda_,
        ctx.result.version,
        ctx.options.version,
    )


def _rebuild_web_api(ctx: UpdateContext) -> None:
    api = ctx.project.api
    if api is None or not api.id or not api.module:
        return
    _enter(ctx, Stage.REBUILDING_WEB_API)
    web_api.update_web_api(
        package_dir=ctx.artifact.directory,
        api=api,
        function=ctx.project.function,
        account_id=ctx.remote.account_id,
        alias=ctx.alias,
        options=ctx.options,
        result=ctx.result,
        apigateway=ctx.clients.apigateway,
        lambda_client=ctx.clients.lambda_,
        deploy_logger=ctx.deploy_logger,
    )


def _cleanup(ctx: UpdateContext, failed: bool) -> None:
    """
    --keep 이 없으면 성공/실패와 관계없이 작업 디렉토리와 zip 을 삭제한다.
    --keep 이면 남겨두고, 성공한 경우 결과에 zip 경로를 붙인다.
    """
    if ctx.artifact is None:
        return

    if ctx.options.keep:
        if ctx.result is not None and not failed:
            ctx.result.archive = ctx.artifact.archive_path
        logger.info("--keep: 패키지를 남겨둡니다: %s", ctx.artifact.archive_path or ctx.artifact.directory)
        return

    if not failed:
        ctx.artifact.remove()
        return

    # 실패 경로에서는 정리 오류가 원래 오류를 가리지 않도록 경고만 남긴다.
    try:
        ctx.artifact.remove()
    except OSError as e:
        logger.warning("임시 패키지 삭제 실패: %s (%s)", ctx.artifact.directory, e)


def update(options: Optional[UpdateOptions] = None,
           deploy_logger: Optional[DeployLogger] = None,
           *,
           retry_policy: Optional[RetryPolicy] = None) -> DeploymentResult:
    """
    새 Lambda 버전을 배포하고, 필요하면 alias 지정과 REST API 재구성을 수행한다.

    단계:
        옵션 검증 → 설정 로드/클라이언트 생성 → 현재 함수 설정 조회
        → 패키징 → 업로드 → 코드 업데이트 → (alias) → (REST API) → 정리

    Returns:
        DeploymentResult: FunctionName/Version 과 단계별로 추가된 필드
    Raises:
        첫 번째로 실패한 단계의 예외를 그대로 전파한다.
    """
    options = options or UpdateOptions()
    if not options.source:
        options = replace(options, source=os.getcwd())

    ctx = UpdateContext(options=options, deploy_logger=deploy_logger or NullLogger())

    _validate_options(ctx)
    _load_config(ctx, retry_policy)
    _read_remote_state(ctx)

    failed = True
    try:
        _build_package(ctx)
        _upload(ctx)
        _update_function_code(ctx)
        _mark_alias(ctx)
        _rebuild_web_api(ctx)
        failed = False
    except Exception:
        logger.error("update 실패 (단계: %s)", ctx.stage.value)
        raise
    finally:
        _enter(ctx, Stage.CLEANING_UP)
        _cleanup(ctx, failed)

    _enter(ctx, Stage.DONE)
    return ctx.result

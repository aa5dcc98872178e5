import json
import os
import sys
from typing import Optional

import click

from .config import load_env_files, UpdateOptions, CONFIG_FILE_DEFAULT
from .logging_utils import ConsoleLogger, setup_logging, get_logger
from .orchestrator import update as run_update


logger = get_logger(__name__)


@click.group()
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 이면 boto 로그까지 출력)",
)
@click.pass_context
def main(ctx: click.Context, verbose: int) -> None:
    """AWS Lambda 함수 업데이트 / API Gateway 재구성용 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option(
    "--version",
    "version",
    type=str,
    default=None,
    help="새 배포 버전에 자동으로 지정할 alias 이름 (예: development)",
)
@click.option(
    "--source",
    "source",
    type=click.Path(file_okay=False, dir_okay=True),
    default=None,
    help="프로젝트 파일이 있는 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "--config",
    "config",
    type=click.Path(dir_okay=False),
    default=None,
    help=f"리소스 이름이 담긴 설정 파일 (기본: {CONFIG_FILE_DEFAULT})",
)
@click.option(
    "--no-optional-dependencies",
    "no_optional_dependencies",
    is_flag=True,
    help="requirements-optional.txt 의 의존성을 Lambda 에 업로드하지 않습니다.",
)
@click.option(
    "--use-local-dependencies",
    "use_local_dependencies",
    is_flag=True,
    help="의존성을 설치하지 않고 소스 디렉토리에 포함된 패키지를 그대로 사용합니다.",
)
@click.option(
    "--cache-api-config",
    "cache_api_config",
    type=str,
    default=None,
    help="현재 API 설정 서명을 저장할 스테이지 변수 이름 (예: lambdaDeployConfigCache). "
    "지정하면 이전에 배포된 설정과 같을 때 REST API 재구성을 건너뜁니다.",
)
@click.option(
    "--keep",
    "keep",
    is_flag=True,
    help="문제 분석을 위해 생성된 패키지 zip 을 디스크에 남겨둡니다.",
)
@click.option(
    "--use-s3-bucket",
    "use_s3_bucket",
    type=str,
    default=None,
    help="함수 코드를 Lambda 에 설치하기 전에 업로드할 S3 버킷 이름. "
    "지정하지 않으면 zip 을 Lambda 로 직접 업로드합니다.",
)
def update(
    version: Optional[str],
    source: Optional[str],
    config: Optional[str],
    no_optional_dependencies: bool,
    use_local_dependencies: bool,
    cache_api_config: Optional[str],
    keep: bool,
    use_s3_bucket: Optional[str],
) -> None:
    """프로젝트 파일로 Lambda 함수의 새 버전을 배포하고, 연결된 REST API 를 갱신"""
    source_dir = source or os.getcwd()
    if os.path.isdir(source_dir):
        load_env_files(source_dir)

    options = UpdateOptions(
        source=source_dir,
        version=version,
        config=config,
        no_optional_dependencies=no_optional_dependencies,
        use_local_dependencies=use_local_dependencies,
        cache_api_config=cache_api_config,
        keep=keep,
        use_s3_bucket=use_s3_bucket,
    )

    try:
        result = run_update(options, ConsoleLogger())
    except Exception as e:  # noqa: BLE001
        logger.exception("update 중 오류 발생")
        click.echo(f"[ERROR] 업데이트 실패: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=4, ensure_ascii=False, default=str))

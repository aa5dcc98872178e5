"""
lambda_deploy_kit
-----------------

AWS Lambda 함수 업데이트용 배포 CLI 패키지.
로컬 프로젝트를 패키징하여 새 Lambda 버전을 배포하고,
버전 alias 지정 및 연결된 API Gateway REST API 재구성까지 한 번에 처리하는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "orchestrator",
]

from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass
from textwrap import shorten
from typing import Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


def _failure_detail(stdout: str, stderr: str) -> str:
    stdout = (stdout or "").strip()
    stderr = (stderr or "").strip()
    if stderr:
        return "\nstderr:\n" + shorten(stderr, width=2000)
    if stdout:
        return "\nstdout:\n" + shorten(stdout, width=2000)
    return ""


def run_command(
    cmd: Sequence[str],
    *,
    timeout: float | None = 900.0,
    stream_output: bool = False,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처, 실패 시 요약을 RuntimeError 메시지에 포함
    - stream_output=True : 출력을 실시간으로 터미널(stdout)에 흘린다
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    if stream_output:
        try:
            proc = subprocess.Popen(  # noqa: S603
                list(cmd),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise RuntimeError(f"필요한 명령을 찾을 수 없습니다: {cmd[0]}") from e

        out_lines: list[str] = []
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                out_lines.append(line)
                sys.stdout.write(line)
                sys.stdout.flush()
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            raise RuntimeError(
                f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}"
            ) from e
        finally:
            if proc.stdout is not None:
                proc.stdout.close()

        combined = "".join(out_lines)
        if returncode != 0:
            raise RuntimeError(
                f"명령 실행 실패: {' '.join(cmd)} (exit={returncode})"
                f"{_failure_detail(combined, '')}"
            )
        return RunResult(returncode=returncode, stdout=combined, stderr="")

    try:
        result = subprocess.run(
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise RuntimeError(f"필요한 명령을 찾을 수 없습니다: {cmd[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}"
        ) from e
    except subprocess.CalledProcessError as e:
        raise RuntimeError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode})"
            f"{_failure_detail(e.stdout, e.stderr)}"
        ) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")

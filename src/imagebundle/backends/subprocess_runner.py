"""Subprocess process runner implementation."""

import subprocess
from typing import Dict, List, Optional

import structlog

from ..interfaces.process import ProcessResult, ProcessRunner

log = structlog.get_logger(__name__)


class SubprocessRunner(ProcessRunner):
    """Run processes using the subprocess module."""

    def run(
        self,
        command: List[str],
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        log.debug("process.run", command=command[0], argc=len(command))
        result = subprocess.run(
            command,
            capture_output=True,
            timeout=timeout,
            check=False,
            env=env,
            text=True,
        )
        return ProcessResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

"""Abstract interface for process execution."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class ProcessResult:
    """Result of process execution."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, as a shell `2>&1` would show them."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class ProcessRunner(ABC):
    """Runs provider command-line tools."""

    @abstractmethod
    def run(
        self,
        command: List[str],
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        """Run a command without raising on a non-zero exit status."""
        pass

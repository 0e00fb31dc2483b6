"""Cloud client that registers images through the aws command-line tool."""

import re
import subprocess
from typing import Any, Optional

import structlog

from ..errors import ProviderError
from ..interfaces.process import ProcessRunner
from ..stages.models import RegistrationParams
from .ec2 import Ec2CloudClient
from .subprocess_runner import SubprocessRunner

log = structlog.get_logger(__name__)

# A bare id (--output text) or the legacy "IMAGE ami-..." line
_IMAGE_LINE = re.compile(r"^(?:IMAGE\s+)?(ami-[0-9a-f]+)$")


def parse_image_id(output: str) -> Optional[str]:
    """Pull the new image id out of register-image output.

    Only a line holding an image id on its own, or the legacy ec2-register
    form ("IMAGE ami-123"), counts. Anything else, including the literal
    "None" the CLI prints for a missing field, yields None.
    """
    for line in (output or "").splitlines():
        match = _IMAGE_LINE.match(line.strip())
        if match:
            return match.group(1)
    return None


class AwsCliCloudClient(Ec2CloudClient):
    """EC2 cloud client whose registration call shells out to the aws CLI."""

    name = "aws-cli"

    def __init__(
        self,
        region: Optional[str] = None,
        client: Optional[Any] = None,
        runner: Optional[ProcessRunner] = None,
        executable: str = "aws",
        timeout: int = 300,
    ):
        super().__init__(region=region, client=client)
        self.runner = runner or SubprocessRunner()
        self.executable = executable
        self.timeout = timeout

    def create_image(self, params: RegistrationParams) -> str:
        command = params.to_cli_args(self.executable)
        log.info("aws_cli.register_image", snapshot_id=params.snapshot_id)
        log.debug("aws_cli.command", command=" ".join(command))

        try:
            result = self.runner.run(command, timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            raise ProviderError(f"Unable to run {self.executable}: {e}") from e

        log.info("aws_cli.output", returncode=result.returncode, output=result.output)
        if not result.success:
            raise ProviderError(
                f"{self.executable} ec2 register-image exited with {result.returncode}: "
                f"{result.output.strip()}"
            )

        image_id = parse_image_id(result.stdout)
        if not image_id:
            raise ProviderError(
                f"register-image succeeded but printed no image id: {result.stdout.strip()!r}"
            )
        return image_id

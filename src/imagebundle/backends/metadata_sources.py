"""Instance metadata sources: process environment and the metadata cache file."""

import os
import re
import shlex
from pathlib import Path
from typing import Dict, Mapping, Optional

import structlog

from ..errors import MetadataUnavailable
from ..interfaces.metadata import MetadataSource
from ..stages.models import DEFAULT_ROOT_DEVICE, InstanceMetadata

log = structlog.get_logger(__name__)

DEFAULT_METADATA_FILE = Path("/var/spool/cloud/meta-data-cache.sh")
METADATA_FILE_ENV = "IMAGEBUNDLE_METADATA_FILE"

ENV_INSTANCE_ID = "EC2_INSTANCE_ID"
ENV_AVAILABILITY_ZONE = "EC2_PLACEMENT_AVAILABILITY_ZONE"
ENV_KERNEL_ID = "EC2_KERNEL_ID"
ENV_VIRTUALIZATION = "VIRTUALIZATION"
ENV_ROOT_DEVICE = "EC2_BLOCK_DEVICE_MAPPING_ROOT"

# Values the operator may override from the environment even when the cache
# file provides them.
OVERRIDE_KEYS = (ENV_VIRTUALIZATION, ENV_KERNEL_ID)

# ENV['EC2_INSTANCE_ID']='i-123' as written by Ruby flavored caches
_RUBY_ASSIGNMENT = re.compile(r"""^ENV\[['"](?P<key>\w+)['"]\]\s*=\s*(?P<value>.*)$""")


def metadata_file_path() -> Path:
    """Metadata cache location, overridable via IMAGEBUNDLE_METADATA_FILE."""
    return Path(os.getenv(METADATA_FILE_ENV, str(DEFAULT_METADATA_FILE)))


def parse_metadata_cache(text: str) -> Dict[str, str]:
    """Parse `export KEY='value'` style assignments."""
    values: Dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()

        ruby = _RUBY_ASSIGNMENT.match(line)
        if ruby:
            key, raw_value = ruby.group("key"), ruby.group("value")
        elif "=" in line:
            key, _, raw_value = line.partition("=")
            key = key.strip()
        else:
            continue

        try:
            tokens = shlex.split(raw_value, comments=True)
        except ValueError:
            log.warning("metadata.unparsable_line", line=lineno)
            continue
        values[key] = tokens[0] if tokens else ""
    return values


def metadata_from_mapping(
    values: Mapping[str, str],
    root_device: str = DEFAULT_ROOT_DEVICE,
) -> InstanceMetadata:
    """Build InstanceMetadata from EC2_* style keys; empty values count as unset."""

    def get(key: str) -> Optional[str]:
        value = values.get(key)
        return value.strip() if value and value.strip() else None

    return InstanceMetadata(
        instance_id=get(ENV_INSTANCE_ID),
        availability_zone=get(ENV_AVAILABILITY_ZONE),
        virtualization_type=get(ENV_VIRTUALIZATION),
        kernel_id=get(ENV_KERNEL_ID),
        root_device=root_device,
        attachment_device=get(ENV_ROOT_DEVICE),
    )


class EnvironmentMetadataSource(MetadataSource):
    """Metadata already exported into the process environment."""

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        root_device: str = DEFAULT_ROOT_DEVICE,
    ):
        self.environ = environ if environ is not None else os.environ
        self.root_device = root_device

    def load(self) -> InstanceMetadata:
        if not self.environ.get(ENV_AVAILABILITY_ZONE):
            raise MetadataUnavailable(
                f"{ENV_AVAILABILITY_ZONE} is not defined. Did you load the instance metadata?"
            )
        return metadata_from_mapping(self.environ, self.root_device)


class MetadataCacheFile(MetadataSource):
    """Metadata from the cache file written by the instance boot scripts."""

    def __init__(
        self,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        root_device: str = DEFAULT_ROOT_DEVICE,
    ):
        self.path = Path(path) if path else metadata_file_path()
        self.environ = environ if environ is not None else os.environ
        self.root_device = root_device

    def load(self) -> InstanceMetadata:
        if not self.path.exists():
            raise MetadataUnavailable(
                f"Metadata cache {self.path} not found: not a managed instance, "
                "or the metadata file was already cleaned up"
            )

        try:
            values = parse_metadata_cache(self.path.read_text())
        except OSError as e:
            raise MetadataUnavailable(f"Cannot read {self.path}: {e}") from e

        for key in OVERRIDE_KEYS:
            if self.environ.get(key):
                values[key] = self.environ[key]

        metadata = metadata_from_mapping(values, self.root_device)
        log.info(
            "metadata.loaded",
            path=str(self.path),
            instance_id=metadata.instance_id,
            zone=metadata.availability_zone,
        )
        return metadata

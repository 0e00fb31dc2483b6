#!/usr/bin/env python3
"""
Pydantic models for imagebundle configuration validation.
"""

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

CONFIG_FILE_NAME = ".imagebundle.yaml"


class BundleConfig(BaseModel):
    """Settings for a bundle run."""

    root_device: str = Field(default="/dev/sda", description="Root device name convention")
    poll_interval_seconds: float = Field(
        default=10.0, gt=0, le=600, description="Delay between readiness checks"
    )
    poll_timeout_seconds: float = Field(
        default=1200.0, gt=0, le=6 * 3600, description="Give up waiting after this long"
    )
    dry_run: bool = Field(default=False, description="Log actions without calling the provider")
    registration_backend: Literal["api", "cli"] = Field(
        default="api", description="Register through the EC2 API or the aws CLI"
    )
    aws_cli: str = Field(default="aws", description="aws CLI executable")
    architecture: str = Field(default="x86_64", description="Architecture of new images")
    metadata_file: Optional[Path] = Field(
        default=None, description="Metadata cache file (default: /var/spool/cloud/meta-data-cache.sh)"
    )
    use_environment_metadata: bool = Field(
        default=False, description="Read metadata from the environment instead of the cache file"
    )
    region: Optional[str] = Field(default=None, description="Override the region used for API calls")
    log_level: str = Field(default="INFO", description="DEBUG|INFO|WARNING|ERROR")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    log_file: Optional[Path] = Field(default=None, description="Also write JSON logs here")

    @field_validator("root_device")
    @classmethod
    def root_device_must_be_device_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/dev/"):
            raise ValueError("root_device must be a /dev path")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_valid(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @classmethod
    def from_yaml(cls, path: Path) -> "BundleConfig":
        """Load settings from a YAML file."""
        try:
            data = yaml.safe_load(Path(path).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        return cls.model_validate(data)

    def with_overrides(self, **overrides: Any) -> "BundleConfig":
        """Copy with the non-None overrides applied and re-validated."""
        data: Dict[str, Any] = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return BundleConfig.model_validate(data)


def load_config(path: Optional[Path] = None, cwd: Optional[Path] = None) -> BundleConfig:
    """Load config from ``path``, or ./.imagebundle.yaml, or defaults."""
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return BundleConfig.from_yaml(path)

    default_path = (cwd or Path.cwd()) / CONFIG_FILE_NAME
    if default_path.exists():
        return BundleConfig.from_yaml(default_path)
    return BundleConfig()

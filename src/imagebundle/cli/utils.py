#!/usr/bin/env python3
"""
Shared utilities for the imagebundle CLI.
"""

from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

from imagebundle.errors import ImageBundleError
from imagebundle.logging import configure_logging
from imagebundle.models import BundleConfig, load_config

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def config_from_args(args: Any) -> BundleConfig:
    """Load the config file and apply command-line overrides."""
    config_path: Optional[Path] = getattr(args, "config", None)
    config = load_config(Path(config_path) if config_path else None)
    return config.with_overrides(
        dry_run=True if getattr(args, "dry_run", False) else None,
        root_device=getattr(args, "root_device", None),
        registration_backend=getattr(args, "backend", None),
        metadata_file=getattr(args, "metadata_file", None),
        use_environment_metadata=True if getattr(args, "from_env", False) else None,
        region=getattr(args, "region", None),
        log_level=getattr(args, "log_level", None),
        json_logs=True if getattr(args, "json_logs", False) else None,
        log_file=getattr(args, "log_file", None),
    )


def setup_logging(config: BundleConfig) -> None:
    configure_logging(
        level=config.log_level,
        json_output=config.json_logs,
        log_file=config.log_file,
    )


def print_error(error: ImageBundleError) -> None:
    """Print a failed run with whatever needs manual cleanup."""
    console.print(f"[red]❌ {type(error).__name__}: {escape(str(error))}[/]")
    hint = error.cleanup_hint()
    if hint:
        console.print(f"[yellow]   {hint}. Clean up or resume manually.[/]")

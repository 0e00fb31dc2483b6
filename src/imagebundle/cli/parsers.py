#!/usr/bin/env python3
"""
Argument parsers for the imagebundle CLI.
"""

import argparse
from typing import List, Optional

from pydantic import ValidationError
from rich.markup import escape

from imagebundle import __version__
from imagebundle.errors import Cancelled, ImageBundleError
from imagebundle.cli.bundle_commands import cmd_create, cmd_metadata, cmd_show_params
from imagebundle.cli.utils import (
    EXIT_CANCELLED,
    EXIT_FAILED,
    EXIT_USAGE,
    console,
    print_error,
)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", "-c", help="Config file (default: ./.imagebundle.yaml)")
    parser.add_argument("--metadata-file", help="Instance metadata cache file")
    parser.add_argument(
        "--from-env",
        action="store_true",
        help="Read instance metadata from the environment instead of the cache file",
    )
    parser.add_argument("--region", help="Region for API calls (default: from availability zone)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--json-logs", action="store_true", help="Log JSON lines to stderr")
    parser.add_argument("--log-file", help="Also write JSON logs to this file")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imagebundle",
        description="Create a bootable image from the running instance",
    )
    parser.add_argument("--version", action="version", version=f"imagebundle {__version__}")
    parser.set_defaults(func=lambda args, p=parser: p.print_help() or 0)

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    create_parser = subparsers.add_parser(
        "create", help="Snapshot the root volume and register an image"
    )
    create_parser.add_argument("--instance-id", help="Instance to bundle (default: from metadata)")
    create_parser.add_argument("--name", "-n", help="Name of the new snapshot and image")
    create_parser.add_argument("--description", "-d", help="Description of the new image")
    create_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would happen without calling the provider"
    )
    create_parser.add_argument("--root-device", help="Root device name convention (default: /dev/sda)")
    create_parser.add_argument(
        "--backend", choices=["api", "cli"], help="Register through the EC2 API or the aws CLI"
    )
    _add_common_arguments(create_parser)
    create_parser.set_defaults(func=cmd_create)

    params_parser = subparsers.add_parser(
        "show-params", help="Print the register-image command for a snapshot"
    )
    params_parser.add_argument("--snapshot-id", required=True, help="Snapshot to register")
    params_parser.add_argument("--root-device-name", help="Root device of the new image")
    params_parser.add_argument("--name", "-n", help="Image name")
    params_parser.add_argument("--description", "-d", help="Image description")
    _add_common_arguments(params_parser)
    params_parser.set_defaults(func=cmd_show_params)

    metadata_parser = subparsers.add_parser("metadata", help="Show the loaded instance metadata")
    _add_common_arguments(metadata_parser)
    metadata_parser.set_defaults(func=cmd_metadata)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except Cancelled as e:
        print_error(e)
        return EXIT_CANCELLED
    except ImageBundleError as e:
        print_error(e)
        return EXIT_FAILED
    except (ValidationError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]❌ Invalid configuration: {escape(str(e))}[/]")
        return EXIT_USAGE
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/]")
        return EXIT_CANCELLED

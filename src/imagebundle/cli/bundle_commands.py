#!/usr/bin/env python3
"""
Bundle commands for the imagebundle CLI.
"""

import shlex

from rich.table import Table

from imagebundle.di import get_container
from imagebundle.interfaces.metadata import MetadataSource
from imagebundle.orchestrator import BundleOrchestrator
from imagebundle.stages.models import BundleRequest, SnapshotHandle, SnapshotState
from imagebundle.stages.registration import build_registration_params
from imagebundle.cli.utils import EXIT_OK, config_from_args, console, setup_logging


def cmd_create(args) -> int:
    """Snapshot the instance and register a new image."""
    config = config_from_args(args)
    setup_logging(config)

    orchestrator = get_container(config).resolve(BundleOrchestrator)
    request = BundleRequest(name=args.name, description=args.description)

    mode = " [dim](dry run)[/]" if orchestrator.dry_run else ""
    with console.status(f"[cyan]Bundling instance{mode}...[/]"):
        result = orchestrator.run(instance_id=args.instance_id, request=request)

    if result.dry_run:
        console.print("[yellow]Dry run: no snapshot or image was created[/]")
    console.print(f"[green]✅ Snapshot: {result.snapshot_id}[/]")
    console.print(f"[green]✅ Image available: {result.image_id}[/]")
    return EXIT_OK


def cmd_show_params(args) -> int:
    """Print the registration command for an existing snapshot."""
    config = config_from_args(args)
    setup_logging(config)

    metadata = get_container(config).resolve(MetadataSource).load()
    snapshot = SnapshotHandle(
        id=args.snapshot_id,
        state=SnapshotState.AVAILABLE,
        device=args.root_device_name or metadata.attachment_device or config.root_device,
    )
    params = build_registration_params(
        snapshot,
        metadata,
        BundleRequest(name=args.name, description=args.description),
        architecture=config.architecture,
    )
    console.print(shlex.join(params.to_cli_args(config.aws_cli)), soft_wrap=True, markup=False)
    return EXIT_OK


def cmd_metadata(args) -> int:
    """Show the instance metadata the bundler would use."""
    config = config_from_args(args)
    setup_logging(config)

    metadata = get_container(config).resolve(MetadataSource).load()

    table = Table(title="Instance metadata")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in metadata.to_dict().items():
        table.add_row(key, value if value is not None else "[dim]-[/]")

    console.print(table)
    return EXIT_OK

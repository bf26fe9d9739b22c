"""Typer-powered command line interface for ``cloudseed``.

Commands load a YAML manifest into a :class:`~cloudseed.model.SeedConfig`,
then either render a single document to stdout or assemble a complete seed
image. Every command runs inside a structured logging operation so that
``operations.jsonl`` records what was built and why a build failed.
"""
from __future__ import annotations

import json
import os
import tempfile
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .datasources import DataSourceKind
from .exit_codes import ExitCode, exit_code_for
from .image import (
    ImageAssembler,
    ImageAssemblyError,
    IsoWriterError,
    read_image_entries,
    read_volume_label,
)
from .logging import OperationScope, StructuredLogger
from .manifest import ManifestError, load_manifest
from .model import DataSourceMismatchError, EntropyUnavailableError, SeedConfig, split_fqdn
from .passwords import PasswordHashError
from .providers import get_provider

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to cloudseed's YAML config file.",
)

DATASOURCE_OPTION = typer.Option(
    None,
    "--datasource",
    "-d",
    help="Data source to target (nocloud|ec2|gce|configdrive). Overrides the manifest.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)


class DocumentName(str, Enum):
    """Documents that ``render`` can print."""

    USER_DATA = "user-data"
    META_DATA = "meta-data"
    NETWORK_CONFIG = "network-config"


app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Cloud-init seed image builder.

        Describe a machine in a YAML manifest and produce a NoCloud, EC2, GCE
        or OpenStack ConfigDrive seed ISO ready to attach to a virtual machine.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the effective configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    assembler: ImageAssembler


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=exit_code_for(exc)) from exc
    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        assembler=ImageAssembler(),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the cloudseed version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"cloudseed {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _load_model(
    runtime: RuntimeContext,
    op: OperationScope,
    manifest: Path,
    datasource: str | None,
) -> SeedConfig:
    """Load *manifest*, translating model errors into exit codes."""
    try:
        return load_manifest(manifest, datasource=datasource, config=runtime.config)
    except (
        ManifestError,
        DataSourceMismatchError,
        PasswordHashError,
        EntropyUnavailableError,
    ) as exc:
        _command_error(op, str(exc), rc=exit_code_for(exc))


def _default_output(runtime: RuntimeContext, model: SeedConfig) -> Path:
    instance_id, _ = split_fqdn(model.fqdn)
    return runtime.config.output_dir / f"{instance_id}-{model.kind.value}.iso"


def _write_image(destination: Path, image: bytes) -> None:
    """Atomically write *image* to *destination*."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(destination.parent), prefix=f".{destination.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "wb") as handle:
            handle.write(image)
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, destination)
    finally:
        tmp_path.unlink(missing_ok=True)


@app.command()
def build(
    ctx: typer.Context,
    manifest: Path = typer.Argument(..., exists=True, dir_okay=False, help="Seed manifest (YAML)."),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        dir_okay=False,
        help="Destination ISO path (defaults to <output_dir>/<instance>-<datasource>.iso).",
    ),
    datasource: str | None = DATASOURCE_OPTION,
) -> None:
    """Assemble a seed image from MANIFEST."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "build",
        args={"manifest": manifest, "output": output, "datasource": datasource},
        target={"kind": "image"},
    ) as op:
        model = _load_model(runtime, op, manifest, datasource)
        destination = output or _default_output(runtime, model)
        try:
            image = runtime.assembler.build(model)
        except ImageAssemblyError as exc:
            _command_error(
                op,
                str(exc),
                rc=exit_code_for(exc),
                errors=[f"stage={exc.stage}", str(exc)],
            )
        try:
            _write_image(destination, image)
        except OSError as exc:
            _command_error(
                op,
                f"Unable to write image to {destination}: {exc}",
                rc=exit_code_for(exc),
            )

        label = get_provider(model.kind).volume_label
        console.print(
            f"[green]Wrote[/green] {destination} "
            f"({model.kind.value}, label {label}, {len(image)} bytes)"
        )
        op.success(
            "Seed image written.",
            changed=1,
            context={
                "path": destination,
                "datasource": model.kind.value,
                "volume_label": label,
                "fqdn": model.fqdn,
                "size": len(image),
            },
        )


@app.command()
def render(
    ctx: typer.Context,
    manifest: Path = typer.Argument(..., exists=True, dir_okay=False, help="Seed manifest (YAML)."),
    document: DocumentName = typer.Option(
        DocumentName.USER_DATA,
        "--document",
        help="Document to print.",
        case_sensitive=False,
    ),
    datasource: str | None = DATASOURCE_OPTION,
) -> None:
    """Print one rendered document for MANIFEST without building an image."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "render",
        args={"manifest": manifest, "document": document.value, "datasource": datasource},
        target={"kind": "document", "name": document.value},
    ) as op:
        model = _load_model(runtime, op, manifest, datasource)
        try:
            if document is DocumentName.USER_DATA:
                payload = model.render_user_data()
            elif document is DocumentName.META_DATA:
                payload = model.render_metadata()
            else:
                payload = model.render_network_config()
        except (TypeError, ValueError) as exc:
            _command_error(op, f"Failed to render {document.value}: {exc}")

        if payload is None:
            console.print("[yellow]No interfaces configured; network document omitted.[/yellow]")
            op.warning(
                "Network document omitted.",
                changed=0,
                context={"datasource": model.kind.value},
            )
            return
        # Raw output so the document can be piped into other tools.
        typer.echo(payload.decode("utf-8"), nl=False)
        op.success(
            f"Rendered {document.value}.",
            changed=0,
            context={"datasource": model.kind.value, "size": len(payload)},
        )


@app.command()
def inspect(
    ctx: typer.Context,
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Seed ISO image."),
    json_output: bool = JSON_OPTION,
) -> None:
    """List the volume label and files inside a seed IMAGE."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "inspect",
        args={"image": image, "json": json_output},
        target={"kind": "image", "path": image},
    ) as op:
        try:
            raw = image.read_bytes()
            label = read_volume_label(raw)
            entries = read_image_entries(raw)
        except OSError as exc:
            _command_error(op, f"Unable to read {image}: {exc}", rc=exit_code_for(exc))
        except IsoWriterError as exc:
            _command_error(op, str(exc), rc=exit_code_for(exc))

        datasource = _match_datasource(label)
        if json_output:
            console.print_json(
                data={
                    "volume_label": label,
                    "datasource": datasource,
                    "entries": {path: len(data) for path, data in entries.items()},
                }
            )
            op.success("Reported image contents as JSON.", changed=0)
            return

        console.print(f"Volume label: [bold]{label}[/bold] ({datasource or 'unknown'})")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Path", style="bold")
        table.add_column("Bytes", justify="right")
        if not entries:
            table.add_row("(none)", "")
        for path, data in entries.items():
            table.add_row(path, str(len(data)))
        console.print(table)
        op.success("Reported image contents.", changed=0, context={"entries": len(entries)})


def _match_datasource(label: str) -> str | None:
    for kind in DataSourceKind:
        if get_provider(kind).volume_label.lower() == label.lower():
            return kind.value
    return None


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


__all__ = ["app"]

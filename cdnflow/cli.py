from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from cdnflow.config import (
    CdnFlowConfig,
    DEFAULT_LOG_FILE,
    load_config,
    save_config,
)
from cdnflow.deploy import build_remote, deploy, load_remote_state, plan_deployment, prepare_config
from cdnflow.errors import CdnFlowError
from cdnflow.models import UploadStatus
from cdnflow.state_db import LAST_DEPLOY_KEY, get_meta
from cdnflow.version_log import VersionLog


app = typer.Typer(help="Deploy build output to a Qiniu bucket behind a CDN")
console = Console()
logger = logging.getLogger("cdnflow")


def _configure_logging(*, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


def _render_status(status: UploadStatus) -> None:
    for title, records in status.buckets():
        table = Table(title=f"{title}: {len(records)}", title_justify="left")
        table.add_column("Filename")
        table.add_column("Hash")
        for record in records:
            table.add_row(record.filename, record.hash)
        console.print(table)


def _load_runtime_config(*, dry: bool = False, silent: bool = False) -> CdnFlowConfig:
    config = load_config()
    if dry:
        config = replace(config, dry=True)
    if silent:
        config = replace(config, silent=True)
    return config


def _format_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@app.command()
def init(
    bucket: str,
    cdn_host: str,
    output_dir: str,
    dir: str = typer.Option("", "--dir", help="Key prefix inside the bucket."),
    log_file: str = typer.Option(
        DEFAULT_LOG_FILE,
        "--log-file",
        help="Name of the version log stored in the bucket. Empty disables history.",
    ),
) -> None:
    """Write a .cdnflow.json config in the current directory."""
    root = Path.cwd().resolve()
    config = CdnFlowConfig(
        access_key="",
        secret_key="",
        bucket=bucket,
        cdn_host=cdn_host,
        output_dir=output_dir,
        dir=dir.strip("/"),
        log_file=log_file,
    )
    path = save_config(config, root)
    console.print(f"[green]Initialized cdnflow[/green] at {root}")
    console.print(f"Config: {path}")
    console.print(
        "[yellow]Credentials were left empty.[/yellow] "
        "Set QINIU_ACCESS_KEY / QINIU_SECRET_KEY or edit the config file."
    )


async def _deploy_async(*, dry: bool, silent: bool) -> int:
    try:
        config = _load_runtime_config(dry=dry, silent=silent)
        if config.silent and not logger.isEnabledFor(logging.DEBUG):
            logging.getLogger().setLevel(logging.WARNING)
        result = await deploy(config, console=None if config.silent else console)
    except KeyboardInterrupt:
        console.print("[yellow]Deploy interrupted.[/yellow] Remote transfer may be partial.")
        return 130
    except (FileNotFoundError, CdnFlowError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    except Exception as exc:
        console.print(f"[red]Deploy failed:[/red] {exc}")
        return 1

    if not config.silent:
        _render_status(result.status)
    if result.dry:
        console.print("[yellow]Dry run:[/yellow] nothing was uploaded or deleted.")
    elif not result.status.upload and not result.status.overwrite and not result.status.clean:
        console.print("[green]Remote already matches the build output.[/green]")
    if result.hash_mismatches:
        console.print(f"[yellow]Hash mismatches:[/yellow] {len(result.hash_mismatches)}")
    for error in result.cdn_errors:
        console.print(f"[yellow]CDN {error}[/yellow]")
    console.print(
        f"Version {_format_timestamp(result.timestamp)} | {len(result.log_records)} version(s) retained"
    )
    return 0


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    _configure_logging(verbose=verbose)


@app.command(name="deploy")
def deploy_command(
    dry: bool = typer.Option(False, "--dry", help="Plan and log every action without executing it."),
    silent: bool = typer.Option(False, "--silent", help="Only report warnings and errors."),
) -> None:
    """Upload changed files, clean expired ones and update the version log."""
    raise typer.Exit(code=asyncio.run(_deploy_async(dry=dry, silent=silent)))


async def _status_async() -> int:
    try:
        config = prepare_config(load_config())
        plan = await plan_deployment(config, build_remote(config))
    except KeyboardInterrupt:
        console.print("[yellow]Status interrupted.[/yellow]")
        return 130
    except (FileNotFoundError, CdnFlowError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    except Exception as exc:
        console.print(f"[red]Status failed:[/red] {exc}")
        return 1

    _render_status(plan.status)
    console.print(
        f"{len(plan.log_records)} of {len(plan.log)} version(s) would be retained."
    )
    return 0


@app.command()
def status() -> None:
    """Show how the build output compares with the bucket, without changing anything."""
    raise typer.Exit(code=asyncio.run(_status_async()))


@app.command()
def history() -> None:
    """Print the deployment versions recorded in the bucket."""
    try:
        config = prepare_config(load_config())
        if not config.log_file:
            console.print("[yellow]Version log is disabled (`log_file` is empty).[/yellow]")
            raise typer.Exit(code=0)
        state = load_remote_state(config, build_remote(config))
    except (FileNotFoundError, CdnFlowError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    log = VersionLog(state.history)
    if not len(log):
        console.print(f"No versions recorded in {config.url_for(config.log_file)}")
        raise typer.Exit(code=0)

    table = Table(title=f"Versions ({len(log)})", title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("Deployed")
    table.add_column("Upload", justify="right")
    table.add_column("Omit", justify="right")
    for index, record in enumerate(log.get_versions()):
        table.add_row(
            str(index),
            _format_timestamp(record.timestamp),
            str(len(record.upload)),
            str(len(record.omit)),
        )
    console.print(table)

    last_deploy = asyncio.run(get_meta(config.state_db_path, LAST_DEPLOY_KEY))
    if last_deploy is not None:
        console.print(f"Last deploy from this directory: {_format_timestamp(int(last_deploy))}")

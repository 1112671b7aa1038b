"""CLI commands for the workspace and its snapshots: init, save, load, export, import-json, reset."""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from prioritizer.cli_common import error_text, fail, open_session, run
from prioritizer.core import (
    PRIORITIZER_DIR_NAME,
    SNAPSHOT_FILENAME,
    RecordStore,
    read_config,
    write_config,
)
from prioritizer.export import export_csv, export_filename, export_json, import_json
from prioritizer.persistence import LocalSnapshot, PersistenceCoordinator
from prioritizer.scoring import DEFAULT_SCHEME, SCHEMES


@click.command()
@click.option("--name", default=None, help="Workspace name (default: directory name)")
@click.option("--scheme", type=click.Choice(sorted(SCHEMES)), default=DEFAULT_SCHEME, help="Scoring scheme")
@click.option("--empty", is_flag=True, help="Start without the sample records")
def init(name: str | None, scheme: str, empty: bool) -> None:
    """Initialize .prioritizer/ in the current directory."""
    cwd = Path.cwd()
    project_dir = cwd / PRIORITIZER_DIR_NAME

    if project_dir.exists():
        config = read_config(project_dir)
        click.echo(f"{PRIORITIZER_DIR_NAME}/ already exists in {cwd}")
        click.echo(f"  Scheme: {config.get('scheme', DEFAULT_SCHEME)}")
        return

    name = name or cwd.name
    project_dir.mkdir()
    write_config(project_dir, {"name": name, "version": 1, "scheme": scheme})

    local = LocalSnapshot(project_dir / SNAPSHOT_FILENAME)
    coordinator = PersistenceCoordinator(RecordStore(scheme=scheme), local=local)
    if empty:
        local.write(coordinator.snapshot())
    else:
        coordinator.reset()

    click.echo(f"Initialized {PRIORITIZER_DIR_NAME}/ in {cwd}")
    click.echo(f"  Name: {name}")
    click.echo(f"  Scheme: {scheme}")
    click.echo(f"  Records: {len(coordinator.store)}")
    click.echo("\nNext: prioritizer list")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def save(as_json: bool) -> None:
    """Write the local state to remote storage now."""

    async def _save() -> tuple[bool, str]:
        async with open_session(load_remote=False) as session:
            if session.coordinator.remote is None:
                msg = "No remote storage configured (set storage_url or storage_path in config.json)"
                raise ValueError(msg)
            ok = await session.coordinator.save_now(force=True)
            return ok, session.coordinator.status

    try:
        ok, status = run(_save())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps({"saved": ok, "status": status}))
    elif ok:
        click.echo(status)
    if not ok:
        sys.exit(1)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def load(as_json: bool) -> None:
    """Replace the local state with the remote snapshot, if it has one."""

    async def _load() -> tuple[bool, str, int]:
        async with open_session(load_remote=False) as session:
            if session.coordinator.remote is None:
                msg = "No remote storage configured (set storage_url or storage_path in config.json)"
                raise ValueError(msg)
            ok = await session.coordinator.load_remote()
            return ok, session.coordinator.status, len(session.store)

    try:
        ok, status, count = run(_load())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps({"loaded": ok, "status": status, "records": count}))
    elif ok:
        click.echo(f"{status} {count} record(s).")
    if not ok:
        sys.exit(1)


@click.command("export")
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json", help="Output format")
@click.option("--output", "-o", default=None, help="Output file, or - for stdout (default: dated file in cwd)")
def export_cmd(fmt: str, output: str | None) -> None:
    """Export the scored backlog, highest score first."""

    async def _export() -> str:
        async with open_session(load_remote=False) as session:
            records = session.store.records()
            weights = session.coordinator.weights
            return export_json(records, weights) if fmt == "json" else export_csv(records, weights)

    content = run(_export())
    if output == "-":
        click.echo(content, nl=False)
        return
    path = Path(output or export_filename(fmt))
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        fail(f"Could not write {path}: {e}")
    click.echo(f"Exported to {path}")


@click.command("import-json")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def import_json_cmd(path: Path, as_json: bool) -> None:
    """Replace records and weights with those in a JSON export."""
    try:
        document = import_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        fail(f"Could not import {path}: {e}", as_json=as_json)

    async def _import() -> int:
        async with open_session() as session:
            session.coordinator.import_snapshot(document)
            return len(session.store)

    try:
        count = run(_import())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps({"records": count, "path": str(path)}))
    else:
        click.echo(f"Imported {count} record(s) from {path}")


@click.command()
@click.confirmation_option(prompt="Replace all records and weights with the defaults?")
def reset() -> None:
    """Restore the sample records, default weights and light theme."""

    async def _reset() -> str:
        async with open_session() as session:
            session.coordinator.reset()
            return session.coordinator.status

    click.echo(run(_reset()))


def register(cli: click.Group) -> None:
    """Register workspace and snapshot commands with the CLI group."""
    cli.add_command(init)
    cli.add_command(save)
    cli.add_command(load)
    cli.add_command(export_cmd)
    cli.add_command(import_json_cmd)
    cli.add_command(reset)

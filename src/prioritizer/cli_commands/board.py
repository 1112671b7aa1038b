"""CLI commands for the kanban board: boards, lists, use-list, import, push, reorder."""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any

import click

from prioritizer.cli_common import error_text, fail, get_card_api, get_project_dir, open_session, ranked, run
from prioritizer.core import read_config, write_config
from prioritizer.importer import import_list
from prioritizer.ordering import OrderSynchronizer
from prioritizer.reconcile import RemoteSyncReconciler, SyncValidationError
from prioritizer.remote import RemoteCallError


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def boards(as_json: bool) -> None:
    """List the boards visible to the configured credentials."""

    async def _boards() -> list[dict[str, str]]:
        api = get_card_api(read_config(get_project_dir()))
        try:
            return [{"id": b.id, "name": b.name} for b in await api.list_boards()]
        finally:
            await api.aclose()

    try:
        rows = run(_boards())
    except RemoteCallError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(rows, indent=2))
        return
    for row in rows:
        click.echo(f"{row['id']}  {row['name']}")


@click.command()
@click.argument("board_id", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def lists(board_id: str | None, as_json: bool) -> None:
    """List the lists on a board (default: the configured board)."""
    config = read_config(get_project_dir())
    board = board_id or config.get("board_id")
    if not board:
        fail("No board given and none configured (see 'prioritizer use-list --board')", as_json=as_json)

    async def _lists() -> list[dict[str, str]]:
        api = get_card_api(config)
        try:
            return [{"id": c.id, "name": c.name, "board_id": c.board_id} for c in await api.list_lists(board)]
        finally:
            await api.aclose()

    try:
        rows = run(_lists())
    except RemoteCallError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(rows, indent=2))
        return
    current = config.get("list_id")
    for row in rows:
        mark = "*" if row["id"] == current else " "
        click.echo(f"{mark} {row['id']}  {row['name']}")


@click.command("use-list")
@click.argument("list_id")
@click.option("--board", "board_id", default=None, help="Board the list belongs to")
def use_list(list_id: str, board_id: str | None) -> None:
    """Set the destination list for new cards."""
    project_dir = get_project_dir()
    config = read_config(project_dir)
    config["list_id"] = list_id
    if board_id:
        config["board_id"] = board_id
    write_config(project_dir, config)
    click.echo(f"Destination list: {list_id}")


@click.command("import")
@click.option("--list", "list_id", default=None, help="List to import from (default: the configured list)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def import_cmd(list_id: str | None, as_json: bool) -> None:
    """Import cards from a board list. Linked records are refreshed in place."""

    async def _import() -> dict[str, Any]:
        async with open_session() as session:
            target = list_id or session.config.get("list_id")
            if not target:
                msg = "No list given and none configured (see 'prioritizer use-list')"
                raise ValueError(msg)
            api = get_card_api(session.config)
            try:
                report = await import_list(session.store, api, target)
            finally:
                await api.aclose()
            return dict(report.to_dict()) | {"status": report.status_line()}

    try:
        result = run(_import())
    except (ValueError, RemoteCallError) as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(result, indent=2))
    else:
        click.echo(result["status"])


@click.command()
@click.option("--list", "list_id", default=None, help="Destination list for new cards (default: the configured list)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def push(list_id: str | None, as_json: bool) -> None:
    """Create or update a card for every selected record, highest score first."""

    async def _push() -> dict[str, Any]:
        async with open_session() as session:
            target = list_id or session.config.get("list_id")
            chosen = [s.record for s in ranked(session) if s.record.selected]
            api = get_card_api(session.config)
            try:
                reconciler = RemoteSyncReconciler(session.store, api, weights=session.coordinator.weights)
                report = await reconciler.push(chosen, list_id=target)
            finally:
                await api.aclose()
            return dict(report.to_dict()) | {"status": report.status_line()}

    try:
        result = run(_push())
    except SyncValidationError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(result, indent=2))
    else:
        click.echo(result["status"])
    if result["failed"]:
        sys.exit(1)


@click.command()
@click.option("--sort", "sort_key", default="score", help="Sort key: score, effort, value, name or a factor")
@click.option("--asc", "ascending", is_flag=True, help="Sort ascending (default: descending)")
@click.option("--selected", "selected_only", is_flag=True, help="Only reorder cards of selected records")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def reorder(sort_key: str, ascending: bool, selected_only: bool, as_json: bool) -> None:
    """Reorder linked cards on the board to match the local ranking."""

    async def _reorder() -> dict[str, Any]:
        async with open_session() as session:
            items = ranked(session, sort_key=sort_key, direction="asc" if ascending else "desc")
            if selected_only:
                items = [s for s in items if s.record.selected]
            api = get_card_api(session.config)
            try:
                report = await OrderSynchronizer(api).apply(items)
            finally:
                await api.aclose()
            return dict(report.to_dict()) | {"status": report.status_line()}

    try:
        result = run(_reorder())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(result, indent=2))
    else:
        click.echo(result["status"])
    if not result["completed"]:
        sys.exit(1)


def register(cli: click.Group) -> None:
    """Register board commands with the CLI group."""
    cli.add_command(boards)
    cli.add_command(lists)
    cli.add_command(use_list)
    cli.add_command(import_cmd)
    cli.add_command(push)
    cli.add_command(reorder)

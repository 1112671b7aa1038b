"""CLI commands for record CRUD: add, show, list, update, remove, select, deselect."""

from __future__ import annotations

import json as json_mod
from typing import Any

import click

from prioritizer.cli_common import error_text, fail, open_session, parse_assignments, ranked, run
from prioritizer.scoring import score_record


def _factor_line(factors: dict[str, int], keys: list[str]) -> str:
    return " ".join(f"{k}={factors[k]}" for k in keys if k in factors)


@click.command()
@click.argument("name")
@click.option("--notes", "-n", default="", help="Free-text notes")
@click.option("--factor", "-f", multiple=True, help="Factor value as key=value (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def add(name: str, notes: str, factor: tuple[str, ...], as_json: bool) -> None:
    """Add a use case to the backlog."""
    factors = parse_assignments(factor, as_json=as_json)

    async def _add() -> dict[str, Any]:
        async with open_session() as session:
            record = session.store.create(name, notes, factors)
            return dict(score_record(record, session.coordinator.weights).to_dict())

    try:
        result = run(_add())
    except (KeyError, ValueError) as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(result, indent=2, default=str))
    else:
        click.echo(f"Added {result['id']}: {result['name']} (score {result['score']})")


@click.command()
@click.argument("record_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(record_id: str, as_json: bool) -> None:
    """Show a record with its score breakdown."""

    async def _show() -> tuple[dict[str, Any], list[tuple[str, str]]]:
        async with open_session(load_remote=False) as session:
            record = session.find(record_id)
            scored = score_record(record, session.coordinator.weights)
            labels = [(f.key, f.label) for f in session.store.scheme.factors]
            return dict(scored.to_dict()), labels

    try:
        data, labels = run(_show())
    except KeyError as e:
        fail(error_text(e), as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps(data, indent=2, default=str))
        return

    click.echo(f"ID:       {data['id']}")
    click.echo(f"Name:     {data['name']}")
    click.echo(f"Score:    {data['score']} ({data['color']})")
    click.echo(f"Effort:   {data['effort']}")
    click.echo(f"Value:    {data['value']}")
    click.echo(f"Selected: {'yes' if data['selected'] else 'no'}")
    ref = data["remote_ref"]
    if ref:
        label = f"#{ref['short_id']}" if ref.get("short_id") is not None else ref.get("short_link") or ref["card_id"]
        click.echo(f"Card:     {label} ({ref['card_id']})")
    click.echo("\n--- Factors ---")
    for key, label in labels:
        if key in data["factors"]:
            click.echo(f"  {label:<14} {data['factors'][key]}")
    if data["notes"]:
        click.echo(f"\n--- Notes ---\n{data['notes']}")


@click.command("list")
@click.option("--search", "-s", "query", default="", help="Filter by text in name or notes")
@click.option("--sort", "sort_key", default="score", help="Sort key: score, effort, value, name or a factor")
@click.option("--asc", "ascending", is_flag=True, help="Sort ascending (default: descending)")
@click.option("--selected", "selected_only", is_flag=True, help="Only selected records")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_records(query: str, sort_key: str, ascending: bool, selected_only: bool, as_json: bool) -> None:
    """List the backlog ranked by score."""

    async def _list() -> tuple[list[dict[str, Any]], list[str]]:
        async with open_session() as session:
            scored = ranked(session, sort_key=sort_key, direction="asc" if ascending else "desc", query=query)
            if selected_only:
                scored = [s for s in scored if s.record.selected]
            return [dict(s.to_dict()) for s in scored], session.store.scheme.factor_keys

    try:
        rows, keys = run(_list())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps(rows, indent=2, default=str))
        return
    for row in rows:
        mark = "*" if row["selected"] else " "
        linked = " [card]" if row["remote_ref"] else ""
        click.echo(f"{mark} {row['score']:>3}  {row['id']}  {row['name']}{linked}  ({_factor_line(row['factors'], keys)})")
    click.echo(f"\n{len(rows)} record(s)")


@click.command()
@click.argument("record_id")
@click.option("--name", default=None, help="New name")
@click.option("--notes", "-n", default=None, help="New notes")
@click.option("--factor", "-f", multiple=True, help="Factor value as key=value (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def update(record_id: str, name: str | None, notes: str | None, factor: tuple[str, ...], as_json: bool) -> None:
    """Update a record's name, notes or factor values."""
    patch: dict[str, Any] = {}
    if name is not None:
        patch["name"] = name
    if notes is not None:
        patch["notes"] = notes
    if factor:
        patch["factors"] = parse_assignments(factor, as_json=as_json)

    async def _update() -> dict[str, Any]:
        async with open_session() as session:
            record = session.store.update(session.find(record_id).id, **patch)
            return dict(score_record(record, session.coordinator.weights).to_dict())

    try:
        result = run(_update())
    except (KeyError, ValueError) as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(result, indent=2, default=str))
    else:
        click.echo(f"Updated {result['id']}: {result['name']} (score {result['score']})")


@click.command()
@click.argument("record_ids", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def remove(record_ids: tuple[str, ...], as_json: bool) -> None:
    """Delete records locally. Linked cards stay on the board."""

    async def _remove() -> list[str]:
        async with open_session() as session:
            targets = [session.find(r).id for r in record_ids]
            for target in targets:
                session.store.delete(target)
            return targets

    try:
        removed = run(_remove())
    except KeyError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps({"removed": removed}))
    else:
        for record_id in removed:
            click.echo(f"Removed {record_id}")


def _selection(record_ids: tuple[str, ...], *, select: bool, every: bool, as_json: bool) -> None:
    async def _apply() -> tuple[int, int]:
        async with open_session() as session:
            if every and not select:
                changed = session.store.clear_selection()
            elif every:
                changed = session.store.select_all()
            else:
                changed = 0
                for ref in record_ids:
                    record = session.find(ref)
                    if record.selected != select:
                        session.store.set_selected(record.id, select)
                        changed += 1
            return changed, len(session.store.selected())

    if not record_ids and not every:
        fail("Give one or more record ids, or --all", as_json=as_json)
    try:
        changed, total = run(_apply())
    except KeyError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps({"changed": changed, "selected": total}))
    else:
        click.echo(f"{'Selected' if select else 'Deselected'} {changed} record(s); {total} now selected")


@click.command()
@click.argument("record_ids", nargs=-1)
@click.option("--all", "every", is_flag=True, help="Select every record")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def select(record_ids: tuple[str, ...], every: bool, as_json: bool) -> None:
    """Mark records for the next push."""
    _selection(record_ids, select=True, every=every, as_json=as_json)


@click.command()
@click.argument("record_ids", nargs=-1)
@click.option("--all", "every", is_flag=True, help="Clear the whole selection")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def deselect(record_ids: tuple[str, ...], every: bool, as_json: bool) -> None:
    """Unmark records."""
    _selection(record_ids, select=False, every=every, as_json=as_json)


def register(cli: click.Group) -> None:
    """Register record commands with the CLI group."""
    cli.add_command(add)
    cli.add_command(show)
    cli.add_command(list_records)
    cli.add_command(update)
    cli.add_command(remove)
    cli.add_command(select)
    cli.add_command(deselect)

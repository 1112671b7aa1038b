"""CLI commands for scoring configuration: weights, preset, theme."""

from __future__ import annotations

import json as json_mod
from typing import Any

import click

from prioritizer.cli_common import error_text, fail, open_session, parse_assignments, run
from prioritizer.persistence import THEMES
from prioritizer.scoring import PRESETS, WeightConfig, apply_preset


def _echo_weights(data: dict[str, Any], labels: dict[str, str]) -> None:
    click.echo(f"Scheme: {data['scheme']}")
    for key, value in data["weights"].items():
        click.echo(f"  {labels.get(key, key):<14} {value:g}")
    click.echo(f"  {'Total':<14} {sum(data['weights'].values()):g}")


@click.command()
@click.option("--set", "assignments", multiple=True, help="Weight as key=value (repeatable)")
@click.option("--reset", "reset_defaults", is_flag=True, help="Restore the scheme's default weights")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def weights(assignments: tuple[str, ...], reset_defaults: bool, as_json: bool) -> None:
    """Show or change factor weights. Values are clamped to the scheme's range."""
    pairs = parse_assignments(assignments, as_json=as_json)

    async def _weights() -> tuple[dict[str, Any], dict[str, str]]:
        async with open_session() as session:
            scheme = session.store.scheme
            config = WeightConfig.defaults(scheme.name) if reset_defaults else session.coordinator.weights
            for key, value in pairs.items():
                config = config.with_weight(key, value)
            if reset_defaults or pairs:
                session.coordinator.set_weights(config)
            labels = {f.key: f.label for f in scheme.factors}
            return dict(session.coordinator.weights.to_dict()), labels

    try:
        data, labels = run(_weights())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)
    if as_json:
        click.echo(json_mod.dumps(data, indent=2))
    else:
        _echo_weights(data, labels)


@click.command()
@click.argument("name", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def preset(name: str | None, as_json: bool) -> None:
    """Apply a named weight preset, or list the presets for the current scheme."""

    async def _preset() -> tuple[dict[str, Any], dict[str, str], list[str]]:
        async with open_session() as session:
            scheme = session.store.scheme
            if name is not None:
                session.coordinator.set_weights(apply_preset(session.coordinator.weights, name))
            labels = {f.key: f.label for f in scheme.factors}
            return dict(session.coordinator.weights.to_dict()), labels, list(PRESETS.get(scheme.name, {}))

    try:
        data, labels, available = run(_preset())
    except ValueError as e:
        fail(error_text(e), as_json=as_json)

    if name is None:
        if as_json:
            click.echo(json_mod.dumps({"scheme": data["scheme"], "presets": available}))
        else:
            for preset_name in available:
                click.echo(preset_name)
        return
    if as_json:
        click.echo(json_mod.dumps(data, indent=2))
    else:
        click.echo(f"Applied preset '{name}'")
        _echo_weights(data, labels)


@click.command()
@click.argument("mode", required=False, type=click.Choice(sorted(THEMES)))
def theme(mode: str | None) -> None:
    """Show or set the stored display theme."""

    async def _theme() -> str:
        async with open_session() as session:
            if mode is not None:
                session.coordinator.set_theme(mode)
            return session.coordinator.theme

    click.echo(run(_theme()))


def register(cli: click.Group) -> None:
    """Register scoring configuration commands with the CLI group."""
    cli.add_command(weights)
    cli.add_command(preset)
    cli.add_command(theme)

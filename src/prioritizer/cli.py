"""CLI for the use case prioritizer.

Convention-based: discovers .prioritizer/ by walking up from cwd.

Usage:
    prioritizer init                             # Initialize .prioritizer/ in cwd
    prioritizer add "Churn model" -f impact=4    # Add a use case
    prioritizer list --sort=value                # Ranked backlog
    prioritizer update <id> -f risk=1            # Change factor values
    prioritizer select <id> <id>                 # Mark records for push
    prioritizer weights --set impact=30          # Tune factor weights
    prioritizer preset "Ops Quick Wins"          # Apply a weight preset
    prioritizer boards                           # Boards visible to TRELLO_KEY/TOKEN
    prioritizer use-list <list-id>               # Destination list for new cards
    prioritizer push                             # Create/update cards for the selection
    prioritizer reorder                          # Replay the ranking onto the board
    prioritizer import                           # Pull cards from the list
    prioritizer save / load                      # Remote snapshot storage
    prioritizer export --format=csv              # Scored export
"""

from __future__ import annotations

import click

from prioritizer import __version__
from prioritizer.cli_commands import board, records, storage, weights


@click.group()
@click.version_option(version=__version__, prog_name="prioritizer")
def cli() -> None:
    """Prioritizer: score a use case backlog and mirror it onto a kanban board."""


for _module in (storage, records, weights, board):
    _module.register(cli)


if __name__ == "__main__":
    cli()

"""Repository commands: status, sync."""

from __future__ import annotations

import click
from rich.table import Table

from ..session import ErrorResponse, StatusAction, SyncAction
from ._common import console, fail, open_session, report


def register_repo_commands(main: click.Group) -> None:
    """Register status and sync."""

    @main.command("status")
    @click.option("--home", default=None, type=click.Path())
    @click.option("--repo", default=None, help="Repository path (inside the allowed base).")
    def status(home, repo):
        """Show the working tree and encryption state."""
        session = open_session(home, repo)
        result = session.handle(StatusAction())
        if isinstance(result, ErrorResponse):
            fail(result)

        table = Table(show_header=False, box=None)
        for key, value in result.data.items():
            table.add_row(f"[dim]{key}[/]", str(value))
        console.print(table)

    @main.command("sync")
    @click.option("--home", default=None, type=click.Path())
    @click.option("--repo", default=None, help="Repository path (inside the allowed base).")
    def sync(home, repo):
        """Pull from origin (remote wins on conflicts), then push."""
        session = open_session(home, repo)
        result = session.handle(SyncAction())
        report(result)
        console.print(f"  [dim]outcome: {result.data['outcome']}[/]")

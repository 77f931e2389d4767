"""Encryption commands: status, enable, disable."""

from __future__ import annotations

import click

from ..session import (
    DisableEncryptionAction,
    EnableEncryptionAction,
    EncryptionStatusAction,
)
from ._common import console, open_session, report


def register_encryption_commands(main: click.Group) -> None:
    """Register the encryption command group."""

    @main.group()
    def encryption():
        """At-rest encryption of the bookmarks file."""

    @encryption.command("status")
    @click.option("--home", default=None, type=click.Path())
    @click.option("--repo", default=None)
    def encryption_status(home, repo):
        """Show whether encryption is enabled and supported here."""
        session = open_session(home, repo)
        result = session.handle(EncryptionStatusAction())
        report(result)
        enabled = "[green]enabled[/]" if result.data["enabled"] else "[yellow]disabled[/]"
        supported = "yes" if result.data["supported"] else "[red]no[/]"
        console.print(f"  encryption: {enabled}  supported: {supported}")

    @encryption.command("enable")
    @click.option("--home", default=None, type=click.Path())
    @click.option("--repo", default=None)
    def encryption_enable(home, repo):
        """Generate a key and encrypt the bookmarks file in place."""
        session = open_session(home, repo)
        report(session.handle(EnableEncryptionAction()))

    @encryption.command("disable")
    @click.option("--home", default=None, type=click.Path())
    @click.option("--repo", default=None)
    def encryption_disable(home, repo):
        """Decrypt the bookmarks file in place and delete the key."""
        session = open_session(home, repo)
        report(session.handle(DisableEncryptionAction()))

"""Native messaging host command."""

from __future__ import annotations

from pathlib import Path

import click

from ..config import load_config
from ..host import run_host, setup_logging
from ..session import Session


def register_host_commands(main: click.Group) -> None:
    """Register the host command."""

    @main.command("host")
    @click.option("--home", default=None, type=click.Path(), help="WebTags home directory.")
    @click.argument("origin", required=False)
    def host(home, origin):
        """Run the native messaging host on stdin/stdout.

        The browser passes the calling extension origin as ORIGIN.
        """
        config = load_config(Path(home) if home else None)
        setup_logging(config)
        run_host(Session(config))

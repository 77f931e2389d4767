"""Shared helpers for the CLI command modules."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from ..config import HostConfig, load_config
from ..session import ErrorResponse, InitAction, Response, Session

console = Console()


def open_session(home: Optional[str], repo: Optional[str]) -> Session:
    """Create a session and run ``init`` against ``repo``.

    Exits with status 1 if initialisation fails.
    """
    config: HostConfig = load_config(Path(home) if home else None)
    session = Session(config)
    result = session.handle(InitAction(repo_path=repo))
    if isinstance(result, ErrorResponse):
        fail(result)
    return session


def fail(response: ErrorResponse) -> None:
    console.print(f"[bold red]Error[/] [dim]{response.code}[/]: {response.message}")
    sys.exit(1)


def report(response: Response) -> None:
    """Print a response and exit non-zero on error."""
    if isinstance(response, ErrorResponse):
        fail(response)
    console.print(f"[green]{response.message}[/]")

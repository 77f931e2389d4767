"""
WebTags CLI.

Command groups live in their own modules and are attached to the
main Click group through register functions.

Entry point: webtags.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="webtags")
def main():
    """WebTags: git-backed bookmarks and tags."""


from .host_cmd import register_host_commands
from .document import register_document_commands
from .repo import register_repo_commands
from .encryption_cmd import register_encryption_commands

register_host_commands(main)
register_document_commands(main)
register_repo_commands(main)
register_encryption_commands(main)

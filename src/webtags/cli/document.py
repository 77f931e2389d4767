"""Offline document commands: validate, tags."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.tree import Tree

from ..errors import WebTagsError
from ..models import Document
from ._common import console


def _load(file: str) -> Document:
    try:
        return Document.decode(Path(file).read_text(encoding="utf-8"))
    except (OSError, WebTagsError) as exc:
        console.print(f"[bold red]Cannot load {file}:[/] {exc}")
        sys.exit(1)


def register_document_commands(main: click.Group) -> None:
    """Register validate and tags."""

    @main.command("validate")
    @click.argument("file", type=click.Path(exists=True, dir_okay=False))
    def validate(file):
        """Check a plaintext bookmarks file against the validation rules."""
        document = _load(file)
        try:
            document.validate()
        except WebTagsError as exc:
            console.print(f"[bold red]Invalid[/] ({getattr(exc, 'rule', exc.code)}): {exc}")
            sys.exit(1)
        console.print(f"[green]Valid[/]: {document.summary()}")

    @main.command("tags")
    @click.argument("file", type=click.Path(exists=True, dir_okay=False))
    def tags(file):
        """Print the tag hierarchy of a plaintext bookmarks file."""
        document = _load(file)
        hierarchy = document.tag_hierarchy()
        by_id = {tag.id: tag for tag in document.tags()}

        tree = Tree("[bold]tags[/]")
        drawn: set[str] = set()

        def add(node: Tree, tag_id: str) -> None:
            if tag_id in drawn:
                return
            drawn.add(tag_id)
            tag = by_id[tag_id]
            branch = node.add(f"[cyan]{escape(tag.attributes.name)}[/] [dim]{escape(tag.id)}[/]")
            for child in hierarchy.get(tag_id, []):
                if child in by_id:
                    add(branch, child)

        for tag in by_id.values():
            if tag.parent_id is None or tag.parent_id not in by_id:
                add(tree, tag.id)
        # tags caught in a parent cycle have no root
        for tag in by_id.values():
            if tag.id not in drawn:
                add(tree, tag.id)

        console.print(tree)
        for tag in by_id.values():
            console.print(f"  {escape(' / '.join(document.tag_breadcrumb(tag.id)))}")

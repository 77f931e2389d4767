"""
Pydantic models for the bookmark document.

The document is JSON:API shaped: bookmarks live in ``data``, tags
usually in ``included``. Every resource is exactly one of two kinds,
a bookmark or a tag, discriminated by its ``type`` field.

Tag parents are stored as identifier references only. Hierarchy and
breadcrumb queries build a fresh id index per call and tolerate
cycles in the parent graph.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Iterable, Iterator, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from .errors import DecodeError, KindMismatchError, ValidationError

FORMAT_VERSION = "1.1"
MAX_URL_LENGTH = 2048
MAX_TITLE_LENGTH = 500
MAX_TAG_NAME_LENGTH = 100
ALLOWED_SCHEMES = ("http", "https")


# ---------------------------------------------------------------------------
# Relationship plumbing
# ---------------------------------------------------------------------------


class ResourceIdentifier(BaseModel):
    """Reference to another resource by type and id."""

    type: str = "tag"
    id: str


class RelationshipData(BaseModel):
    data: list[ResourceIdentifier] = Field(default_factory=list)


class ParentRelationship(BaseModel):
    data: Optional[ResourceIdentifier] = None


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class BookmarkAttributes(BaseModel):
    url: str
    title: str
    created: datetime
    modified: Optional[datetime] = None
    notes: Optional[str] = None


class BookmarkRelationships(BaseModel):
    tags: Optional[RelationshipData] = None


class BookmarkResource(BaseModel):
    """A saved URL with optional tag references."""

    type: Literal["bookmark"] = "bookmark"
    id: str
    attributes: BookmarkAttributes
    relationships: Optional[BookmarkRelationships] = None

    @property
    def tag_ids(self) -> list[str]:
        if self.relationships is None or self.relationships.tags is None:
            return []
        return [ref.id for ref in self.relationships.tags.data]


class TagAttributes(BaseModel):
    name: str
    color: Optional[str] = None
    description: Optional[str] = None


class TagRelationships(BaseModel):
    parent: Optional[ParentRelationship] = None


class TagResource(BaseModel):
    """A named label, optionally nested under a parent tag."""

    type: Literal["tag"] = "tag"
    id: str
    attributes: TagAttributes
    relationships: Optional[TagRelationships] = None

    @property
    def parent_id(self) -> Optional[str]:
        if self.relationships is None or self.relationships.parent is None:
            return None
        ref = self.relationships.parent.data
        return ref.id if ref is not None else None


Resource = Annotated[
    Union[BookmarkResource, TagResource], Field(discriminator="type")
]


class JsonApiVersion(BaseModel):
    version: str


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_url(url: str) -> None:
    if not url:
        raise ValidationError("url_empty", "URL cannot be empty")
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(
            "url_too_long", f"URL too long (max {MAX_URL_LENGTH} characters)"
        )

    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise ValidationError("url_invalid", f"Invalid URL format: {exc}") from exc

    if not parsed.scheme:
        raise ValidationError("url_invalid", "Invalid URL format: not an absolute URL")
    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ValidationError(
            "url_scheme",
            f"Unsafe URL scheme '{parsed.scheme}'. Only http and https are allowed.",
        )
    if not parsed.netloc:
        raise ValidationError("url_invalid", "Invalid URL format: missing host")


def _validate_resource(resource: Union[BookmarkResource, TagResource]) -> None:
    if isinstance(resource, BookmarkResource):
        _validate_url(resource.attributes.url)
        if len(resource.attributes.title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                "title_too_long",
                f"Bookmark title too long (max {MAX_TITLE_LENGTH} characters)",
            )
    elif isinstance(resource, TagResource):
        name = resource.attributes.name
        if not name or len(name) > MAX_TAG_NAME_LENGTH:
            raise ValidationError(
                "tag_name_length",
                f"Tag name must be between 1-{MAX_TAG_NAME_LENGTH} characters",
            )
        if "<" in name or ">" in name:
            raise ValidationError(
                "tag_name_html", "Tag name cannot contain HTML characters"
            )
    else:
        raise TypeError(f"Unknown resource kind: {type(resource).__name__}")


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Document(BaseModel):
    """The full bookmark collection, persisted and synced as one unit.

    Every write replaces the whole document; there are no partial updates.
    """

    jsonapi: JsonApiVersion
    data: list[Resource]
    included: Optional[list[Resource]] = None

    @classmethod
    def empty(cls) -> "Document":
        """A fresh document with no resources at the current format version."""
        return cls(jsonapi=JsonApiVersion(version=FORMAT_VERSION), data=[])

    # -- mutation -----------------------------------------------------------

    def add_bookmark(self, resource: Union[BookmarkResource, TagResource]) -> None:
        """Append a bookmark to the primary list.

        Raises:
            KindMismatchError: If ``resource`` is a tag.
        """
        if not isinstance(resource, BookmarkResource):
            raise KindMismatchError("Expected bookmark resource")
        self.data.append(resource)

    def add_tag(self, resource: Union[BookmarkResource, TagResource]) -> None:
        """Append a tag to the ``included`` list, creating it if needed.

        Raises:
            KindMismatchError: If ``resource`` is a bookmark.
        """
        if not isinstance(resource, TagResource):
            raise KindMismatchError("Expected tag resource")
        if self.included is None:
            self.included = []
        self.included.append(resource)

    # -- queries ------------------------------------------------------------

    def _all_resources(self) -> Iterator[Union[BookmarkResource, TagResource]]:
        yield from self.data
        if self.included:
            yield from self.included

    def bookmarks(self) -> Iterator[BookmarkResource]:
        return (r for r in self._all_resources() if isinstance(r, BookmarkResource))

    def tags(self) -> Iterator[TagResource]:
        return (r for r in self._all_resources() if isinstance(r, TagResource))

    def tag_hierarchy(self) -> dict[str, list[str]]:
        """Map each parent tag id to its child ids, in document order."""
        hierarchy: dict[str, list[str]] = {}
        for tag in self.tags():
            parent = tag.parent_id
            if parent is not None:
                hierarchy.setdefault(parent, []).append(tag.id)
        return hierarchy

    def tag_breadcrumb(self, tag_id: str) -> list[str]:
        """Return tag names from the root down to ``tag_id``.

        Walks parent references upwards. Stops at the first identifier
        seen twice, so a cyclic parent graph yields the partial path
        instead of looping. Unknown ids yield an empty list.
        """
        by_id = {tag.id: tag for tag in self.tags()}
        breadcrumb: list[str] = []
        visited: set[str] = set()

        current: Optional[str] = tag_id
        while current is not None and current not in visited:
            visited.add(current)
            tag = by_id.get(current)
            if tag is None:
                break
            breadcrumb.insert(0, tag.attributes.name)
            current = tag.parent_id

        return breadcrumb

    def summary(self) -> str:
        n_bookmarks = sum(1 for _ in self.bookmarks())
        n_tags = sum(1 for _ in self.tags())
        return f"{n_bookmarks} bookmark(s), {n_tags} tag(s)"

    # -- validation ---------------------------------------------------------

    def validate(self) -> None:
        """Check the format version and every per-field rule.

        Raises:
            ValidationError: Naming the first violated rule.
        """
        if self.jsonapi.version != FORMAT_VERSION:
            raise ValidationError(
                "format_version", f"Invalid JSON API version: {self.jsonapi.version}"
            )

        seen: set[str] = set()
        for resource in self._all_resources():
            _validate_resource(resource)
            if resource.id in seen:
                raise ValidationError(
                    "duplicate_id", f"Duplicate resource ID: {resource.id}"
                )
            seen.add(resource.id)

    # -- serialization ------------------------------------------------------

    def encode(self) -> str:
        """Serialize to pretty JSON, omitting unset optional fields."""
        return self.model_dump_json(indent=2, exclude_none=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def decode(cls, text: Union[str, bytes]) -> "Document":
        """Parse a document from JSON text.

        Raises:
            DecodeError: If the text is not JSON or not document-shaped.
        """
        try:
            return cls.model_validate_json(text)
        except SchemaError as exc:
            raise DecodeError(
                f"Failed to parse bookmarks JSON: {exc.error_count()} error(s)"
            ) from exc

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        try:
            return cls.model_validate(data)
        except SchemaError as exc:
            raise DecodeError(
                f"Failed to parse bookmarks data: {exc.error_count()} error(s)"
            ) from exc


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def create_bookmark(
    url: str,
    title: str,
    tag_ids: Iterable[str] = (),
    notes: Optional[str] = None,
) -> BookmarkResource:
    """Build a new bookmark with a fresh id and the current UTC time."""
    tag_ids = list(tag_ids)
    relationships = None
    if tag_ids:
        relationships = BookmarkRelationships(
            tags=RelationshipData(
                data=[ResourceIdentifier(type="tag", id=tid) for tid in tag_ids]
            )
        )
    return BookmarkResource(
        id=str(uuid.uuid4()),
        attributes=BookmarkAttributes(
            url=url,
            title=title,
            created=datetime.now(timezone.utc),
            notes=notes,
        ),
        relationships=relationships,
    )


def create_tag(
    name: str,
    color: Optional[str] = None,
    parent_id: Optional[str] = None,
) -> TagResource:
    """Build a new tag with a fresh id, optionally under ``parent_id``."""
    relationships = None
    if parent_id is not None:
        relationships = TagRelationships(
            parent=ParentRelationship(
                data=ResourceIdentifier(type="tag", id=parent_id)
            )
        )
    return TagResource(
        id=str(uuid.uuid4()),
        attributes=TagAttributes(name=name, color=color),
        relationships=relationships,
    )

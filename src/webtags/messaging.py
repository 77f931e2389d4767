"""
Native messaging framing.

Every message is a 4-byte little-endian length followed by that many
bytes of UTF-8 JSON. Incoming messages are capped at 1 MB; responses
are not.
"""

from __future__ import annotations

import struct
from typing import BinaryIO, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from .errors import WebTagsError
from .session import Action, Response

MAX_MESSAGE_SIZE = 1_000_000
_LENGTH = struct.Struct("<I")

_action_adapter: TypeAdapter = TypeAdapter(Action)


class MessageError(WebTagsError):
    """The inbound frame could not be read or parsed."""

    code = "ERR_READ_MESSAGE"


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_message(stream: BinaryIO) -> Optional[object]:
    """Read one framed action from ``stream``.

    Returns:
        The parsed action, or None on a clean end of stream.

    Raises:
        MessageError: Truncated frame, oversized frame, or bad JSON.
    """
    header = _read_exact(stream, _LENGTH.size)
    if not header:
        return None
    if len(header) != _LENGTH.size:
        raise MessageError("Failed to read message length")

    (length,) = _LENGTH.unpack(header)
    if length > MAX_MESSAGE_SIZE:
        raise MessageError(f"Message too large: {length} bytes")

    body = _read_exact(stream, length)
    if len(body) != length:
        raise MessageError("Failed to read message body")

    try:
        return _action_adapter.validate_json(body)
    except SchemaError as exc:
        raise MessageError(
            f"Failed to parse JSON message: {exc.error_count()} error(s)"
        ) from exc


def encode_response(response: Response) -> bytes:
    body = response.model_dump_json(exclude_none=True).encode("utf-8")
    return _LENGTH.pack(len(body)) + body


def write_response(stream: BinaryIO, response: Response) -> None:
    stream.write(encode_response(response))
    stream.flush()

"""Schema-less protobuf wire-format decoder.

The device protocol is undocumented and changes between firmware releases,
so messages are decoded without a compiled schema into a tree keyed by field
number.  Each tag carries ``field_number = tag >> 3`` and
``wire_type = tag & 7``:

  0 (varint)            → unsigned int leaf
  1 (64-bit fixed)      → double leaf
  2 (length-delimited)  → nested tree, or raw bytes when it does not parse
  5 (32-bit fixed)      → float leaf

Malformed input never raises out of :func:`decode`; the caller receives a
:class:`DecodeResult` holding whatever was decoded before the problem.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Union

logger = logging.getLogger(__name__)

MAX_FIELD_NUMBER = 10000  # Sanity bound; larger numbers mean a misaligned stream
DEFAULT_MAX_DEPTH = 5
MAX_VARINT_BYTES = 10
MIN_NESTED_LENGTH = 3  # Slices of 2 bytes or fewer are never treated as messages

FieldTree = Dict[int, "FieldValue"]
FieldValue = Union[int, float, bytes, FieldTree]

BytesLike = Union[bytes, bytearray, memoryview]


class WireType(IntEnum):
    """Protobuf wire types."""

    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


class WireFormatError(ValueError):
    """Raised by the low-level readers on truncated or invalid input."""


@dataclass
class DecodeResult:
    """Outcome of decoding one message scope.

    ``complete`` is False when decoding stopped before the end of the
    buffer (truncation, unknown wire type, field-number guard).  ``fields``
    then holds everything decoded up to that point.
    """

    fields: FieldTree = field(default_factory=dict)
    consumed: int = 0
    complete: bool = True


# ── Readers ──────────────────────────────────────────


def read_varint(buffer: bytes, pos: int) -> tuple[int, int]:
    """Read an unsigned varint starting at ``pos``.

    Returns:
        Tuple of (value, position after the varint).

    Raises:
        WireFormatError: If the buffer ends mid-varint or the varint is
            longer than 10 bytes.
    """
    result = 0
    shift = 0
    for _ in range(MAX_VARINT_BYTES):
        if pos >= len(buffer):
            raise WireFormatError("truncated varint")
        byte = buffer[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & 0xFFFFFFFFFFFFFFFF, pos
        shift += 7
    raise WireFormatError("varint exceeds 10 bytes")


def read_fixed(buffer: bytes, pos: int, size: int) -> tuple[bytes, int]:
    """Read ``size`` raw bytes starting at ``pos``."""
    end = pos + size
    if size < 0 or end > len(buffer):
        raise WireFormatError(f"need {size} bytes at offset {pos}, have {len(buffer) - pos}")
    return buffer[pos:end], end


def read_length_delimited(buffer: bytes, pos: int) -> tuple[bytes, int]:
    """Read a length prefix and the slice it describes."""
    length, pos = read_varint(buffer, pos)
    return read_fixed(buffer, pos, length)


def skip_field(buffer: bytes, pos: int, wire_type: int) -> int:
    """Skip over a field's payload and return the new position.

    Group markers (types 3 and 4) carry no payload of their own.  Types 6
    and 7 are not defined by the wire format and cannot be skipped.
    """
    if wire_type == WireType.VARINT:
        _, pos = read_varint(buffer, pos)
    elif wire_type == WireType.FIXED64:
        _, pos = read_fixed(buffer, pos, 8)
    elif wire_type == WireType.LENGTH_DELIMITED:
        _, pos = read_length_delimited(buffer, pos)
    elif wire_type == WireType.FIXED32:
        _, pos = read_fixed(buffer, pos, 4)
    elif wire_type in (WireType.START_GROUP, WireType.END_GROUP):
        pass
    else:
        raise WireFormatError(f"unknown wire type {wire_type}")
    return pos


# ── Decoder ──────────────────────────────────────────


def decode(
    buffer: BytesLike,
    length: int | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> DecodeResult:
    """Decode a protobuf buffer into a field tree without a schema.

    Args:
        buffer: Raw message bytes.
        length: Number of bytes to decode from the start of ``buffer``.
            Defaults to the whole buffer.
        max_depth: Maximum nesting depth for length-delimited fields.

    Returns:
        DecodeResult with the decoded fields.  Never raises for malformed
        input.
    """
    data = bytes(buffer)
    if length is not None:
        data = data[: max(0, length)]
    return _decode_scope(data, 0, max_depth)


def _decode_scope(data: bytes, depth: int, max_depth: int) -> DecodeResult:
    fields: FieldTree = {}
    pos = 0

    while pos < len(data):
        try:
            tag, next_pos = read_varint(data, pos)
            field_number = tag >> 3
            wire_type = tag & 0x07

            if field_number > MAX_FIELD_NUMBER:
                logger.debug(
                    "Field number %d out of range at offset %d (depth %d)",
                    field_number, pos, depth,
                )
                return DecodeResult(fields, pos, complete=False)

            value: FieldValue
            if wire_type == WireType.VARINT:
                value, next_pos = read_varint(data, next_pos)
            elif wire_type == WireType.FIXED64:
                raw, next_pos = read_fixed(data, next_pos, 8)
                value = struct.unpack("<d", raw)[0]
            elif wire_type == WireType.FIXED32:
                raw, next_pos = read_fixed(data, next_pos, 4)
                value = struct.unpack("<f", raw)[0]
            elif wire_type == WireType.LENGTH_DELIMITED:
                chunk, next_pos = read_length_delimited(data, next_pos)
                value = _decode_nested(chunk, depth, max_depth)
            else:
                pos = skip_field(data, next_pos, wire_type)
                continue
        except WireFormatError as exc:
            logger.debug("Decode stopped at offset %d (depth %d): %s", pos, depth, exc)
            return DecodeResult(fields, pos, complete=False)

        fields[field_number] = value
        pos = next_pos

    return DecodeResult(fields, pos, complete=True)


def _decode_nested(chunk: bytes, depth: int, max_depth: int) -> FieldValue:
    """Try to read a length-delimited slice as a sub-message.

    The nested tree is kept only when it yields at least one field;
    otherwise the slice is kept as a raw bytes leaf.
    """
    if depth < max_depth and len(chunk) >= MIN_NESTED_LENGTH:
        try:
            nested = _decode_scope(chunk, depth + 1, max_depth)
        except (WireFormatError, struct.error, RecursionError):
            return chunk
        if nested.fields:
            return nested.fields
    return chunk

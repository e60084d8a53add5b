"""Outer routing envelope of device MQTT messages.

    Envelope
    └── repeated HeaderEntry (field 1)
        ├── 1  payload           (bytes)  obfuscated inner message
        ├── 2  source            (uint32)
        ├── 3  destination       (uint32)
        ├── 4  command_function  (uint32)
        ├── 5  command_id        (uint32)
        ├── 7  encryption_type   (uint32)
        └── 8  sequence          (uint32)

Field numbers outside this sub-schema are skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from grid_watch.wire.decoder import (
    BytesLike,
    WireFormatError,
    WireType,
    read_length_delimited,
    read_varint,
    skip_field,
)
from grid_watch.wire.encoder import encode_bytes_field, encode_varint_field

logger = logging.getLogger(__name__)

ENVELOPE_HEADER_FIELD = 1
HEADER_PAYLOAD_FIELD = 1

# Integer routing fields: field number → HeaderEntry attribute
HEADER_INT_FIELDS: dict[int, str] = {
    2: "source",
    3: "destination",
    4: "command_function",
    5: "command_id",
    7: "encryption_type",
    8: "sequence",
}


@dataclass
class HeaderEntry:
    """One routed message: command metadata plus an opaque payload."""

    payload: bytes = b""
    source: int = 0
    destination: int = 0
    command_function: int = 0
    command_id: int = 0
    encryption_type: int = 0
    sequence: int = 0


@dataclass
class Envelope:
    headers: list[HeaderEntry] = field(default_factory=list)


def decode_envelope(buffer: BytesLike) -> Envelope:
    """Decode the outer envelope.

    Malformed header entries are dropped; entries decoded before a
    truncation are kept.  Never raises for malformed input.
    """
    data = bytes(buffer)
    envelope = Envelope()
    pos = 0

    while pos < len(data):
        try:
            tag, pos = read_varint(data, pos)
            field_number = tag >> 3
            wire_type = tag & 0x07
            if field_number == ENVELOPE_HEADER_FIELD and wire_type == WireType.LENGTH_DELIMITED:
                chunk, pos = read_length_delimited(data, pos)
                entry = decode_header_entry(chunk)
                if entry is not None:
                    envelope.headers.append(entry)
            else:
                pos = skip_field(data, pos, wire_type)
        except WireFormatError as exc:
            logger.debug(
                "Envelope truncated after %d header(s): %s", len(envelope.headers), exc,
            )
            break

    return envelope


def decode_header_entry(buffer: BytesLike) -> HeaderEntry | None:
    """Decode a single header entry, or return None if it is malformed."""
    try:
        return _parse_header_entry(bytes(buffer))
    except WireFormatError as exc:
        logger.debug("Dropping malformed header entry: %s", exc)
        return None


def _parse_header_entry(data: bytes) -> HeaderEntry:
    entry = HeaderEntry()
    pos = 0
    while pos < len(data):
        tag, pos = read_varint(data, pos)
        field_number = tag >> 3
        wire_type = tag & 0x07

        if field_number == HEADER_PAYLOAD_FIELD and wire_type == WireType.LENGTH_DELIMITED:
            entry.payload, pos = read_length_delimited(data, pos)
        elif field_number in HEADER_INT_FIELDS and wire_type == WireType.VARINT:
            value, pos = read_varint(data, pos)
            setattr(entry, HEADER_INT_FIELDS[field_number], value & 0xFFFFFFFF)
        else:
            pos = skip_field(data, pos, wire_type)
    return entry


def encode_header_entry(entry: HeaderEntry) -> bytes:
    """Encode a header entry using the fixed sub-schema.

    Zero-valued integer fields are omitted, as proto3 does.
    """
    out = bytearray()
    if entry.payload:
        out += encode_bytes_field(HEADER_PAYLOAD_FIELD, entry.payload)
    for field_number, attr in HEADER_INT_FIELDS.items():
        value = getattr(entry, attr)
        if value:
            out += encode_varint_field(field_number, value)
    return bytes(out)


def encode_envelope(envelope: Envelope) -> bytes:
    return b"".join(
        encode_bytes_field(ENVELOPE_HEADER_FIELD, encode_header_entry(entry))
        for entry in envelope.headers
    )

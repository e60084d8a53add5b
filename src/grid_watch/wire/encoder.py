"""Protobuf wire-format encoder.

The device never receives protobuf from us; this exists so captures can be
rebuilt for tests and debugging tools.
"""

from __future__ import annotations

import struct
from typing import Mapping

from grid_watch.wire.decoder import FieldValue, WireType


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as a varint.

    Negative values are encoded as their 64-bit two's complement, the way
    protobuf encodes negative int32/int64.
    """
    if value < 0:
        value &= 0xFFFFFFFFFFFFFFFF
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_tag(field_number: int, wire_type: int) -> bytes:
    return encode_varint((field_number << 3) | wire_type)


def encode_varint_field(field_number: int, value: int) -> bytes:
    return encode_tag(field_number, WireType.VARINT) + encode_varint(value)


def encode_bytes_field(field_number: int, value: bytes) -> bytes:
    return (
        encode_tag(field_number, WireType.LENGTH_DELIMITED)
        + encode_varint(len(value))
        + bytes(value)
    )


def encode_float_field(field_number: int, value: float) -> bytes:
    return encode_tag(field_number, WireType.FIXED32) + struct.pack("<f", value)


def encode_double_field(field_number: int, value: float) -> bytes:
    return encode_tag(field_number, WireType.FIXED64) + struct.pack("<d", value)


def encode_message(fields: Mapping[int, FieldValue]) -> bytes:
    """Encode a field tree in ascending field-number order.

    ints become varints, floats become 32-bit floats, bytes and nested
    mappings become length-delimited fields.
    """
    out = bytearray()
    for field_number in sorted(fields):
        value = fields[field_number]
        if isinstance(value, bool):
            out += encode_varint_field(field_number, int(value))
        elif isinstance(value, int):
            out += encode_varint_field(field_number, value)
        elif isinstance(value, float):
            out += encode_float_field(field_number, value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            out += encode_bytes_field(field_number, bytes(value))
        elif isinstance(value, Mapping):
            out += encode_bytes_field(field_number, encode_message(value))
        else:
            raise TypeError(f"Cannot encode field {field_number} of type {type(value).__name__}")
    return bytes(out)

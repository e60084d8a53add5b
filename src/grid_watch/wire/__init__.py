"""Protobuf wire-format decoding for device telemetry."""

from grid_watch.wire.decoder import DecodeResult, WireFormatError, decode
from grid_watch.wire.envelope import Envelope, HeaderEntry, decode_envelope, encode_envelope
from grid_watch.wire.fields import FieldMap, flatten
from grid_watch.wire.obfuscation import reverse_xor

__all__ = [
    "DecodeResult",
    "Envelope",
    "FieldMap",
    "HeaderEntry",
    "WireFormatError",
    "decode",
    "decode_envelope",
    "encode_envelope",
    "flatten",
    "reverse_xor",
]

"""Single-byte XOR scramble applied to inner payloads."""

from __future__ import annotations

from grid_watch.wire.decoder import BytesLike

# Inner messages always start with field 1, either length-delimited or varint.
LEGAL_FIRST_BYTES = (0x0A, 0x08)


def apply_xor(data: BytesLike, key: int) -> bytes:
    """XOR every byte with ``key``.  Symmetric: applying it twice is a no-op."""
    key &= 0xFF
    if key == 0:
        return bytes(data)
    return bytes(b ^ key for b in data)


def guess_xor_key(payload: BytesLike) -> int | None:
    """Return the key :func:`reverse_xor` would apply, or None."""
    if not payload:
        return None
    first = payload[0]
    for key in (first ^ 0x0A, first ^ 0x08, 0x00):
        if (first ^ key) in LEGAL_FIRST_BYTES:
            return key
    return None


def reverse_xor(payload: BytesLike) -> bytes:
    """Undo the device's XOR scramble, detecting the key from the first byte.

    Contract: a correctly descrambled payload begins with ``0x0a`` or
    ``0x08``, the only legal starts for this protocol's inner messages.
    Candidate keys are tried in order ``payload[0] ^ 0x0a``,
    ``payload[0] ^ 0x08`` and ``0x00``; the first one that turns the first
    byte into a legal start is applied to the whole payload.  If none
    matches the payload is returned unmodified.

    This is a heuristic, not cryptography.  It is how the device behaves
    in practice and must not be replaced by the ``seq``-derived key some
    other models use.
    """
    key = guess_xor_key(payload)
    if key is None:
        return bytes(payload)
    return apply_xor(payload, key)

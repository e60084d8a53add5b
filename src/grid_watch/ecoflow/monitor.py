"""Per-device message pipeline: raw MQTT payload → grid status.

    payload ─► normalise (skip JSON, unwrap base64)
            ─► decode_envelope
            ─► per header: reverse_xor ─► decode ─► FieldMap
            ─► StatusInference.infer
            ─► GridStatusTracker

Decoding is synchronous and never raises for malformed input; a message
that cannot be decoded simply carries no information.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re

from grid_watch.status.inference import StatusInference, is_heartbeat
from grid_watch.status.model import GridStatusSnapshot, Signal
from grid_watch.status.tracker import GridStatusTracker
from grid_watch.wire.decoder import decode
from grid_watch.wire.envelope import HeaderEntry, decode_envelope
from grid_watch.wire.fields import FieldMap
from grid_watch.wire.obfuscation import reverse_xor

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(rb"^[A-Za-z0-9+/=]+$")
MIN_BASE64_LENGTH = 21


def normalise_payload(payload: bytes) -> bytes | None:
    """Return the binary envelope carried by ``payload``.

    JSON payloads carry no usable status for this device and yield None.
    Some payloads arrive base64-encoded; those are unwrapped.
    """
    if not payload:
        return None
    if payload[:1] == b"{":
        return None
    if len(payload) >= MIN_BASE64_LENGTH and _BASE64_RE.match(payload):
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            return payload
    return payload


class GridMonitor:
    """Explicit context object for one device: inference + status state."""

    def __init__(
        self,
        tracker: GridStatusTracker,
        inference: StatusInference | None = None,
    ) -> None:
        self._tracker = tracker
        self._inference = inference or StatusInference()
        self._messages = 0

    @property
    def inference(self) -> StatusInference:
        return self._inference

    @property
    def message_count(self) -> int:
        return self._messages

    def get_grid_status(self) -> GridStatusSnapshot:
        return self._tracker.snapshot()

    # ── Transport events ──────────────────────────────

    def on_connect(self) -> None:
        self._tracker.transport_connected()

    def on_disconnect(self) -> None:
        logger.info(
            "Transport down after %d message(s), %d heartbeat(s)",
            self._messages, self._inference.heartbeat_count,
        )
        self._tracker.transport_disconnected()

    # ── Messages ──────────────────────────────────────

    def handle_message(self, topic: str, payload: bytes) -> list[Signal]:
        """Process one MQTT message.  Returns the signals it produced."""
        self._messages += 1
        logger.debug("Message on %s (%d bytes)", topic, len(payload))

        binary = normalise_payload(bytes(payload))
        if binary is None:
            logger.debug("Skipping non-protobuf payload on %s", topic)
            return []

        envelope = decode_envelope(binary)
        signals: list[Signal] = []
        for entry in envelope.headers:
            signal = self.process_header(entry)
            if signal is not None:
                signals.append(signal)
        return signals

    def process_header(self, entry: HeaderEntry) -> Signal | None:
        if not entry.payload:
            return None

        result = decode(reverse_xor(entry.payload))
        if not result.complete:
            logger.debug(
                "Partial decode for cmd %d/%d: %d field(s) before offset %d",
                entry.command_function, entry.command_id,
                len(result.fields), result.consumed,
            )

        signal = self._inference.infer(entry, FieldMap.from_tree(result.fields))
        if signal is not None:
            self._tracker.apply_signal(signal)
        elif is_heartbeat(entry):
            self._tracker.touch()
        return signal

"""Decode a captured device MQTT payload and print its header entries and fields."""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import sys
from pathlib import Path

from grid_watch.ecoflow.monitor import normalise_payload
from grid_watch.status.inference import StatusInference
from grid_watch.wire.decoder import decode
from grid_watch.wire.envelope import decode_envelope
from grid_watch.wire.fields import FieldMap, describe
from grid_watch.wire.obfuscation import guess_xor_key, reverse_xor


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("capture", help="Hex or base64 payload, or @path to a binary file")
    parser.add_argument("--format", choices=("auto", "hex", "base64", "raw"), default="auto")
    parser.add_argument("--tree", action="store_true", help="Print the nested field tree too")
    return parser.parse_args()


def load_capture(value: str, fmt: str) -> bytes:
    if value.startswith("@"):
        data = Path(value[1:]).read_bytes()
        return data if fmt in ("auto", "raw") else _decode_text(data.decode().strip(), fmt)
    return _decode_text(value.strip(), fmt)


def _decode_text(text: str, fmt: str) -> bytes:
    if fmt in ("hex", "auto"):
        try:
            return bytes.fromhex(text)
        except ValueError:
            if fmt == "hex":
                raise
    if fmt in ("base64", "auto"):
        try:
            return base64.b64decode(text, validate=True)
        except binascii.Error:
            if fmt == "base64":
                raise
    return text.encode()


def main() -> int:
    args = parse_args()
    payload = normalise_payload(load_capture(args.capture, args.format))
    if payload is None:
        print("JSON payload: nothing to decode", file=sys.stderr)
        return 1

    envelope = decode_envelope(payload)
    inference = StatusInference()
    for index, entry in enumerate(envelope.headers):
        result = decode(reverse_xor(entry.payload))
        fields = FieldMap.from_tree(result.fields)
        signal = inference.infer(entry, fields)
        report = {
            "index": index,
            "src": entry.source,
            "dest": entry.destination,
            "cmd_func": entry.command_function,
            "cmd_id": entry.command_id,
            "enc_type": entry.encryption_type,
            "seq": entry.sequence,
            "xor_key": guess_xor_key(entry.payload),
            "complete": result.complete,
            "signal": signal.status.value if signal else None,
            "fields": fields.as_dict(),
        }
        if args.tree:
            report["tree"] = describe(result.fields)
        print(json.dumps(report, indent=2))

    if not envelope.headers:
        print("No header entries decoded", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

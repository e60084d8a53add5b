"""Flattened, path-addressed view over a decoded field tree."""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Union

from grid_watch.wire.decoder import FieldTree

Number = Union[int, float]


def field_key(field_number: int) -> str:
    return f"f{field_number}"


def flatten(tree: Mapping[int, Any], prefix: str = "") -> dict[str, Number]:
    """Flatten a field tree into ``{"f1.f1": 2, ...}``.

    Only numeric leaves are kept.  Nested trees are walked; bytes leaves are
    omitted.
    """
    result: dict[str, Number] = {}
    for number, value in tree.items():
        path = f"{prefix}.{field_key(number)}" if prefix else field_key(number)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            result[path] = value
        elif isinstance(value, Mapping):
            result.update(flatten(value, path))
    return result


def describe(tree: Mapping[int, Any]) -> dict[str, Any]:
    """JSON-friendly rendering of a field tree (bytes leaves as hex)."""
    out: dict[str, Any] = {}
    for number, value in tree.items():
        if isinstance(value, Mapping):
            out[field_key(number)] = describe(value)
        elif isinstance(value, (bytes, bytearray)):
            out[field_key(number)] = bytes(value).hex()
        else:
            out[field_key(number)] = value
    return out


class FieldMap:
    """Typed accessor over a flat dotted-path map.

    The wire schema is unknown at build time, so lookups stay string
    paths; this wrapper makes every lookup return an explicit optional.
    """

    def __init__(self, values: Mapping[str, Number] | None = None) -> None:
        self._values: dict[str, Number] = dict(values or {})

    @classmethod
    def from_tree(cls, tree: FieldTree) -> FieldMap:
        return cls(flatten(tree))

    def get(self, path: str) -> Number | None:
        return self._values.get(path)

    def get_int(self, path: str) -> int | None:
        """Return the value at ``path`` if it is integral, else None."""
        value = self._values.get(path)
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return None

    def paths(self) -> list[str]:
        return sorted(self._values)

    def as_dict(self) -> dict[str, Number]:
        return dict(self._values)

    def __contains__(self, path: object) -> bool:
        return path in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())

    def __repr__(self) -> str:
        return f"FieldMap({self._values!r})"

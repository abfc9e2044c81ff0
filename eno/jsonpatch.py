"""JSON Patch documents applied to decoded JSON values."""

from __future__ import annotations

import copy
from typing import Any, Iterator


class JsonPatchError(ValueError):
    """Raised when a patch is malformed or cannot be applied."""


def _parse_pointer(pointer: Any) -> list[str]:
    if not isinstance(pointer, str):
        raise JsonPatchError("path must be a string")
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise JsonPatchError(f"invalid JSON pointer {pointer!r}")
    return [p.replace("~1", "/").replace("~0", "~") for p in pointer[1:].split("/")]


def _list_index(container: list, token: str, *, allow_end: bool) -> int:
    if token == "-" and allow_end:
        return len(container)
    if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
        raise JsonPatchError(f"invalid array index {token!r}")
    index = int(token)
    limit = len(container) if allow_end else len(container) - 1
    if index > limit:
        raise JsonPatchError(f"array index {index} out of range")
    return index


def _resolve(doc: Any, tokens: list[str]) -> Any:
    for token in tokens:
        if isinstance(doc, dict):
            if token not in doc:
                raise JsonPatchError(f"path member {token!r} does not exist")
            doc = doc[token]
        elif isinstance(doc, list):
            doc = doc[_list_index(doc, token, allow_end=False)]
        else:
            raise JsonPatchError(f"cannot traverse into {type(doc).__name__}")
    return doc


class Patch:
    """An ordered list of JSON Patch operations."""

    def __init__(self, ops: list[dict[str, Any]] | None = None) -> None:
        self.ops = list(ops or [])

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.ops)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Patch) and self.ops == other.ops

    def apply(self, document: Any) -> Any:
        """Return a patched copy of ``document``; the original is left unchanged."""
        doc = copy.deepcopy(document)
        for op in self.ops:
            doc = self._apply_op(doc, op)
        return doc

    def _apply_op(self, doc: Any, op: Any) -> Any:
        if not isinstance(op, dict):
            raise JsonPatchError("operation must be an object")
        name = op.get("op")
        tokens = _parse_pointer(op.get("path"))
        if name == "add":
            return _add(doc, tokens, copy.deepcopy(_value(op)))
        if name == "remove":
            return _remove(doc, tokens)[0]
        if name == "replace":
            value = copy.deepcopy(_value(op))
            doc, _ = _remove(doc, tokens)
            return _add(doc, tokens, value)
        if name == "move":
            source = _parse_pointer(op.get("from"))
            doc, value = _remove(doc, source)
            return _add(doc, tokens, value)
        if name == "copy":
            value = copy.deepcopy(_resolve(doc, _parse_pointer(op.get("from"))))
            return _add(doc, tokens, value)
        if name == "test":
            if _resolve(doc, tokens) != _value(op):
                raise JsonPatchError(f"test failed at {op.get('path')!r}")
            return doc
        raise JsonPatchError(f"unknown operation {name!r}")


def _value(op: dict[str, Any]) -> Any:
    if "value" not in op:
        raise JsonPatchError(f"operation {op.get('op')!r} is missing a value")
    return op["value"]


def _add(doc: Any, tokens: list[str], value: Any) -> Any:
    if not tokens:
        return value
    parent = _resolve(doc, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, dict):
        parent[last] = value
    elif isinstance(parent, list):
        parent.insert(_list_index(parent, last, allow_end=True), value)
    else:
        raise JsonPatchError("unable to add to a non-container value")
    return doc


def _remove(doc: Any, tokens: list[str]) -> tuple[Any, Any]:
    if not tokens:
        return None, doc
    parent = _resolve(doc, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, dict):
        if last not in parent:
            raise JsonPatchError(f"path member {last!r} does not exist")
        return doc, parent.pop(last)
    if isinstance(parent, list):
        return doc, parent.pop(_list_index(parent, last, allow_end=False))
    raise JsonPatchError("unable to remove from a non-container value")
"""Conditional assignment of values at paths within objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from eno.pathexpr import PathExpr, PathSyntaxError, Section, parse_path_expr

Condition = Callable[[Any], Any]


class MutationError(ValueError):
    """Raised when a mutation cannot be parsed or applied."""


def apply(path: PathExpr, obj: Any, value: Any) -> None:
    """Set the value(s) addressed by a path that starts with ``self``.

    Missing or null values along the path are not created; mutation stops there.
    """
    sections = path.sections
    if not sections or sections[0].field != "self":
        raise MutationError("cannot apply mutation to non-self path")
    _apply(sections[1:], 0, obj, value)


def _apply(sections: Sequence[Section], start: int, obj: Any, value: Any) -> None:
    state = obj
    last = len(sections) - 1

    for position, section in enumerate(sections[start:], start):
        if section.field is not None:
            if not isinstance(state, dict):
                continue
            if position == last:
                state[section.field] = value
                return
            state = state.get(section.field)
            continue

        index = section.index
        if index is None:
            continue
        if not isinstance(state, list):
            raise MutationError("cannot apply wildcard to non-slice value")

        if index.element is not None:
            element = index.element
            if not 0 <= element < len(state):
                raise MutationError(
                    f"index {element} out of range for slice of length {len(state)}"
                )
            if position == last:
                state[element] = value
                return
            state = state[element]
            continue

        if not index.wildcard and index.matcher is None:
            continue
        for j, item in enumerate(state):
            is_map = isinstance(item, dict)
            if index.matcher is not None:
                if not is_map:
                    continue
                found = item.get(index.matcher.key)
                if not isinstance(found, str) or found != index.matcher.value:
                    continue
            if is_map and position < last:
                _apply(sections, position + 1, item, value)
                continue
            state[j] = value
        return


@dataclass
class Op:
    """Assigns ``value`` at ``path`` when ``condition`` holds for the current object."""

    path: PathExpr
    condition: Condition | None = None
    value: Any = None

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        parse_condition: Callable[[str], Condition] | None = None,
    ) -> Op:
        """Build an operation from its wire form: ``path``, ``condition`` and ``value``."""
        if not isinstance(data, dict):
            raise MutationError("operation must be an object")
        try:
            path = parse_path_expr(data.get("path") or "")
        except PathSyntaxError as err:
            raise MutationError(f"parsing path: {err}") from err

        condition = None
        text = data.get("condition") or ""
        if text:
            if parse_condition is None:
                raise MutationError("parsing condition: no condition parser configured")
            try:
                condition = parse_condition(text)
            except Exception as err:
                raise MutationError(f"parsing condition: {err}") from err

        return cls(path=path, condition=condition, value=data.get("value"))

    def apply(self, current: dict[str, Any] | None, mutated: dict[str, Any]) -> None:
        """Apply to ``mutated`` if the condition is met by ``current``."""
        if self.condition is not None:
            if current is None:
                return
            try:
                result = self.condition(current)
            except Exception:
                return  # fail closed
            if not (isinstance(result, bool) and result):
                return
        apply(self.path, mutated, self.value)
"""Exhaustive testing over every subset of a set of state mutations.

The subject is called with each subset of the known mutations applied to the
initial state, and every invariant is checked on the result. Mutations are
applied in random order, and subsets are visited in random order, so tests do
not come to depend on an ordering without the space being fully permuted.
"""

from __future__ import annotations

import itertools
import random
from typing import Any, Callable, Generic, NamedTuple, TypeVar

State = TypeVar("State")
Result = TypeVar("Result")

# Subsets are enumerated in full; beyond this count the space is unbounded in practice.
_MAX_MUTATIONS = 62


class _Mutation(NamedTuple):
    name: str
    func: Callable[[Any], Any]


class _Invariant(NamedTuple):
    name: str
    check: Callable[[Any, Any], bool]


class Model(Generic[State, Result]):
    """A subject together with the mutations and invariants it is tested against."""

    def __init__(self, subject: Callable[[State], Result]) -> None:
        self._subject = subject
        self._initial: Callable[[], State] | None = None
        self._mutations: list[_Mutation] = []
        self._invariants: list[_Invariant] = []

    def with_initial_state(self, fn: Callable[[], State]) -> Model[State, Result]:
        self._initial = fn
        return self

    def with_mutation(self, name: str, fn: Callable[[State], State]) -> Model[State, Result]:
        """Add a function that is applied to the state while evaluating the model."""
        self._mutations.append(_Mutation(name, fn))
        return self

    def with_invariant(
        self, name: str, fn: Callable[[State, Result], bool]
    ) -> Model[State, Result]:
        """Add a check on the subject's behaviour, run for every subset of mutations."""
        self._invariants.append(_Invariant(name, fn))
        return self

    def failures(self) -> list[str]:
        """Run every subset of mutations and return a message for each failed invariant."""
        count = len(self._mutations)
        if count > _MAX_MUTATIONS:
            raise ValueError(
                f"too many mutations to enumerate: {count} (at most {_MAX_MUTATIONS})"
            )

        cases = list(itertools.product((False, True), repeat=count))
        random.shuffle(cases)

        messages = []
        for enabled in cases:
            state = self._initial() if self._initial is not None else None
            for i in random.sample(range(count), count):
                if enabled[i]:
                    state = self._mutations[i].func(state)

            stack = None
            random.shuffle(self._invariants)
            for invariant in self._invariants:
                if invariant.check(state, self._subject(state)):
                    continue
                if stack is None:
                    stack = ", ".join(
                        mutation.name
                        for mutation, on in zip(self._mutations, enabled)
                        if on
                    )
                messages.append(
                    f"invariant '{invariant.name}' failed with mutation stack: [{stack}]"
                )
        return messages

    def evaluate(self) -> None:
        """Run the model, raising AssertionError listing every failed invariant."""
        messages = self.failures()
        if messages:
            raise AssertionError("\n".join(messages))


def test(subject: Callable[[State], Result]) -> Model[State, Result]:
    """Create a model for testing the given subject."""
    return Model(subject)
"""Helpers for testing synthesizer functions against scenarios and snapshots."""

from __future__ import annotations

import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

import yaml

Assertion = Callable[["Scenario", list], None]

_FIXTURE_SUFFIXES = {".yaml", ".yml", ".json"}


@dataclass
class Scenario:
    """A named set of inputs and the assertion made on the outputs they produce."""

    name: str
    inputs: Any = None
    assertion: Optional[Assertion] = None


class SnapshotMismatchError(AssertionError):
    """Raised when outputs differ from their stored snapshot."""


def evaluate(synth: Callable[[Any], list], *args: Scenario) -> None:
    """Run the synthesizer for every scenario, raising AssertionError listing all failures."""
    failures = []
    for scenario in args:
        try:
            outputs = synth(scenario.inputs)
        except Exception as err:
            failures.append(f"{scenario.name}: unexpected error: {err}")
            continue
        if scenario.assertion is None:
            continue
        try:
            scenario.assertion(scenario, outputs)
        except AssertionError as err:
            failures.append(f"{scenario.name}: {err}")
    if failures:
        raise AssertionError("\n".join(failures))


def _walk_files(directory: Union[str, os.PathLike]) -> Iterator[tuple[Path, str]]:
    root = Path(directory)
    if not root.exists():
        raise FileNotFoundError(f"error while walking files: {root} does not exist")
    candidates = [root] if root.is_file() else sorted(p for p in root.rglob("*") if p.is_file())
    for path in candidates:
        if path.suffix in _FIXTURE_SUFFIXES:
            yield path, path.stem


def load_scenarios(directory: Union[str, os.PathLike], assertion: Optional[Assertion]) -> list[Scenario]:
    """Load every YAML and JSON fixture below a directory as a scenario, in random order."""
    scenarios = []
    for path, name in _walk_files(directory):
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as err:
            raise ValueError(f"error while parsing fixture {str(path)!r}: {err}") from err
        scenarios.append(Scenario(name=name, inputs=data, assertion=assertion))

    random.shuffle(scenarios)
    return scenarios


def assertion_chain(*args: Assertion) -> Assertion:
    """Combine assertions; every one runs and all their failures are reported."""

    def chained(scenario: Scenario, outputs: list) -> None:
        failures = []
        for position, assertion in enumerate(args):
            try:
                assertion(scenario, outputs)
            except AssertionError as err:
                failures.append(f"assertion-{position}: {err}")
        if failures:
            raise AssertionError("\n".join(failures))

    return chained


def _marshal(outputs: list) -> bytes:
    return yaml.safe_dump(
        list(outputs or []), sort_keys=True, default_flow_style=False, allow_unicode=True
    ).encode("utf-8")


def load_snapshots(directory: Union[str, os.PathLike]) -> Assertion:
    """Return an assertion comparing outputs with snapshot files named after scenarios.

    Scenarios without a snapshot file are ignored. When ENO_GEN_SNAPSHOTS is set
    to a non-empty value the snapshots are rewritten instead of compared.
    """
    root = Path(directory)
    snapshots = {name: path.read_bytes() for path, name in _walk_files(root)}

    def assertion(scenario: Scenario, outputs: list) -> None:
        if scenario.name not in snapshots:
            return
        data = _marshal(outputs)

        if os.environ.get("ENO_GEN_SNAPSHOTS"):
            (root / f"{scenario.name}.yaml").write_bytes(data)
            return

        if data != snapshots[scenario.name]:
            raise SnapshotMismatchError(
                "outputs do not match the snapshot - re-run tests with "
                "ENO_GEN_SNAPSHOTS=true to update them"
            )

    return assertion
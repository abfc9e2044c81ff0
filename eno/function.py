"""Framework for synthesizer processes that speak the KRM function protocol.

A synthesizer reads a resource list of inputs from stdin, calls a synthesizer
function and writes the resulting objects, or the errors it met, as a resource
list to stdout.
"""

from __future__ import annotations

import copy
import dataclasses
import json
import sys
from dataclasses import dataclass, field
from os import PathLike
from typing import IO, Any, Callable, Union

import yaml

from eno.krm import ResourceList, Result, Severity

INPUT_KEY_ANNOTATION = "eno.azure.io/input-key"

Object = dict
MungeFunc = Callable[[dict], None]
MainOption = Callable[["MainConfig"], None]


class InputNotFoundError(LookupError):
    """Raised when no input carries the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"input {_quote(key)} was not found")
        self.key = key


class CommittedOutputError(RuntimeError):
    """Raised when objects are added to an output that has already been written."""


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def read_manifest(path: Union[str, PathLike]) -> list[dict[str, Any]]:
    """Read a YAML or JSON file and return each document as an object."""
    with open(path, encoding="utf-8") as file:
        text = file.read()

    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as err:
        raise ValueError(f"decoding yaml: {err}") from err

    objects = []
    for document in documents:
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError("decoding yaml: document is not an object")
        if not document.get("kind"):
            raise ValueError("decoding yaml: Object 'Kind' is missing")
        objects.append(document)
    return objects


def input_key(obj: dict[str, Any]) -> str:
    """Return the input key annotation of an object, or an empty string."""
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    annotations = metadata.get("annotations")
    if not isinstance(annotations, dict):
        return ""
    return annotations.get(INPUT_KEY_ANNOTATION, "")


class InputReader:
    """Gives access to the inputs of a synthesis by their keys."""

    def __init__(self, resources: ResourceList | None = None) -> None:
        self.resources = resources if resources is not None else ResourceList()

    @classmethod
    def from_stream(cls, stream: IO[Any]) -> InputReader:
        """Decode the first JSON value of a stream; empty input is an empty list."""
        text = stream.read()
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        stripped = text.lstrip()
        if not stripped:
            return cls(ResourceList(api_version="", kind=""))

        try:
            data, _ = json.JSONDecoder().raw_decode(stripped)
        except json.JSONDecodeError as err:
            raise ValueError(f"decoding stdin as krm resource list: {err}") from err

        if data is None:
            return cls(ResourceList(api_version="", kind=""))
        if not isinstance(data, dict):
            raise ValueError("decoding stdin as krm resource list: expected an object")
        resources = ResourceList.from_dict(data)
        if any(not isinstance(item, dict) for item in resources.items):
            raise ValueError("decoding stdin as krm resource list: items must be objects")
        return cls(resources)

    @classmethod
    def from_stdin(cls) -> InputReader:
        return cls.from_stream(sys.stdin)

    def read(self, key: str) -> dict[str, Any]:
        """Return a copy of the first input with the given key."""
        for item in self.resources.items:
            if input_key(item) == key:
                return copy.deepcopy(item)
        raise InputNotFoundError(key)

    def all(self) -> dict[str, dict[str, Any]]:
        """Map every input key to its object; later inputs win on duplicate keys."""
        return {input_key(item): item for item in self.resources.items}


def _canonical(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _canonical(value[key]) for key in sorted(value)}
    if isinstance(value, list):
        return [_canonical(item) for item in value]
    return value


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _encode(data: dict[str, Any]) -> str:
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    for char, escape in _HTML_ESCAPES.items():
        text = text.replace(char, escape)
    return text


class OutputWriter:
    """Collects output objects and results and writes them as a resource list."""

    def __init__(self, stream: IO[str] | None = None, munge: MungeFunc | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._munge = munge
        self.outputs: list[dict[str, Any]] = []
        self.results: list[Result] = []
        self.committed = False

    def add_result(self, result: Result) -> None:
        self.results.append(result)

    def add(self, *args: dict[str, Any] | None) -> None:
        """Add objects to the output; None values are skipped."""
        if self.committed:
            raise CommittedOutputError("cannot add to a committed output")

        for obj in args:
            if obj is None:
                continue
            if not isinstance(obj, dict):
                raise TypeError(f"output objects must be dicts, not {type(obj).__name__}")
            if not obj.get("apiVersion") and not obj.get("kind"):
                metadata = obj.get("metadata")
                name = metadata.get("name", "") if isinstance(metadata, dict) else ""
                raise ValueError(f"unable to determine GVK for object {name}")

            item = copy.deepcopy(obj)
            if self._munge is not None:
                self._munge(item)
            self.outputs.append(item)

    def write(self) -> None:
        """Write the resource list and mark the output as committed."""
        data = ResourceList(items=self.outputs, results=self.results).to_dict()
        data["items"] = _canonical(data["items"])
        for result in data.get("results", []):
            if "tags" in result:
                result["tags"] = _canonical(result["tags"])

        self._stream.write(_encode(data) + "\n")
        self._stream.flush()
        self.committed = True


@dataclass
class MainConfig:
    """Options of a synthesizer process."""

    mungers: list[MungeFunc] = field(default_factory=list)

    def composite_munge_func(self) -> MungeFunc | None:
        """Return a function applying every munger in order, or None if there are none."""
        if not self.mungers:
            return None
        mungers = list(self.mungers)

        def munge(obj: dict[str, Any]) -> None:
            for munger in mungers:
                munger(obj)

        return munge


def with_munger(munger: MungeFunc) -> MainOption:
    """Option adding a function applied to each output object, in the order given."""

    def option(config: MainConfig) -> None:
        config.mungers.append(munger)

    return option


_custom_bindings: dict[str, Callable[[dict[str, Any]], Any]] = {}


def _type_name(annotation: Any) -> str:
    if isinstance(annotation, str):
        return annotation
    return getattr(annotation, "__name__", None) or str(annotation)


def add_custom_input_type(name: Any, bind: Callable[[dict[str, Any]], Any]) -> None:
    """Register a function turning an input object into a custom type.

    ``name`` is the type (or its name) used to annotate fields of an inputs
    dataclass; such fields receive the value returned by ``bind``.
    """
    _custom_bindings[_type_name(name)] = bind


def _error_result(message: str) -> Result:
    return Result(message=message, severity=Severity.ERROR)


def run(
    fn: Callable[..., Any],
    inputs: type | None,
    reader: InputReader,
    writer: OutputWriter,
) -> None:
    """Read the inputs, call the synthesizer function and write what it produced.

    ``inputs`` is a dataclass whose fields carry their input key as
    ``metadata={"eno_key": ...}``; ``fn`` is called with an instance of it, or
    with no arguments when ``inputs`` is None. Failures to read inputs and
    exceptions raised by ``fn`` are written as error results.
    """
    arguments: list[Any] = []
    if inputs is not None:
        if not (isinstance(inputs, type) and dataclasses.is_dataclass(inputs)):
            raise TypeError("inputs must be a dataclass type")

        values: dict[str, Any] = {}
        for spec in dataclasses.fields(inputs):
            if not spec.init:
                continue
            key = spec.metadata.get("eno_key")
            if not key:
                if spec.default is dataclasses.MISSING and spec.default_factory is dataclasses.MISSING:
                    values[spec.name] = None
                continue

            try:
                obj = reader.read(key)
            except InputNotFoundError as err:
                writer.add_result(
                    _error_result(f"error while reading input with key {_quote(key)}: {err}")
                )
                writer.write()
                return

            type_name = _type_name(spec.type)
            bind = _custom_bindings.get(type_name)
            if bind is not None:
                try:
                    obj = bind(obj)
                except Exception as err:
                    writer.add_result(
                        _error_result(
                            f"error while binding custom input of type {type_name}: {err}"
                        )
                    )
                    writer.write()
                    return
            values[spec.name] = obj

        arguments.append(inputs(**values))

    try:
        outputs = fn(*arguments)
    except Exception as err:
        writer.add_result(_error_result(str(err)))
        writer.write()
        return

    writer.add(*(outputs or []))
    writer.write()


def main(fn: Callable[..., Any], inputs: type | None, *args: MainOption) -> None:
    """Entry point of a synthesizer process: stdin to ``fn`` to stdout."""
    config = MainConfig()
    for option in args:
        option(config)

    writer = OutputWriter(sys.stdout, config.composite_munge_func())
    reader = InputReader.from_stdin()
    run(fn, inputs, reader, writer)
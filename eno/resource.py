"""The controller's representation of resources synthesized into slices."""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from typing import Any

from eno.jsonpatch import JsonPatchError, Patch
from eno.model import Composition, ManagedFieldsEntry, NamespacedName, ResourceSlice, ResourceState, parse_group_version
from eno.mutation import Op

logger = logging.getLogger(__name__)

_ENO_PREFIX = "eno.azure.io/"
_RECONCILE_INTERVAL_KEY = "eno.azure.io/reconcile-interval"
_DISABLE_UPDATES_KEY = "eno.azure.io/disable-updates"
_REPLACE_KEY = "eno.azure.io/replace"
_OVERRIDES_KEY = "eno.azure.io/overrides"
_READINESS_GROUP_KEY = "eno.azure.io/readiness-group"
_READINESS_KEY = "eno.azure.io/readiness"


@dataclass(frozen=True)
class Ref:
    """Identifies one synthesized resource."""

    name: str = ""
    namespace: str = ""
    group: str = ""
    kind: str = ""

    def __str__(self) -> str:
        return f"({self.group}.{self.kind})/{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ManifestRef:
    """Position of a manifest within a resource slice."""

    slice: NamespacedName = NamespacedName()
    index: int = 0


@dataclass(frozen=True)
class GroupKind:
    group: str = ""
    kind: str = ""


@dataclass(frozen=True)
class GroupVersionKind:
    group: str = ""
    version: str = ""
    kind: str = ""

    def group_kind(self) -> GroupKind:
        return GroupKind(self.group, self.kind)


PATCH_GVK = GroupVersionKind("eno.azure.io", "v1", "Patch")


@dataclass(frozen=True)
class ReadinessCheck:
    """A named readiness expression."""

    name: str
    expression: str


class InvalidResourceError(ValueError):
    """Raised when a manifest cannot be loaded as a resource."""


_DURATION_UNITS = {
    "ns": Fraction(1),
    "us": Fraction(1000),
    "µs": Fraction(1000),
    "μs": Fraction(1000),
    "ms": Fraction(10**6),
    "s": Fraction(10**9),
    "m": Fraction(60 * 10**9),
    "h": Fraction(3600 * 10**9),
}
_DURATION_PART = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]+)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``1h30m`` or ``-1.5s``."""
    rest = text
    sign = 1
    if rest[:1] in "+-" and rest:
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")
    total = Fraction(0)
    while rest:
        match = _DURATION_PART.match(rest)
        if not match:
            raise ValueError(f"invalid duration {text!r}")
        whole, frac, unit = match.groups()
        if not whole and not frac:
            raise ValueError(f"invalid duration {text!r}")
        if unit not in _DURATION_UNITS:
            raise ValueError(f"unknown unit {unit!r} in duration {text!r}")
        number = Fraction(int(whole or "0"))
        if frac:
            number += Fraction(int(frac), 10 ** len(frac))
        total += number * _DURATION_UNITS[unit]
        rest = rest[match.end():]
    return timedelta(microseconds=float(sign * total / 1000))


def fnv64(data: bytes) -> bytes:
    """FNV-1 64-bit hash of ``data`` as 8 big-endian bytes."""
    value = 14695981039346656037
    for byte in data:
        value = (value * 1099511628211) & 0xFFFFFFFFFFFFFFFF
        value ^= byte
    return value.to_bytes(8, "big")


def _nested_string(obj: Any, *keys: str) -> str:
    for key in keys:
        if not isinstance(obj, dict):
            return ""
        obj = obj.get(key)
    return obj if isinstance(obj, str) else ""


def _string_map(obj: dict[str, Any], key: str) -> dict[str, str]:
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        return {}
    value = metadata.get(key)
    return dict(value) if isinstance(value, dict) else {}


def _set_string_map(obj: dict[str, Any], key: str, value: dict[str, str]) -> None:
    metadata = obj.get("metadata")
    if value:
        if not isinstance(metadata, dict):
            metadata = obj["metadata"] = {}
        metadata[key] = value
    elif isinstance(metadata, dict):
        metadata.pop(key, None)


def _prune_metadata(values: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in values.items() if not k.startswith(_ENO_PREFIX)}


def _atoi(text: Any) -> int:
    if not isinstance(text, str) or not re.fullmatch(r"[+-]?\d+", text):
        raise ValueError(f"invalid integer {text!r}")
    return int(text)


@dataclass(eq=False)
class Resource:
    """A single resource out of a resource slice."""

    ref: Ref = Ref()
    manifest_deleted: bool = False
    manifest_ref: ManifestRef = ManifestRef()
    manifest_hash: bytes = b""
    reconcile_interval: timedelta | None = None
    gvk: GroupVersionKind = GroupVersionKind()
    readiness_checks: list[ReadinessCheck] = field(default_factory=list)
    patch: Patch | None = None
    disable_updates: bool = False
    replace: bool = False
    readiness_group: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    overrides: list[Op] = field(default_factory=list)
    defined_group_kind: GroupKind | None = None
    parsed: dict[str, Any] | None = None
    latest_known_state: ResourceState | None = None

    @classmethod
    def from_slice(cls, slice_: ResourceSlice, index: int) -> Resource:
        manifest = slice_.resources[index]
        res = cls(
            manifest_deleted=manifest.deleted,
            manifest_ref=ManifestRef(NamespacedName(slice_.name, slice_.namespace), index),
            manifest_hash=fnv64(manifest.manifest.encode("utf-8")),
        )

        try:
            parsed = json.loads(manifest.manifest)
        except json.JSONDecodeError as err:
            raise InvalidResourceError(f"invalid json: {err}") from err
        if not isinstance(parsed, dict):
            raise InvalidResourceError("invalid json: manifest is not an object")
        res.parsed = parsed

        parsed.pop("status", None)
        if isinstance(parsed.get("metadata"), dict):
            parsed["metadata"].pop("creationTimestamp", None)

        api_version = parsed.get("apiVersion") if isinstance(parsed.get("apiVersion"), str) else ""
        kind = parsed.get("kind") if isinstance(parsed.get("kind"), str) else ""
        try:
            group, version = parse_group_version(api_version)
        except ValueError:
            group, version = "", ""
        res.gvk = GroupVersionKind(group, version, kind)
        res.ref = Ref(
            name=_nested_string(parsed, "metadata", "name"),
            namespace=_nested_string(parsed, "metadata", "namespace"),
            group=group,
            kind=kind,
        )
        if not res.ref.name or not res.ref.kind or not api_version:
            raise InvalidResourceError("missing name, kind, or apiVersion")

        if res.gvk == PATCH_GVK:
            meta = parsed.get("patch")
            if meta is not None and not isinstance(meta, dict):
                raise InvalidResourceError("parsing patch json: patch is not an object")
            meta = meta or {}
            try:
                p_group, p_version = parse_group_version(meta.get("apiVersion") or "")
            except ValueError as err:
                raise InvalidResourceError(f"parsing patch apiVersion: {err}") from err
            res.gvk = GroupVersionKind(p_group, p_version, meta.get("kind") or "")
            ops = meta.get("ops")
            if ops is not None:
                if not isinstance(ops, list):
                    raise InvalidResourceError("parsing patch json: ops is not a list")
                res.patch = Patch(ops)

        if res.gvk.group == "apiextensions.k8s.io" and res.gvk.kind == "CustomResourceDefinition":
            res.defined_group_kind = GroupKind(
                _nested_string(parsed, "spec", "group"),
                _nested_string(parsed, "spec", "names", "kind"),
            )

        res.labels = _string_map(parsed, "labels")
        anno = _string_map(parsed, "annotations")

        if _RECONCILE_INTERVAL_KEY in anno:
            text = anno[_RECONCILE_INTERVAL_KEY]
            try:
                res.reconcile_interval = parse_duration(text)
            except ValueError:
                if text:
                    logger.info("invalid reconcile interval - ignoring")
                res.reconcile_interval = timedelta(0)

        res.disable_updates = anno.get(_DISABLE_UPDATES_KEY) == "true"
        res.replace = anno.get(_REPLACE_KEY) == "true"

        if _OVERRIDES_KEY in anno:
            try:
                raw = json.loads(anno[_OVERRIDES_KEY])
                if raw is None:
                    raw = []
                if not isinstance(raw, list):
                    raise ValueError("overrides must be a list")
                res.overrides = [Op.from_dict(item) for item in raw]
            except ValueError as err:
                logger.error("invalid override json: %s", err)
                res.overrides = []

        if _READINESS_GROUP_KEY in anno:
            try:
                res.readiness_group = _atoi(anno[_READINESS_GROUP_KEY])
            except ValueError:
                logger.info("invalid readiness group - ignoring")

        for key, value in anno.items():
            if not key.startswith(_READINESS_KEY) or key == _READINESS_GROUP_KEY:
                continue
            name = key.removeprefix(_READINESS_KEY + "-")
            if name == _READINESS_KEY:
                name = "default"
            res.readiness_checks.append(ReadinessCheck(name=name, expression=value))
        res.readiness_checks.sort(key=lambda check: check.name)

        _set_string_map(parsed, "annotations", _prune_metadata(anno))
        _set_string_map(parsed, "labels", _prune_metadata(res.labels))
        return res

    def deleted(self, comp: Composition) -> bool:
        return (
            (comp.deletion_timestamp is not None and not comp.should_orphan_resources())
            or self.manifest_deleted
            or (self.patch is not None and self.patch_sets_deletion_timestamp())
        )

    def state(self) -> ResourceState | None:
        return self.latest_known_state

    def swap_state(self, state: ResourceState | None) -> ResourceState | None:
        """Store a new state and return the previous one."""
        previous, self.latest_known_state = self.latest_known_state, state
        return previous

    def needs_to_be_patched(self, current: dict[str, Any] | None) -> bool:
        if self.patch is None or current is None:
            return False
        try:
            patched = self.patch.apply(current)
        except JsonPatchError:
            return False
        return patched != current

    def patch_sets_deletion_timestamp(self) -> bool:
        if self.patch is None:
            return False
        placeholder = {"apiVersion": "eno.azure.io/v1", "kind": "PatchPlaceholder", "metadata": {}}
        try:
            patched = self.patch.apply(placeholder)
        except JsonPatchError:
            return False
        return _nested_string(patched, "metadata", "deletionTimestamp") != ""

    def unstructured_without_overrides(self) -> dict[str, Any] | None:
        return copy.deepcopy(self.parsed)

    def unstructured(self, actual: dict[str, Any] | None) -> dict[str, Any] | None:
        """Return a copy of the manifest with its overrides applied against ``actual``."""
        result = copy.deepcopy(self.parsed)
        for number, op in enumerate(self.overrides, 1):
            try:
                op.apply(actual, result)
            except ValueError as err:
                raise ValueError(f"applying override {number}: {err}") from err
        return result

    def __lt__(self, other: Resource) -> bool:
        return self.manifest_hash < other.manifest_hash


@dataclass
class InputRevisions:
    key: str
    resource_version: str = ""
    revision: int | None = None
    synthesizer_generation: int | None = None


def new_input_revisions(obj: dict[str, Any], ref_key: str) -> InputRevisions:
    anno = _string_map(obj, "annotations")
    revisions = InputRevisions(key=ref_key, resource_version=_nested_string(obj, "metadata", "resourceVersion"))
    for key, attr in (
        ("eno.azure.io/revision", "revision"),
        ("eno.azure.io/synthesizer-generation", "synthesizer_generation"),
    ):
        try:
            value = _atoi(anno.get(key))
        except ValueError:
            value = 0
        if value != 0:
            setattr(revisions, attr, value)
    return revisions


def merge_eno_managed_fields(
    current: list[ManagedFieldsEntry] | None, overrides: list[ManagedFieldsEntry] | None
) -> list[ManagedFieldsEntry]:
    """Take Eno's entry from ``overrides`` and every other entry from ``current``."""
    merged = [next(e for e in overrides or [] if e.manager == "eno")] if any(
        e.manager == "eno" for e in overrides or []
    ) else []
    merged.extend(e for e in current or [] if e.manager != "eno")
    return merged


def compare_eno_managed_fields(
    a: list[ManagedFieldsEntry] | None, b: list[ManagedFieldsEntry] | None
) -> bool:
    ea = next((e for e in a or [] if e.manager == "eno"), None)
    eb = next((e for e in b or [] if e.manager == "eno"), None)
    if ea is None and eb is None:
        return True
    if ea is None or eb is None:
        return False
    return ea.fields_v1 == eb.fields_v1


def _managed_fields(obj: dict[str, Any]) -> list[ManagedFieldsEntry]:
    metadata = obj.get("metadata")
    entries = metadata.get("managedFields") if isinstance(metadata, dict) else None
    return [
        ManagedFieldsEntry(manager=e.get("manager", ""), fields_v1=e.get("fieldsV1"))
        for e in entries or []
        if isinstance(e, dict)
    ]


def _strip_insignificant_fields(obj: dict[str, Any]) -> dict[str, Any]:
    obj = copy.deepcopy(obj)
    metadata = obj.get("metadata")
    if isinstance(metadata, dict):
        for key in ("managedFields", "uid", "resourceVersion", "generation"):
            metadata.pop(key, None)
    obj.pop("status", None)
    return obj


def compare(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    """Compare two objects, ignoring status, versions and fields not managed by Eno."""
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    if not compare_eno_managed_fields(_managed_fields(a), _managed_fields(b)):
        return False
    return _strip_insignificant_fields(a) == _strip_insignificant_fields(b)
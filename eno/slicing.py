"""Partitioning synthesized resources into resource slices."""

from __future__ import annotations

import json
from typing import Any, Sequence

from eno.model import Composition, Manifest, ResourceSlice, parse_group_version
from eno.resource import PATCH_GVK, GroupVersionKind

_CLEANUP_FINALIZER = "eno.azure.io/cleanup"
_API_VERSION = "eno.azure.io/v1"


class SlicingError(ValueError):
    """Raised when outputs or previous slices cannot be encoded or decoded."""


def _group(api_version: Any) -> str:
    if not isinstance(api_version, str):
        return ""
    try:
        return parse_group_version(api_version)[0]
    except ValueError:
        return ""


def _gvk(obj: dict[str, Any]) -> GroupVersionKind:
    api_version = obj.get("apiVersion")
    kind = obj.get("kind")
    try:
        group, version = parse_group_version(api_version if isinstance(api_version, str) else "")
    except ValueError:
        return GroupVersionKind()
    return GroupVersionKind(group, version, kind if isinstance(kind, str) else "")


def _metadata(obj: dict[str, Any], key: str) -> str:
    metadata = obj.get("metadata")
    value = metadata.get(key) if isinstance(metadata, dict) else None
    return value if isinstance(value, str) else ""


def _resource_ref(obj: dict[str, Any] | None) -> tuple[str, str, str, str]:
    """(name, namespace, kind, group) of an object, or of the target of a patch."""
    if obj is None:
        return "", "", "", ""
    name, namespace = _metadata(obj, "name"), _metadata(obj, "namespace")
    if _gvk(obj) == PATCH_GVK:
        patch = obj.get("patch")
        patch = patch if isinstance(patch, dict) else {}
        kind = patch.get("kind")
        return name, namespace, kind if isinstance(kind, str) else "", _group(patch.get("apiVersion"))
    return name, namespace, _gvk(obj).kind, _gvk(obj).group


def _encode(output: dict[str, Any] | None) -> str:
    return json.dumps(output, sort_keys=True, separators=(",", ":"), ensure_ascii=False) + "\n"


def _new_slice(comp: Composition) -> ResourceSlice:
    return ResourceSlice(
        generate_name=comp.name + "-",
        namespace=comp.namespace,
        finalizers=[_CLEANUP_FINALIZER],
        owner_references=[
            {
                "apiVersion": _API_VERSION,
                "kind": "Composition",
                "name": comp.name,
                "uid": comp.uid,
                # the composition is needed to delete its resource slices
                "blockOwnerDeletion": True,
                "controller": True,
            }
        ],
        synthesis_uuid=comp.current_synthesis.uuid if comp.current_synthesis is not None else "",
    )


def slice_resources(
    comp: Composition,
    previous: Sequence[ResourceSlice],
    outputs: Sequence[dict[str, Any] | None],
    max_json_bytes: int,
) -> list[ResourceSlice]:
    """Merge new outputs onto previous slices and partition them into new slices.

    Outputs are packed into slices of roughly ``max_json_bytes``. Resources that
    disappeared from the outputs are kept as tombstones (manifests marked deleted)
    until their deletion has been reconciled. An output of None is an empty object.
    """
    refs = set()
    manifests: list[Manifest] = []
    for i, output in enumerate(outputs):
        try:
            encoded = _encode(output)
        except (TypeError, ValueError) as err:
            raise SlicingError(f"encoding output {i}: {err}") from err
        manifests.append(Manifest(manifest=encoded))
        refs.add(_resource_ref(output))

    for slice_ in previous:
        statuses = slice_.status_resources
        for i, res in enumerate(slice_.resources):
            try:
                obj = json.loads(res.manifest)
            except json.JSONDecodeError as err:
                raise SlicingError(f"decoding resource {i} of slice {slice_.name}: {err}") from err
            if not isinstance(obj, dict) or not obj.get("kind"):
                raise SlicingError(
                    f"decoding resource {i} of slice {slice_.name}: Object 'Kind' is missing"
                )

            if _gvk(obj) == PATCH_GVK:
                continue  # patches can be removed without deleting the resource

            reconciled = statuses is not None and i < len(statuses) and statuses[i].reconciled
            if _resource_ref(obj) in refs or (
                (res.deleted or slice_.deletion_timestamp is not None) and reconciled
            ):
                continue  # still exists or has already been deleted

            manifests.append(Manifest(manifest=res.manifest, deleted=True))

    slices: list[ResourceSlice] = []
    current: ResourceSlice | None = None
    size = 0
    for manifest in manifests:
        if current is None or size >= max_json_bytes:
            size = 0
            current = _new_slice(comp)
            slices.append(current)
        size += len(manifest.manifest)
        current.resources.append(manifest)
    return slices
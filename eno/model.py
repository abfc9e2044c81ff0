"""Object types exchanged between compositions, syntheses and resource slices."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DELETION_STRATEGY_ANNOTATION = "eno.azure.io/deletion-strategy"


@dataclass(frozen=True)
class NamespacedName:
    """Name and namespace identifying an object."""

    name: str = ""
    namespace: str = ""


@dataclass
class Synthesis:
    """One run of a synthesizer for a composition."""

    uuid: str = ""


@dataclass
class Composition:
    """A composition of resources produced by a synthesizer."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    deletion_timestamp: Any = None
    current_synthesis: Synthesis | None = None
    previous_synthesis: Synthesis | None = None

    def should_orphan_resources(self) -> bool:
        """True when the composition's resources are kept after it is deleted."""
        return self.annotations.get(DELETION_STRATEGY_ANNOTATION) == "orphan"


@dataclass
class Manifest:
    """A serialized resource within a slice."""

    manifest: str = ""
    deleted: bool = False


@dataclass(frozen=True)
class ResourceState:
    """Last observed state of a resource."""

    ready: Any = None
    reconciled: bool = False
    deleted: bool = False


@dataclass
class ResourceSlice:
    """A batch of manifests produced by one synthesis."""

    name: str = ""
    namespace: str = ""
    generate_name: str = ""
    finalizers: list[str] = field(default_factory=list)
    owner_references: list[dict[str, Any]] = field(default_factory=list)
    deletion_timestamp: Any = None
    synthesis_uuid: str = ""
    resources: list[Manifest] = field(default_factory=list)
    status_resources: list[ResourceState] | None = None


@dataclass
class ManagedFieldsEntry:
    """Fields of an object owned by one field manager."""

    manager: str = ""
    fields_v1: Any = None


def parse_group_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion into (group, version), raising ValueError when malformed."""
    if not api_version or api_version == "/":
        return "", ""
    parts = api_version.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected GroupVersion string: {api_version}")
"""Indexed view of a synthesis' resources and the dependencies between them."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any, Callable

from eno.model import Composition, ResourceState
from eno.resource import GroupKind, ManifestRef, Ref, Resource


@dataclass(eq=False)
class IndexedResource:
    """A resource together with its dependency bookkeeping."""

    resource: Resource
    seen: bool = False
    pending_dependencies: set[Ref] = field(default_factory=set)
    dependents: dict[Ref, IndexedResource] = field(default_factory=dict)
    composition_deleting: bool = False

    def backtracks(self) -> bool:
        """True if becoming visible would return the resource to an earlier state.

        This happens when the same object is also patched in a later readiness
        group that is no longer blocked: once the later definition is visible the
        earlier one must not be, or the two would be applied in turn forever.
        """
        mine = self.resource
        return any(
            dep.resource.gvk == mine.gvk
            and dep.resource.ref.name == mine.ref.name
            and dep.resource.ref.namespace == mine.ref.namespace
            and not dep.pending_dependencies
            for dep in self.dependents.values()
        )


class TreeBuilder:
    """Indexes a set of resources into a Tree."""

    def __init__(self) -> None:
        self._by_ref: dict[Ref, IndexedResource] = {}
        self._by_group: dict[int, list[IndexedResource]] = {}
        self._by_defining_gk: dict[GroupKind, IndexedResource] = {}

    def add(self, resource: Resource) -> None:
        """Index a resource; conflicting refs keep the resource with the larger hash."""
        existing = self._by_ref.get(resource.ref)
        if existing is not None and resource < existing.resource:
            return

        idx = IndexedResource(resource)
        self._by_ref[resource.ref] = idx
        self._by_group.setdefault(resource.readiness_group, []).append(idx)
        if resource.defined_group_kind is not None:
            self._by_defining_gk[resource.defined_group_kind] = idx

    def build(self) -> Tree:
        groups = sorted(self._by_group)
        by_manifest_ref: dict[ManifestRef, IndexedResource] = {}

        for idx in self._by_ref.values():
            res = idx.resource
            by_manifest_ref[res.manifest_ref] = idx

            # Custom resources depend on the definitions of their types
            crd = self._by_defining_gk.get(res.gvk.group_kind())
            if crd is not None:
                idx.pending_dependencies.add(crd.resource.ref)
                crd.dependents[res.ref] = idx

            position = bisect.bisect_left(groups, res.readiness_group)

            # Depend on every resource of the previous readiness group
            if position > 0:
                idx.pending_dependencies.update(
                    dep.resource.ref for dep in self._by_group[groups[position - 1]]
                )

            # Every resource of the next readiness group depends on this one
            if position + 1 < len(groups):
                for cur in self._by_group[groups[position + 1]]:
                    idx.dependents[cur.resource.ref] = cur

        return Tree(self._by_ref, by_manifest_ref)


class Tree:
    """Indexed resources of one synthesis. Not safe for concurrent use."""

    def __init__(
        self,
        by_ref: dict[Ref, IndexedResource],
        by_manifest_ref: dict[ManifestRef, IndexedResource],
    ) -> None:
        self._by_ref = by_ref
        self._by_manifest_ref = by_manifest_ref

    def get(self, ref: Ref) -> tuple[Resource | None, bool, bool]:
        """Return (resource, visible, found); visibility follows the dependencies' state."""
        idx = self._by_ref.get(ref)
        if idx is None:
            return None, False, False
        visible = (
            not idx.backtracks() and not idx.pending_dependencies
        ) or idx.composition_deleting
        return idx.resource, visible, True

    def update_state(
        self,
        comp: Composition,
        manifest_ref: ManifestRef,
        state: ResourceState,
        enqueue: Callable[[Ref], Any],
    ) -> None:
        """Record a resource's state, enqueueing it and any dependents it unblocks."""
        idx = self._by_manifest_ref.get(manifest_ref)
        if idx is None:
            return

        deleting = comp.deletion_timestamp is not None
        last_known = idx.resource.swap_state(state)
        if (
            (not idx.seen and last_known is None)
            or last_known != state
            or (not idx.composition_deleting and deleting)
        ):
            enqueue(idx.resource.ref)
        idx.seen = True
        idx.composition_deleting = deleting

        if state.ready is not None and (last_known is None or last_known.ready is None):
            for dep in idx.dependents.values():
                dep.pending_dependencies.discard(idx.resource.ref)
                enqueue(dep.resource.ref)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Describe the tree for testing and debugging; the shape is not stable."""
        tree: dict[str, dict[str, Any]] = {}
        for ref, idx in self._by_ref.items():
            state = idx.resource.latest_known_state
            tree[str(ref)] = {
                "ready": state is not None and state.ready is not None,
                "reconciled": state is not None and state.reconciled,
                "dependencies": sorted(str(r) for r in idx.pending_dependencies),
                "dependents": sorted(str(r) for r in idx.dependents),
            }
        return tree
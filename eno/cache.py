"""Cache of synthesized resources, grouped by the synthesis that produced them."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable

from eno.model import Composition, NamespacedName, ResourceSlice, ResourceState
from eno.resource import InvalidResourceError, ManifestRef, Ref, Resource
from eno.tree import Tree, TreeBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """A resource of a composition that needs to be reconciled."""

    resource: Ref
    composition: NamespacedName


class Cache:
    """Resources indexed by synthesis UUID, with readiness tracking.

    Requests are handed to a queue: any object with an ``add`` method, such as a
    set or a deduplicating work queue.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queue: Any = None
        self._syntheses: dict[str, Tree] = {}
        self._syn_by_comp: dict[NamespacedName, list[str]] = {}

    def _require_queue(self) -> None:
        if self._queue is None:
            raise RuntimeError("attempted to use resource cache without a queue")

    def set_queue(self, queue: Any) -> None:
        with self._lock:
            if self._queue is not None:
                raise RuntimeError("attempted to replace queue in resource cache")
            self._queue = queue

    def get(self, synthesis_uuid: str, ref: Ref) -> tuple[Resource | None, bool, bool]:
        """Return (resource, visible, found) for a resource of a synthesis."""
        with self._lock:
            tree = self._syntheses.get(synthesis_uuid)
            if tree is None:
                return None, False, False
            return tree.get(ref)

    def visit(
        self, comp: Composition, synthesis_uuid: str, slices: Iterable[ResourceSlice]
    ) -> bool:
        """Update resource states from slices; False if the synthesis is not cached."""
        with self._lock:
            self._require_queue()
            tree = self._syntheses.get(synthesis_uuid)
            if tree is None:
                return False

            comp_nsn = NamespacedName(comp.name, comp.namespace)
            queue = self._queue

            def enqueue(ref: Ref) -> None:
                queue.add(Request(resource=ref, composition=comp_nsn))

            for slice_ in slices or ():
                statuses = slice_.status_resources
                for i in range(len(slice_.resources)):
                    state = (
                        statuses[i]
                        if statuses is not None and len(statuses) > i
                        else ResourceState()
                    )
                    ref = ManifestRef(NamespacedName(slice_.name, slice_.namespace), i)
                    tree.update_state(comp, ref, state, enqueue)
            return True

    def fill(
        self, comp: NamespacedName, synthesis_uuid: str, slices: Iterable[ResourceSlice]
    ) -> None:
        """Load a synthesis' resources; slices must carry their full manifests."""
        builder = TreeBuilder()
        for slice_ in slices or ():
            for i in range(len(slice_.resources)):
                try:
                    resource = Resource.from_slice(slice_, i)
                except InvalidResourceError as err:
                    logger.error(
                        "invalid resource - cannot load into cache: %s (slice %s, index %d)",
                        err,
                        slice_.name,
                        i,
                    )
                    return
                builder.add(resource)
        tree = builder.build()

        with self._lock:
            self._require_queue()
            self._syntheses[synthesis_uuid] = tree
            self._syn_by_comp.setdefault(comp, []).append(synthesis_uuid)
        logger.debug("resource cache filled: synthesis %s", synthesis_uuid)

    def purge(self, comp_nsn: NamespacedName, comp: Composition | None) -> None:
        """Drop the composition's syntheses that it no longer references (all if comp is None)."""
        with self._lock:
            self._require_queue()
            referenced = set()
            if comp is not None:
                for synthesis in (comp.current_synthesis, comp.previous_synthesis):
                    if synthesis is not None:
                        referenced.add(synthesis.uuid)

            remaining = []
            for uuid in self._syn_by_comp.get(comp_nsn, []):
                if uuid in referenced:
                    remaining.append(uuid)
                    continue
                logger.debug("resource cache purged: synthesis %s", uuid)
                self._syntheses.pop(uuid, None)
            self._syn_by_comp[comp_nsn] = remaining
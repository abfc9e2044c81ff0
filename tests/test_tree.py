from datetime import datetime, timezone

import pytest

from eno.model import Composition, ResourceState
from eno.resource import GroupKind, GroupVersionKind, ManifestRef, Ref, Resource
from eno.tree import IndexedResource, TreeBuilder

READY = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ref(name):
    return Ref(group="test.group", kind="TestKind", namespace="default", name=name)


def key(name):
    return str(ref(name))


def build(*resources):
    builder = TreeBuilder()
    for resource in resources:
        builder.add(resource)
    return builder.build()


def entry(dependencies=(), dependents=()):
    return {
        "ready": False,
        "reconciled": False,
        "dependencies": sorted(key(d) for d in dependencies),
        "dependents": sorted(key(d) for d in dependents),
    }


def test_empty_tree():
    assert build().to_dict() == {}


def test_single_resource():
    tree = build(Resource(ref=ref("test-resource")))
    assert tree.to_dict() == {key("test-resource"): entry()}


def test_several_readiness_groups():
    tree = build(
        Resource(ref=ref("test-negative-2"), readiness_group=-2),
        Resource(ref=ref("test-1"), readiness_group=1),
        Resource(ref=ref("test-0")),
        Resource(ref=ref("test-4"), readiness_group=4),
    )
    assert tree.to_dict() == {
        key("test-negative-2"): entry(dependents=["test-0"]),
        key("test-0"): entry(dependencies=["test-negative-2"], dependents=["test-1"]),
        key("test-1"): entry(dependencies=["test-0"], dependents=["test-4"]),
        key("test-4"): entry(dependencies=["test-1"]),
    }


def test_overlapping_groups():
    tree = build(
        Resource(ref=ref("test-1"), readiness_group=4),
        Resource(ref=ref("test-2-a"), readiness_group=8),
        Resource(ref=ref("test-2-b"), readiness_group=8),
    )
    assert tree.to_dict() == {
        key("test-1"): entry(dependents=["test-2-a", "test-2-b"]),
        key("test-2-a"): entry(dependencies=["test-1"]),
        key("test-2-b"): entry(dependencies=["test-1"]),
    }


def test_crd_and_cr():
    tree = build(
        Resource(ref=ref("test-cr"), gvk=GroupVersionKind("test.group", "v1", "TestCRDKind")),
        Resource(ref=ref("test-crd"), defined_group_kind=GroupKind("test.group", "TestCRDKind")),
    )
    assert tree.to_dict() == {
        key("test-cr"): entry(dependencies=["test-crd"]),
        key("test-crd"): entry(dependents=["test-cr"]),
    }


def test_crd_and_cr_conflicting_groups():
    tree = build(
        Resource(
            ref=ref("test-cr"),
            gvk=GroupVersionKind("test.group", "v1", "TestCRDKind"),
            readiness_group=3,
        ),
        Resource(
            ref=ref("test-crd"),
            defined_group_kind=GroupKind("test.group", "TestCRDKind"),
            readiness_group=5,
        ),
    )
    assert tree.to_dict() == {
        key("test-cr"): entry(dependencies=["test-crd"], dependents=["test-crd"]),
        key("test-crd"): entry(dependencies=["test-cr"], dependents=["test-cr"]),
    }


def test_visibility():
    tree = build(
        Resource(ref=ref("test-resource-4"), readiness_group=4, manifest_ref=ManifestRef(index=4)),
        Resource(ref=ref("test-resource-1"), readiness_group=1, manifest_ref=ManifestRef(index=1)),
        Resource(ref=ref("test-resource-3"), readiness_group=3, manifest_ref=ManifestRef(index=3)),
        Resource(ref=ref("test-resource-2"), readiness_group=2, manifest_ref=ManifestRef(index=2)),
    )
    names = ["test-resource-1", "test-resource-2", "test-resource-3", "test-resource-4"]

    assert tree.get(ref("foobar")) == (None, False, False)

    tree.update_state(Composition(), ManifestRef(index=100), ResourceState(ready=READY), lambda r: None)

    expected = {"test-resource-1": True}

    def assert_visibility():
        for name in names:
            res, visible, found = tree.get(ref(name))
            assert found, name
            assert visible == expected.get(name, False), name
            assert res.ref == ref(name)

    assert_visibility()

    enqueued = []
    tree.update_state(
        Composition(), ManifestRef(index=1), ResourceState(ready=READY), lambda r: enqueued.append(r.name)
    )
    assert sorted(enqueued) == ["test-resource-1", "test-resource-2"]
    expected["test-resource-2"] = True
    assert_visibility()
    assert_visibility()

    enqueued = []
    tree.update_state(
        Composition(), ManifestRef(index=3), ResourceState(ready=READY), lambda r: enqueued.append(r.name)
    )
    assert sorted(enqueued) == ["test-resource-3", "test-resource-4"]
    expected["test-resource-4"] = True
    assert_visibility()

    enqueued = []
    tree.update_state(
        Composition(), ManifestRef(index=3), ResourceState(ready=READY), lambda r: enqueued.append(r.name)
    )
    assert enqueued == []

    enqueued = []
    tree.update_state(
        Composition(),
        ManifestRef(index=3),
        ResourceState(ready=READY, reconciled=True),
        lambda r: enqueued.append(r.name),
    )
    assert enqueued == ["test-resource-3"]
    assert tree.to_dict()[key("test-resource-3")]["reconciled"] is True


def test_deletion():
    tree = build(
        Resource(ref=ref("test-resource-1"), readiness_group=1, manifest_ref=ManifestRef(index=1)),
        Resource(ref=ref("test-resource-3"), readiness_group=3, manifest_ref=ManifestRef(index=3)),
        Resource(ref=ref("test-resource-2"), readiness_group=2, manifest_ref=ManifestRef(index=2)),
    )

    enqueued = []
    for i in range(1, 4):
        state = ResourceState(ready=READY) if i == 1 else ResourceState()
        tree.update_state(Composition(), ManifestRef(index=i), state, lambda r: enqueued.append(r.name))
    assert sorted(enqueued) == [
        "test-resource-1",
        "test-resource-2",
        "test-resource-2",
        "test-resource-3",
    ]

    _, visible, found = tree.get(ref("test-resource-3"))
    assert (visible, found) == (False, True)

    enqueued = []
    for i in range(1, 4):
        comp = Composition(deletion_timestamp=READY)
        tree.update_state(comp, ManifestRef(index=i), ResourceState(), lambda r: enqueued.append(r.name))
    assert sorted(enqueued) == ["test-resource-1", "test-resource-2", "test-resource-3"]

    enqueued = []
    for i in range(1, 3):
        comp = Composition(deletion_timestamp=READY)
        tree.update_state(comp, ManifestRef(index=i), ResourceState(), lambda r: enqueued.append(r.name))
    assert enqueued == []

    _, visible, found = tree.get(ref("test-resource-3"))
    assert (visible, found) == (True, True)


def test_ref_conflicts():
    tree = build(
        Resource(ref=ref("test-resource"), manifest_hash=b"b"),
        Resource(ref=ref("test-resource"), manifest_hash=b"a"),
    )
    res, visible, found = tree.get(ref("test-resource"))
    assert found and visible
    assert res.manifest_hash == b"b"


BASE_GVK = GroupVersionKind("test.group", "v1", "TestKind")


def indexed(name, group, gvk=BASE_GVK):
    return IndexedResource(Resource(ref=ref(name), gvk=gvk, readiness_group=group))


def test_backtracks_without_dependents():
    assert indexed("a", 1).backtracks() is False


def test_backtracks_dependent_with_other_gvk():
    ir = indexed("a", 1)
    dep = indexed("a", 2, GroupVersionKind("other.group", "v1", "OtherKind"))
    ir.dependents[dep.resource.ref] = dep
    assert ir.backtracks() is False


def test_backtracks_dependent_still_pending():
    ir = indexed("a", 1)
    dep = indexed("a", 2)
    dep.pending_dependencies.add(ref("other"))
    ir.dependents[dep.resource.ref] = dep
    assert ir.backtracks() is False


def test_backtracks_dependent_unblocked():
    ir = indexed("a", 1)
    dep = indexed("a", 2)
    ir.dependents[dep.resource.ref] = dep
    assert ir.backtracks() is True


@pytest.mark.parametrize(
    "names, expected",
    [(["a", "b"], True), (["b", "c"], False)],
)
def test_backtracks_multiple_dependents(names, expected):
    ir = indexed("a", 1)
    for name in names:
        dep = indexed(name, 2)
        ir.dependents[dep.resource.ref] = dep
    assert ir.backtracks() is expected
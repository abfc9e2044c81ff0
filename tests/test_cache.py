from datetime import datetime, timezone

import pytest

from eno.cache import Cache, Request
from eno.model import Composition, Manifest, NamespacedName, ResourceSlice, ResourceState, Synthesis
from eno.resource import Ref

READY = datetime(2024, 1, 1, tzinfo=timezone.utc)


def pod(name, group=None):
    annotations = (
        f', "annotations": {{ "eno.azure.io/readiness-group": "{group}" }}' if group is not None else ""
    )
    return Manifest(
        manifest='{ "apiVersion": "v1", "kind": "Pod", "metadata": { "name": "%s", "namespace": "default"%s } }'
        % (name, annotations)
    )


def dump(queue):
    items = sorted(str(request.resource) for request in queue)
    queue.clear()
    return items


def new_cache():
    cache = Cache()
    queue = set()
    cache.set_queue(queue)
    return cache, queue


def comp_foo():
    return Composition(name="foo", namespace="bar")


def test_requires_queue():
    with pytest.raises(RuntimeError, match="without a queue"):
        Cache().visit(Composition(), "foo", [])


def test_queue_cannot_be_replaced():
    cache, _ = new_cache()
    with pytest.raises(RuntimeError, match="replace queue"):
        cache.set_queue(set())


def test_basics():
    cache, queue = new_cache()

    cache.fill(NamespacedName(), "", None)
    assert cache.visit(Composition(), "foo", None) is False
    cache.purge(NamespacedName(), None)
    assert cache.get("foo", Ref()) == (None, False, False)

    comp = comp_foo()
    comp_nsn = NamespacedName("foo", "bar")
    syn_uuid = "foobar"
    slices = [
        ResourceSlice(name="slice-1", resources=[pod("foo")]),
        ResourceSlice(name="slice-2", resources=[pod("bar")]),
    ]

    assert cache.visit(comp, syn_uuid, slices) is False
    assert cache.visit(comp, syn_uuid, slices) is False
    assert dump(queue) == []

    cache.fill(comp_nsn, syn_uuid, slices)
    assert dump(queue) == []

    assert cache.visit(comp, syn_uuid, slices) is True
    assert dump(queue) == ["(.Pod)/default/bar", "(.Pod)/default/foo"]

    assert cache.visit(comp, syn_uuid, slices) is True
    assert dump(queue) == []

    res, visible, found = cache.get(syn_uuid, Ref(name="foo", namespace="default", kind="Pod"))
    assert res.ref == Ref(name="foo", namespace="default", kind="Pod")
    assert visible and found

    assert cache.get(syn_uuid, Ref(name="not-a-pod", namespace="default", kind="Pod")) == (
        None,
        False,
        False,
    )

    cache.purge(comp_nsn, None)
    assert cache.visit(comp, syn_uuid, slices) is False


def test_requests_carry_composition():
    cache, queue = new_cache()
    slices = [ResourceSlice(name="s", resources=[pod("foo")])]
    cache.fill(NamespacedName("foo", "bar"), "syn", slices)
    cache.visit(comp_foo(), "syn", slices)
    assert queue == {
        Request(
            resource=Ref(name="foo", namespace="default", kind="Pod"),
            composition=NamespacedName("foo", "bar"),
        )
    }


@pytest.mark.parametrize(
    "purge_comp, expect_a, expect_b",
    [
        (Composition(current_synthesis=Synthesis("syn-a")), True, False),
        (Composition(previous_synthesis=Synthesis("syn-a")), True, False),
        (
            Composition(current_synthesis=Synthesis("syn-a"), previous_synthesis=Synthesis("syn-b")),
            True,
            True,
        ),
        (Composition(), False, False),
        (None, False, False),
    ],
)
def test_purge(purge_comp, expect_a, expect_b):
    cache, queue = new_cache()
    comp = comp_foo()
    comp_nsn = NamespacedName("foo", "bar")
    slices = [ResourceSlice(resources=[pod("foo")])]

    cache.fill(comp_nsn, "syn-a", slices)
    cache.visit(comp, "syn-a", slices)
    cache.fill(comp_nsn, "syn-b", slices)
    cache.visit(comp, "syn-b", slices)
    queue.clear()

    cache.purge(comp_nsn, purge_comp)
    assert cache.visit(comp, "syn-a", slices) is expect_a
    assert cache.visit(comp, "syn-b", slices) is expect_b


def test_fill_skips_invalid_synthesis():
    cache, _ = new_cache()
    slices = [ResourceSlice(resources=[Manifest(manifest="not json")])]
    cache.fill(NamespacedName("foo", "bar"), "syn", slices)
    assert cache.visit(comp_foo(), "syn", slices) is False


def test_readiness_groups():
    cache, queue = new_cache()
    comp = comp_foo()
    slices = [ResourceSlice(resources=[pod("foo", -1), pod("bar", 3), pod("baz", 9001)])]
    syn_uuid = "foobar"

    cache.fill(NamespacedName("foo", "bar"), syn_uuid, slices)
    cache.visit(comp, syn_uuid, slices)
    queue.clear()

    def visibility():
        result = {}
        for name in ("foo", "bar", "baz"):
            _, visible, found = cache.get(syn_uuid, Ref(name=name, namespace="default", kind="Pod"))
            assert found, name
            result[name] = visible
        return result

    assert visibility() == {"foo": True, "bar": False, "baz": False}

    slices[0].status_resources = [ResourceState(ready=READY), ResourceState(), ResourceState()]
    cache.visit(comp, syn_uuid, slices)
    assert dump(queue) == ["(.Pod)/default/bar", "(.Pod)/default/foo"]
    assert visibility() == {"foo": True, "bar": True, "baz": False}

    slices[0].status_resources = [
        ResourceState(ready=READY),
        ResourceState(ready=READY),
        ResourceState(),
    ]
    cache.visit(comp, syn_uuid, slices)
    assert dump(queue) == ["(.Pod)/default/bar", "(.Pod)/default/baz"]
    assert visibility() == {"foo": True, "bar": True, "baz": True}
import pytest

from eno.jsonpatch import JsonPatchError, Patch


def test_add_object_member():
    patch = Patch([{"op": "add", "path": "/baz", "value": "qux"}])
    assert patch.apply({"foo": "bar"}) == {"foo": "bar", "baz": "qux"}


def test_add_array_element():
    patch = Patch([{"op": "add", "path": "/foo/1", "value": "qux"}])
    assert patch.apply({"foo": ["bar", "baz"]}) == {"foo": ["bar", "qux", "baz"]}


def test_remove_and_original_untouched():
    doc = {"baz": "qux", "foo": "bar"}
    assert Patch([{"op": "remove", "path": "/baz"}]).apply(doc) == {"foo": "bar"}
    assert doc == {"baz": "qux", "foo": "bar"}


def test_move():
    doc = {"foo": {"bar": "baz", "waldo": "fred"}, "qux": {"corge": "grault"}}
    patch = Patch([{"op": "move", "from": "/foo/waldo", "path": "/qux/thud"}])
    assert patch.apply(doc) == {
        "foo": {"bar": "baz"},
        "qux": {"corge": "grault", "thud": "fred"},
    }


def test_test_failure():
    with pytest.raises(JsonPatchError):
        Patch([{"op": "test", "path": "/baz", "value": "bar"}]).apply({"baz": "qux"})


def test_add_to_missing_parent_fails():
    with pytest.raises(JsonPatchError):
        Patch([{"op": "add", "path": "/a/b", "value": 1}]).apply({})


def test_length():
    assert len(Patch([{"op": "remove", "path": "/x"}])) == 1
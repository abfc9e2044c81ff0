import pytest

from eno.krm import (
    API_VERSION,
    RESOURCE_LIST_KIND,
    ResourceList,
    Result,
    ResultFile,
    ResultResourceRef,
    Severity,
)


def test_empty_resource_list_wire_form():
    assert ResourceList().to_dict() == {
        "apiVersion": "config.kubernetes.io/v1",
        "kind": "ResourceList",
        "items": [],
    }


def test_result_wire_form_omits_empty_fields():
    result = Result(message="test message", severity=Severity.ERROR)
    assert result.to_dict() == {"message": "test message", "severity": "error"}


def test_resource_list_with_results():
    rl = ResourceList(
        items=[{"apiVersion": "v1", "kind": "ConfigMap"}],
        results=[Result(message="foobar", severity="error")],
    )
    data = rl.to_dict()
    assert data["results"] == [{"message": "foobar", "severity": "error"}]
    assert data["items"] == [{"apiVersion": "v1", "kind": "ConfigMap"}]


def test_result_round_trip():
    result = Result(
        message="msg",
        file=ResultFile(path="dir/file.yaml", index=2),
        resource_ref=ResultResourceRef(api_version="v1", kind="Pod", name="p", namespace="ns"),
        severity=Severity.WARNING,
        tags={"a": "b"},
    )
    assert Result.from_dict(result.to_dict()) == result


def test_result_unknown_severity_is_kept():
    result = Result.from_dict({"message": "m", "severity": "custom"})
    assert result.severity == "custom"
    assert result.to_dict()["severity"] == "custom"


def test_resource_list_round_trip():
    rl = ResourceList(
        items=[{"kind": "Pod"}],
        results=[Result(message="x", severity=Severity.INFO)],
        function_config={"kind": "Config"},
    )
    assert ResourceList.from_dict(rl.to_dict()) == rl


def test_from_empty_dict():
    rl = ResourceList.from_dict({})
    assert rl.items == []
    assert rl.results == []
    assert rl.api_version == ""


@pytest.mark.parametrize(
    "api_version,expected",
    [
        ("apps/v1", ("apps", "v1", "Deployment")),
        ("v1", ("", "v1", "Deployment")),
        ("", ("", "", "Deployment")),
        ("a/b/c", ("", "", "Deployment")),
    ],
)
def test_group_version_kind(api_version, expected):
    rl = ResourceList(api_version=api_version, kind="Deployment")
    assert rl.group_version_kind() == expected


def test_set_group_version_kind_round_trip():
    rl = ResourceList()
    rl.set_group_version_kind("config.kubernetes.io", "v1", RESOURCE_LIST_KIND)
    assert rl.api_version == API_VERSION
    assert rl.group_version_kind() == ("config.kubernetes.io", "v1", RESOURCE_LIST_KIND)

    rl.set_group_version_kind("", "v1", "Pod")
    assert rl.api_version == "v1"
    assert rl.kind == "Pod"
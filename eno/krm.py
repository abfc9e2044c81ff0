"""Wire format of the resource lists exchanged with KRM functions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

GROUP = "config.kubernetes.io"
VERSION = "v1"
API_VERSION = f"{GROUP}/{VERSION}"
RESOURCE_LIST_KIND = "ResourceList"


class Severity(str, enum.Enum):
    """Severity of a function result."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


def _severity_text(severity: Severity | str) -> str:
    return severity.value if isinstance(severity, Severity) else severity


def _parse_severity(text: str) -> Severity | str:
    try:
        return Severity(text)
    except ValueError:
        return text


def _split_api_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion into group and version, raising ValueError when malformed."""
    if not api_version or api_version == "/":
        return "", ""
    parts = api_version.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected GroupVersion string: {api_version}")


@dataclass
class ResultFile:
    """A file that holds the resource a result refers to."""

    path: str
    index: float = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"path": self.path}
        if self.index:
            data["index"] = self.index
        return data


@dataclass
class ResultResourceRef:
    """Reference to the Kubernetes object a result is about."""

    api_version: str
    kind: str
    name: str
    namespace: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
        }
        if self.namespace:
            data["namespace"] = self.namespace
        return data


@dataclass
class Result:
    """A message emitted by a function for observability and debugging."""

    message: str
    file: ResultFile | None = None
    resource_ref: ResultResourceRef | None = None
    severity: Severity | str = ""
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message}
        if self.file is not None:
            data["file"] = self.file.to_dict()
        if self.resource_ref is not None:
            data["resourceRef"] = self.resource_ref.to_dict()
        severity = _severity_text(self.severity)
        if severity:
            data["severity"] = severity
        if self.tags:
            data["tags"] = dict(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result:
        file_data = data.get("file")
        ref_data = data.get("resourceRef")
        return cls(
            message=data.get("message", ""),
            file=(
                ResultFile(path=file_data.get("path", ""), index=file_data.get("index", 0))
                if file_data is not None
                else None
            ),
            resource_ref=(
                ResultResourceRef(
                    api_version=ref_data.get("apiVersion", ""),
                    kind=ref_data.get("kind", ""),
                    name=ref_data.get("name", ""),
                    namespace=ref_data.get("namespace", ""),
                )
                if ref_data is not None
                else None
            ),
            severity=_parse_severity(data.get("severity", "")),
            tags=dict(data.get("tags") or {}),
        )


@dataclass
class ResourceList:
    """Input and output envelope of a KRM function."""

    items: list[dict[str, Any]] = field(default_factory=list)
    results: list[Result] = field(default_factory=list)
    function_config: dict[str, Any] | None = None
    api_version: str = API_VERSION
    kind: str = RESOURCE_LIST_KIND

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "items": list(self.items),
        }
        if self.function_config is not None:
            data["functionConfig"] = self.function_config
        if self.results:
            data["results"] = [result.to_dict() for result in self.results]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceList:
        return cls(
            items=list(data.get("items") or []),
            results=[Result.from_dict(r) for r in data.get("results") or []],
            function_config=data.get("functionConfig"),
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
        )

    def group_version_kind(self) -> tuple[str, str, str]:
        """Return (group, version, kind); a malformed apiVersion yields only the kind."""
        try:
            group, version = _split_api_version(self.api_version)
        except ValueError:
            return "", "", self.kind
        return group, version, self.kind

    def set_group_version_kind(self, group: str, version: str, kind: str) -> None:
        self.api_version = f"{group}/{version}" if group else version
        self.kind = kind
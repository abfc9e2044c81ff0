"""Synthesizer framework, KRM wire format, path mutations, JSON patches and resource slicing, tracking and caching for Kubernetes manifests."""

__version__ = "0.1.0"

__all__ = [
    "cache",
    "function",
    "functiontest",
    "jsonpatch",
    "krm",
    "model",
    "mutation",
    "pathexpr",
    "resource",
    "slicing",
    "statespace",
    "tree",
]
# eno

Building blocks for programs that synthesize Kubernetes resources and for the
bookkeeping a controller needs to reconcile them. Resources are handled as
plain Python dictionaries, the way they look once decoded from JSON or YAML.

Install with `pip install .`; the tests need the `test` extra
(`pip install .[test]`) and run with `pytest`.

## Modules

| Module | Purpose |
| --- | --- |
| `eno.krm` | The KRM function wire format: `ResourceList`, `Result`, `ResultFile`, `ResultResourceRef` and `Severity`. |
| `eno.function` | A small framework for writing synthesizers: `InputReader`, `OutputWriter`, `MainConfig`, `main`, `run`, `with_munger`, `add_custom_input_type`, `input_key` and `read_manifest`. |
| `eno.functiontest` | Helpers for testing synthesizers: `Scenario`, `evaluate`, `load_scenarios`, `load_snapshots`, `assertion_chain` and `SnapshotMismatchError`. |
| `eno.pathexpr` | Parser for path expressions such as `self.spec.containers[name="app"].image` (`parse_path_expr`, `PathExpr`, `PathSyntaxError`). |
| `eno.mutation` | Sets values at a path expression (`apply`) and conditional override operations (`Op`, `MutationError`). |
| `eno.jsonpatch` | JSON Patch documents with the `add`, `remove`, `replace`, `move`, `copy` and `test` operations (`Patch`, `JsonPatchError`). |
| `eno.model` | Plain data types: `Composition`, `Synthesis`, `ResourceSlice`, `Manifest`, `ResourceState`, `NamespacedName`, `ManagedFieldsEntry`, and `parse_group_version`. |
| `eno.resource` | `Resource`, the view of one manifest out of a resource slice, with `Ref`, `ManifestRef`, `GroupVersionKind`, `parse_duration`, `fnv64` and the comparison helpers `compare`, `compare_eno_managed_fields` and `merge_eno_managed_fields`. |
| `eno.tree` | Indexes the resources of a synthesis by readiness group and CRD dependencies (`TreeBuilder`, `Tree`, `IndexedResource`). |
| `eno.slicing` | Partitions synthesized outputs into resource slices and keeps tombstones for removed resources (`slice_resources`, `SlicingError`). |
| `eno.cache` | A thread-safe cache of resources grouped by the synthesis that produced them (`Cache`, `Request`). |
| `eno.statespace` | A test helper that checks invariants against every subset of a set of state mutations (`test`, `Model`). |

## Writing a synthesizer

A synthesizer reads a KRM `ResourceList` from standard input and writes one to
standard output. Inputs are declared as a dataclass whose fields carry the
input key in their metadata; `InputReader` finds each input by the value of its
`eno.azure.io/input-key` annotation.

```python
from dataclasses import dataclass, field

from eno.function import main, with_munger


@dataclass
class Inputs:
    config: dict = field(metadata={"eno_key": "my-config"})


def synthesize(inputs):
    name = inputs.config["metadata"]["name"]
    return [{"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": name}}]


def add_label(obj):
    obj.setdefault("metadata", {}).setdefault("labels", {})["managed"] = "true"


if __name__ == "__main__":
    main(synthesize, Inputs, with_munger(add_label))
```

`main` reads standard input, calls `run`, and writes the result. A missing
input, an error while binding a custom input type, or an exception raised by
the synthesizer function is written out as a `Result` of severity `error`
instead of being raised. `run` takes the reader and writer explicitly, which is
useful in tests.

`OutputWriter` collects objects (skipping `None`) and writes them once with
`write()`, as compact JSON with sorted object keys. Adding to a writer that has
already been written raises `CommittedOutputError`; an object with neither
`apiVersion` nor `kind` raises `ValueError`. `InputReader.read` returns a copy
of an input or raises `InputNotFoundError`.

`add_custom_input_type(name, bind)` registers a function that turns an input
object into another value; dataclass fields annotated with that type (or type
name) receive the bound value. `read_manifest(path)` reads every document of a
YAML or JSON file.

## Testing a synthesizer

`load_scenarios` reads every `.yaml`, `.yml` and `.json` fixture below a
directory into a `Scenario`, in random order. `evaluate` runs the synthesizer
over each scenario, hands the outputs to the scenario's assertion, and raises
one `AssertionError` listing every failure. `load_snapshots` builds an
assertion that compares the outputs, dumped as YAML, with the snapshot file
named after the scenario, raising `SnapshotMismatchError` when they differ;
scenarios without a snapshot are ignored, and when the `ENO_GEN_SNAPSHOTS`
environment variable is set the snapshots are rewritten instead.
`assertion_chain` combines several assertions and reports all their failures.

## Path expressions and mutations

Path expressions support field access, array indexing, wildcards and matchers
on arrays of objects. `apply` only accepts paths that start at `self`:

```python
from eno.mutation import apply
from eno.pathexpr import parse_path_expr

obj = {"foo": [{"name": "test-2"}, {"name": "test-1"}]}
apply(parse_path_expr('self.foo[name="test-1"].bar'), obj, 123)
# obj == {"foo": [{"name": "test-2"}, {"name": "test-1", "bar": 123}]}
```

Missing or null values along the path are not created. An index out of range,
an index applied to something that is not a list, or a path not starting at
`self` raises `MutationError`. A malformed expression raises `PathSyntaxError`.

`Op` pairs a path and a value with an optional condition: a callable that is
given the current object and must return `True` for the value to be set. Its
`from_dict` reads the wire form (`path`, `condition`, `value`) and needs a
`parse_condition` function to turn a condition string into such a callable.

## Resources, slices and the cache

`Resource.from_slice(slice_, index)` parses one manifest of a `ResourceSlice`.
It drops `status` and `metadata.creationTimestamp`, reads the
`eno.azure.io/reconcile-interval`, `disable-updates`, `replace`, `overrides`,
`readiness-group`, `readiness` and `readiness-<name>` annotations, unwraps
`eno.azure.io/v1` `Patch` objects into a JSON `Patch` for their target, and
removes every `eno.azure.io/` label and annotation from the stored manifest.
Invalid manifests raise `InvalidResourceError`.

`slice_resources(comp, previous, outputs, max_json_bytes)` packs outputs into
new slices and keeps resources that disappeared as tombstones (manifests marked
deleted) until their deletion has been reconciled.

`Cache` builds a `Tree` per synthesis. A resource is visible once the
resources of the previous readiness group, and the CRD defining its type, are
ready; requests for resources that need reconciling are passed to the queue's
`add` method:

```python
from eno.cache import Cache
from eno.model import Composition, Manifest, NamespacedName, ResourceSlice
from eno.resource import Ref

queue = set()
cache = Cache()
cache.set_queue(queue)

pod = '{"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "foo", "namespace": "default"}}'
slices = [ResourceSlice(name="slice-1", resources=[Manifest(manifest=pod)])]
cache.fill(NamespacedName("foo", "bar"), "syn-1", slices)
cache.visit(Composition(name="foo", namespace="bar"), "syn-1", slices)  # True
resource, visible, found = cache.get("syn-1", Ref(name="foo", namespace="default", kind="Pod"))
```

Using the cache before `set_queue`, or setting the queue twice, raises
`RuntimeError`.

## State-space testing

```python
from eno.statespace import test

model = (
    test(str)
    .with_initial_state(lambda: 0)
    .with_mutation("increment by one", lambda n: n + 1)
    .with_mutation("increment by 10", lambda n: n + 10)
    .with_invariant("never 11", lambda state, result: result != "11")
)
model.failures()
# ["invariant 'never 11' failed with mutation stack: [increment by one, increment by 10]"]
```

`evaluate()` runs the same check and raises `AssertionError` when any
invariant fails.

## What the package does not do

- It does not talk to a Kubernetes API server and runs no controller loop;
  slices, compositions and states are built and passed in by the caller.
- It has no expression language. Readiness annotations are kept as text in
  `ReadinessCheck` and are not evaluated, and override conditions must be
  supplied as Python callables. `Resource.from_slice` parses overrides without
  a condition parser, so an overrides annotation holding any condition is
  logged as invalid and ignored.
- It does not render Helm charts or start synthesizer processes.
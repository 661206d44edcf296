"""
Patch Builder - field-level JSON Patch documents between two flat models.

Patches are built from structured paths (tuples of segments) and are only
rendered to RFC 6901 pointers when serialized for the wire. Maps such as
labels and annotations are diffed key by key so that concurrent edits to
unrelated keys are left alone.
"""

import copy
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from flatmodel import Field, FieldType, FlatModel, Schema

RESOURCE_VERSION_PATH: Tuple[str, ...] = ("metadata", "resourceVersion")
NAME_PATH = "metadata.name"
GENERATE_NAME_PATH = "metadata.generate_name"

_NO_VALUE = object()


class PatchOp(Enum):
    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"
    TEST = "test"


class PatchApplyError(ValueError):
    """A patch document does not apply to the target object."""


def pointer(path: Tuple[str, ...]) -> str:
    """Render a structured path as a JSON pointer."""
    escaped = (str(s).replace("~", "~0").replace("/", "~1") for s in path)
    return "".join(f"/{s}" for s in escaped)


@dataclass(frozen=True)
class PatchOperation:
    """A single patch operation against the nested representation."""

    op: PatchOp
    path: Tuple[str, ...]
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"op": self.op.value, "path": pointer(self.path)}
        if self.op != PatchOp.REMOVE:
            data["value"] = self.value
        return data


class PatchDocument:
    """Ordered sequence of patch operations."""

    def __init__(self, operations: Optional[List[PatchOperation]] = None):
        self._operations: List[PatchOperation] = list(operations or [])

    def append(self, operation: PatchOperation) -> None:
        self._operations.append(operation)

    def extend(self, operations: List[PatchOperation]) -> None:
        self._operations.extend(operations)

    def __iter__(self) -> Iterator[PatchOperation]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __bool__(self) -> bool:
        return bool(self._operations)

    def __getitem__(self, index: int) -> PatchOperation:
        return self._operations[index]

    def as_list(self) -> List[Dict[str, Any]]:
        return [op.to_dict() for op in self._operations]

    def to_json(self) -> str:
        return json.dumps(self.as_list())

    def __repr__(self) -> str:
        return f"PatchDocument({self.as_list()!r})"


def diff_map(
    path: Tuple[str, ...], old: Dict[str, Any], new: Dict[str, Any]
) -> List[PatchOperation]:
    """
    Emit one operation per changed key of a string map.

    The API server does not create a missing parent map for key-level adds,
    so an empty prior map is replaced by a single add of the whole map.
    """
    old = old or {}
    new = new or {}
    if not old:
        if new:
            return [PatchOperation(PatchOp.ADD, path, dict(new))]
        return []

    ops = []
    for key in sorted(set(old) | set(new)):
        if key not in new:
            ops.append(PatchOperation(PatchOp.REMOVE, path + (key,)))
        elif key not in old:
            ops.append(PatchOperation(PatchOp.ADD, path + (key,), new[key]))
        elif old[key] != new[key]:
            ops.append(PatchOperation(PatchOp.REPLACE, path + (key,), new[key]))
    return ops


def diff_field(field: Field, old: Any, new: Any) -> List[PatchOperation]:
    """Emit at most one operation for a scalar or list field."""
    if old == new:
        return []
    if field.is_zero(new) and not field.required:
        return [PatchOperation(PatchOp.REMOVE, field.remote_path)]
    if field.is_zero(old):
        # A zero value may have been omitted by the server
        return [PatchOperation(PatchOp.ADD, field.remote_path, new)]
    return [PatchOperation(PatchOp.REPLACE, field.remote_path, new)]


def _server_named(schema: Schema, model: FlatModel) -> bool:
    """True when the name is left to the server through generate_name."""
    if NAME_PATH not in schema or GENERATE_NAME_PATH not in schema:
        return False
    return bool(model.get(GENERATE_NAME_PATH)) and not model.get(NAME_PATH)


def build_patch(
    schema: Schema,
    prior: FlatModel,
    current: FlatModel,
    guard_version: bool = False,
) -> PatchDocument:
    """
    Build the patch that moves the remote object from ``prior`` to ``current``.

    Operations follow field declaration order. Computed fields are never
    diffed, and neither is a name the server generated from generate_name.
    When ``guard_version`` is set and the prior model carries a resource
    version, a leading ``test`` operation makes the patch fail on a
    concurrently modified object.

    Args:
        schema: The kind's field schema
        prior: Last observed model
        current: Desired model

    Returns:
        A PatchDocument, empty when nothing differs
    """
    document = PatchDocument()
    server_named = _server_named(schema, current)
    for f in schema.configurable:
        if server_named and f.path == NAME_PATH:
            continue
        old = prior.get(f.path)
        new = current.get(f.path)
        if f.type == FieldType.MAP:
            document.extend(diff_map(f.remote_path, old, new))
        else:
            document.extend(diff_field(f, old, new))

    if document and guard_version and "metadata.resource_version" in schema:
        version = prior.get("metadata.resource_version")
        if version:
            document = PatchDocument(
                [PatchOperation(PatchOp.TEST, RESOURCE_VERSION_PATH, version)]
                + list(document)
            )
    return document


def _resolve(obj: Any, path: Tuple[str, ...]) -> Tuple[Any, str]:
    """Return the container holding the last segment of ``path``."""
    if not path:
        raise PatchApplyError("Cannot patch the document root")
    node = obj
    for segment in path[:-1]:
        child = _lookup(node, segment)
        if child is _NO_VALUE:
            raise PatchApplyError(f"Path not found: {pointer(path)}")
        node = child
    return node, path[-1]


def _lookup(container: Any, key: str) -> Any:
    if isinstance(container, dict):
        return container.get(key, _NO_VALUE)
    if isinstance(container, list) and key.isdigit() and int(key) < len(container):
        return container[int(key)]
    return _NO_VALUE


def apply_patch(obj: Dict[str, Any], document: PatchDocument) -> Dict[str, Any]:
    """
    Apply a patch document to a copy of ``obj``.

    Raises:
        PatchApplyError: if an operation targets a missing path or a test fails
    """
    result = copy.deepcopy(obj)
    for operation in document:
        container, key = _resolve(result, operation.path)
        current = _lookup(container, key)

        if operation.op == PatchOp.TEST:
            if current is _NO_VALUE or current != operation.value:
                raise PatchApplyError(
                    f"Test failed at {pointer(operation.path)}: "
                    f"expected {operation.value!r}, found "
                    f"{None if current is _NO_VALUE else current!r}"
                )
        elif operation.op == PatchOp.REMOVE:
            if current is _NO_VALUE:
                raise PatchApplyError(f"Path not found: {pointer(operation.path)}")
            if isinstance(container, list):
                del container[int(key)]
            else:
                del container[key]
        elif operation.op == PatchOp.REPLACE:
            if current is _NO_VALUE:
                raise PatchApplyError(f"Path not found: {pointer(operation.path)}")
            if isinstance(container, list):
                container[int(key)] = copy.deepcopy(operation.value)
            else:
                container[key] = copy.deepcopy(operation.value)
        elif operation.op == PatchOp.ADD:
            if isinstance(container, list):
                if key == "-":
                    container.append(copy.deepcopy(operation.value))
                else:
                    container.insert(int(key), copy.deepcopy(operation.value))
            elif isinstance(container, dict):
                container[key] = copy.deepcopy(operation.value)
            else:
                raise PatchApplyError(f"Path not found: {pointer(operation.path)}")
    return result

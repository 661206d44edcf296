"""
Flat Model - path-keyed, schema-typed view of a resource's configuration.

The reconciliation engine reads and writes resources exclusively through this
representation. Every key is a dotted field path declared by a ``Schema``; the
nested shape used by the remote API is described per field by ``remote_path``.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from errors import ValidationError


class FieldType(Enum):
    """Value types a field can hold."""

    STRING = "string"
    INT = "integer"
    BOOL = "boolean"
    MAP = "map"
    LIST = "list"


_ZERO_VALUES = {
    FieldType.STRING: "",
    FieldType.INT: 0,
    FieldType.BOOL: False,
    FieldType.MAP: {},
    FieldType.LIST: [],
}

_PYTHON_TYPES = {
    FieldType.STRING: str,
    FieldType.INT: int,
    FieldType.BOOL: bool,
    FieldType.MAP: dict,
    FieldType.LIST: list,
}


@dataclass(frozen=True)
class Field:
    """Declaration of a single schema field."""

    path: str
    type: FieldType
    remote_path: Tuple[str, ...]
    required: bool = False
    default: Any = None
    computed: bool = False
    description: str = ""
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    def zero(self) -> Any:
        """Return a fresh zero value for this field's type."""
        return copy.deepcopy(_ZERO_VALUES[self.type])

    def default_value(self) -> Any:
        """Return the declared default, falling back to the zero value."""
        if self.default is None:
            return self.zero()
        return copy.deepcopy(self.default)

    def is_zero(self, value: Any) -> bool:
        return value is None or value == _ZERO_VALUES[self.type]

    def accepts(self, value: Any) -> bool:
        """Check the Python type of a value (bool is not an integer here)."""
        if self.type == FieldType.INT and isinstance(value, bool):
            return False
        return isinstance(value, _PYTHON_TYPES[self.type])


class Schema:
    """Ordered set of fields; declaration order drives patch emission order."""

    def __init__(self, fields: Iterable[Field]):
        self._fields: Dict[str, Field] = {}
        for f in fields:
            if f.path in self._fields:
                raise ValueError(f"Duplicate field path: {f.path}")
            self._fields[f.path] = f

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields.values())

    def __contains__(self, path: str) -> bool:
        return path in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def field(self, path: str) -> Field:
        try:
            return self._fields[path]
        except KeyError:
            raise ValidationError(f"Unknown field: {path}") from None

    @property
    def configurable(self) -> List[Field]:
        """Fields set from configuration (everything not computed by the store)."""
        return [f for f in self._fields.values() if not f.computed]

    @property
    def computed(self) -> List[Field]:
        return [f for f in self._fields.values() if f.computed]


class FlatModel:
    """
    Insertion-ordered mapping of field path to value, bound to a schema.

    Paths not declared by the schema are rejected. Values are type-checked on
    assignment so the typed accessors can be trusted by the rest of the engine.
    """

    def __init__(self, schema: Schema, values: Optional[Dict[str, Any]] = None):
        self.schema = schema
        self._values: Dict[str, Any] = {}
        for path, value in (values or {}).items():
            self.set(path, value)

    @classmethod
    def from_config(cls, schema: Schema, config: Dict[str, Any]) -> "FlatModel":
        """
        Build a model from a nested configuration document.

        ``{"metadata": {"name": "high"}, "value": 1}`` becomes the paths
        ``metadata.name`` and ``value``. Map and list fields keep their value
        whole. Keys that do not lead to a declared field raise ValidationError.
        """
        values: Dict[str, Any] = {}
        unknown: List[str] = []

        def walk(prefix: str, node: Dict[str, Any]) -> None:
            for key, value in node.items():
                path = f"{prefix}{key}"
                if path in schema:
                    values[path] = value
                elif isinstance(value, dict) and any(
                    f.path.startswith(path + ".") for f in schema
                ):
                    walk(path + ".", value)
                else:
                    unknown.append(path)

        walk("", config or {})
        if unknown:
            raise ValidationError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                [f"{p}: not a declared field" for p in unknown],
            )

        errors = []
        model = cls(schema)
        for path, value in values.items():
            try:
                model.set(path, value)
            except ValidationError as e:
                errors.extend(e.errors)
        if errors:
            raise ValidationError("; ".join(errors), errors)
        return model

    def set(self, path: str, value: Any) -> None:
        f = self.schema.field(path)
        if value is not None and not f.accepts(value):
            raise ValidationError(
                f"{path}: expected {f.type.value}, got {type(value).__name__}"
            )
        self._values[path] = copy.deepcopy(value)

    def has(self, path: str) -> bool:
        return path in self._values

    def get(self, path: str) -> Any:
        """Return the stored value, or the field's default when unset."""
        f = self.schema.field(path)
        value = self._values.get(path)
        if value is None:
            return f.default_value()
        return copy.deepcopy(value)

    def _typed(self, path: str, expected: FieldType) -> Any:
        f = self.schema.field(path)
        if f.type != expected:
            raise ValidationError(
                f"{path}: field is {f.type.value}, not {expected.value}"
            )
        value = self.get(path)
        if not f.accepts(value):
            raise ValidationError(
                f"{path}: expected {expected.value}, got {type(value).__name__}"
            )
        return value

    def get_string(self, path: str) -> str:
        return self._typed(path, FieldType.STRING)

    def get_int(self, path: str) -> int:
        return self._typed(path, FieldType.INT)

    def get_bool(self, path: str) -> bool:
        return self._typed(path, FieldType.BOOL)

    def get_map(self, path: str) -> Dict[str, Any]:
        return self._typed(path, FieldType.MAP)

    def get_list(self, path: str) -> List[Any]:
        return self._typed(path, FieldType.LIST)

    def items(self) -> Iterator[Tuple[str, Any]]:
        for path, value in self._values.items():
            yield path, copy.deepcopy(value)

    def snapshot(self, include_computed: bool = False) -> Dict[str, Any]:
        """Every schema field with defaults applied, in declaration order."""
        return {
            f.path: self.get(f.path)
            for f in self.schema
            if include_computed or not f.computed
        }

    def to_dict(self) -> Dict[str, Any]:
        """Explicitly set values only, for persistence."""
        return dict(self.items())

    def copy(self) -> "FlatModel":
        return FlatModel(self.schema, self._values)

    def equivalent(self, other: "FlatModel") -> bool:
        """Compare two models on every configurable field, defaults applied."""
        return self.snapshot() == other.snapshot()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlatModel):
            return NotImplemented
        return self.snapshot(include_computed=True) == other.snapshot(
            include_computed=True
        )

    def __repr__(self) -> str:
        return f"FlatModel({self._values!r})"

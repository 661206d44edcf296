"""
Mapper - converts flat models to nested remote objects and back.

``expand`` builds a complete draft for creation, ``flatten`` rebuilds a flat
model from an authoritative read. Both are driven by the field table of a
``Schema``; the identity block is handled by the shared metadata helpers so
every kind treats names, labels and annotations the same way.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from errors import ValidationError
from flatmodel import Field, FieldType, FlatModel, Schema
from validation import validate_model

logger = logging.getLogger(__name__)

METADATA = "metadata"

# RFC 1123 subdomain, or empty when generate_name is used instead
NAME_PATTERN = r"^([a-z0-9]([-a-z0-9.]*[a-z0-9])?)?$"
GENERATE_NAME_PATTERN = r"^([a-z0-9]([-a-z0-9.]*)?)?$"

# Keys in these domains are written by the cluster, not by configuration
INTERNAL_KEY_DOMAINS = ("kubernetes.io/", "k8s.io/")


def metadata_fields(resource: str, namespaced: bool) -> List[Field]:
    """
    Declare the identity block shared by every resource kind.

    Args:
        resource: Human readable kind name used in field descriptions
        namespaced: Whether the kind lives inside a namespace

    Returns:
        Ordered list of metadata fields
    """
    fields = [
        Field(
            "metadata.name",
            FieldType.STRING,
            (METADATA, "name"),
            max_length=253,
            pattern=NAME_PATTERN,
            description=f"Name of the {resource}, must be unique.",
        ),
        Field(
            "metadata.generate_name",
            FieldType.STRING,
            (METADATA, "generateName"),
            max_length=253,
            pattern=GENERATE_NAME_PATTERN,
            description="Prefix used by the server to generate a unique name.",
        ),
    ]
    if namespaced:
        fields.append(
            Field(
                "metadata.namespace",
                FieldType.STRING,
                (METADATA, "namespace"),
                default="default",
                max_length=63,
                pattern=NAME_PATTERN,
                description=f"Namespace that contains the {resource}.",
            )
        )
    fields.extend(
        [
            Field(
                "metadata.labels",
                FieldType.MAP,
                (METADATA, "labels"),
                description=f"String map used to organize and select {resource}s.",
            ),
            Field(
                "metadata.annotations",
                FieldType.MAP,
                (METADATA, "annotations"),
                description="Unstructured key value map stored with the object.",
            ),
            Field(
                "metadata.resource_version",
                FieldType.STRING,
                (METADATA, "resourceVersion"),
                computed=True,
            ),
            Field("metadata.uid", FieldType.STRING, (METADATA, "uid"), computed=True),
            Field(
                "metadata.generation",
                FieldType.INT,
                (METADATA, "generation"),
                computed=True,
            ),
        ]
    )
    return fields


def get_nested(obj: Dict[str, Any], path: Sequence[str], default: Any = None) -> Any:
    node: Any = obj
    for segment in path:
        if not isinstance(node, dict) or segment not in node:
            return default
        node = node[segment]
    return node


def set_nested(obj: Dict[str, Any], path: Sequence[str], value: Any) -> None:
    node = obj
    for segment in path[:-1]:
        node = node.setdefault(segment, {})
    node[path[-1]] = copy.deepcopy(value)


def _is_metadata(field: Field) -> bool:
    return field.remote_path[0] == METADATA


def _is_internal_key(key: str) -> bool:
    return any(domain in key for domain in INTERNAL_KEY_DOMAINS)


def expand_metadata(schema: Schema, model: FlatModel) -> Dict[str, Any]:
    """Build the ``metadata`` block of a draft, omitting empty values."""
    meta: Dict[str, Any] = {}
    for f in schema.configurable:
        if not _is_metadata(f):
            continue
        value = model.get(f.path)
        if f.is_zero(value):
            continue
        set_nested(meta, f.remote_path[1:], value)

    if not meta.get("name") and not meta.get("generateName"):
        raise ValidationError(
            "metadata.name: one of name or generate_name must be set"
        )
    return meta


def flatten_metadata(
    schema: Schema, meta: Dict[str, Any], prior: Optional[FlatModel]
) -> Dict[str, Any]:
    """
    Convert a remote ``metadata`` block to flat values.

    Some kinds omit ``generateName`` on read even when it was submitted; the
    prior value is re-injected so the omission does not show up as drift.
    Cluster-managed labels and annotations are dropped unless configured.
    """
    values: Dict[str, Any] = {}
    for f in schema:
        if not _is_metadata(f):
            continue
        value = get_nested(meta, f.remote_path[1:])

        if f.path == "metadata.generate_name" and not value and prior is not None:
            if prior.has(f.path):
                value = prior.get(f.path)
                logger.debug(f"Re-injecting generate_name {value!r} from prior model")

        if f.type == FieldType.MAP and value:
            configured = prior.get(f.path) if prior is not None else {}
            dropped = [
                k for k in value if _is_internal_key(k) and k not in configured
            ]
            if dropped:
                logger.debug(f"Ignoring cluster managed {f.path}: {dropped}")
            value = {k: v for k, v in value.items() if k not in dropped}

        values[f.path] = f.default_value() if value is None else value
    return values


def expand(schema: Schema, model: FlatModel) -> Dict[str, Any]:
    """
    Build a complete nested draft from a flat model.

    Raises:
        ValidationError: if any value is malformed or out of range
    """
    validate_model(model)

    draft: Dict[str, Any] = {METADATA: expand_metadata(schema, model)}
    for f in schema.configurable:
        if _is_metadata(f):
            continue
        set_nested(draft, f.remote_path, model.get(f.path))
    return draft


def flatten(
    schema: Schema, obj: Dict[str, Any], prior: Optional[FlatModel] = None
) -> FlatModel:
    """
    Rebuild a flat model from a remote object.

    Fields the remote object omits take their declared defaults.
    """
    model = FlatModel(schema)
    meta = obj.get(METADATA) or {}
    for path, value in flatten_metadata(schema, meta, prior).items():
        model.set(path, value)

    for f in schema:
        if _is_metadata(f):
            continue
        value = get_nested(obj, f.remote_path)
        model.set(f.path, f.default_value() if value is None else value)
    return model


def build_id(meta: Dict[str, Any], namespaced: bool) -> str:
    """Derive the local ID from a remote identity block."""
    name = meta.get("name", "")
    if namespaced:
        return f"{meta.get('namespace', 'default')}/{name}"
    return name


def parse_id(local_id: str) -> Tuple[Optional[str], str]:
    """Split a local ID into (namespace, name); namespace is None if cluster scoped."""
    if "/" in local_id:
        namespace, name = local_id.split("/", 1)
        return namespace, name
    return None, local_id

"""
Schema Validation - JSON Schema checks for flat models and config documents.

Field declarations are rendered to a Draft 7 JSON Schema so value ranges,
patterns and required fields are enforced before anything reaches a store.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator

from errors import ValidationError
from flatmodel import FieldType, FlatModel, Schema

logger = logging.getLogger(__name__)

CONFIG_DOCUMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["kind", "address", "config"],
    "properties": {
        "kind": {"type": "string", "minLength": 1},
        "address": {"type": "string", "minLength": 1},
        "config": {"type": "object"},
    },
    "additionalProperties": False,
}


def _field_schema(field) -> Dict[str, Any]:
    if field.type == FieldType.MAP:
        prop: Dict[str, Any] = {
            "type": "object",
            "additionalProperties": {"type": "string"},
        }
    elif field.type == FieldType.LIST:
        prop = {"type": "array"}
    else:
        prop = {"type": field.type.value}

    if field.minimum is not None:
        prop["minimum"] = field.minimum
    if field.maximum is not None:
        prop["maximum"] = field.maximum
    if field.max_length is not None:
        prop["maxLength"] = field.max_length
    if field.pattern is not None:
        prop["pattern"] = field.pattern
    if field.description:
        prop["description"] = field.description
    return prop


def build_json_schema(schema: Schema) -> Dict[str, Any]:
    """
    Render the configurable fields of a schema as a JSON Schema.

    Args:
        schema: The field schema of a resource kind

    Returns:
        A Draft 7 JSON Schema describing a model snapshot
    """
    fields = schema.configurable
    return {
        "type": "object",
        "properties": {f.path: _field_schema(f) for f in fields},
        "required": [f.path for f in fields if f.required],
        "additionalProperties": False,
    }


def _collect_errors(validator: Draft7Validator, instance: Any) -> List[str]:
    messages = []
    errors = sorted(
        validator.iter_errors(instance),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        messages.append(f"{path}: {error.message}")
    return messages


def validate_model(model: FlatModel) -> None:
    """
    Validate every configurable value of a model.

    Required fields must be explicitly set; a default does not satisfy them.

    Raises:
        ValidationError: listing every violation found
    """
    instance = model.snapshot()
    for f in model.schema.configurable:
        if f.required and not model.has(f.path):
            instance.pop(f.path, None)

    validator = Draft7Validator(build_json_schema(model.schema))
    errors = _collect_errors(validator, instance)
    if errors:
        raise ValidationError("; ".join(errors), errors)


def validate_config_document(doc: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate the envelope of a configuration file document.

    Args:
        doc: A parsed YAML/JSON document

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        errors = _collect_errors(Draft7Validator(CONFIG_DOCUMENT_SCHEMA), doc)
    except Exception as e:
        logger.error(f"Unexpected error during validation: {e}")
        return False, f"Validation failed: {str(e)}"

    if not errors:
        return True, None
    return False, "; ".join(errors)

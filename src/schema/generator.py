# src/schema/generator.py — v1
"""JSON-Schema synthesis from pydantic result types.

Walks the declared fields of a BaseModel subclass and emits the flat
JSON-Schema dialect accepted by structured-output APIs: every object lists
all of its properties as required, lists become ``items`` sub-schemas and
nested models become nested object schemas. Constraints are read from the
field metadata (``Field(ge=..., le=..., multiple_of=..., pattern=...)``,
``Literal``, ``Enum`` and the AllowedValues marker).

Schemas are memoized per type; every retrieval returns a deep copy.
"""

from __future__ import annotations

import copy
import datetime as dt
import logging
import threading
import types
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Iterable, Literal, Union, get_args, get_origin

import annotated_types
from pydantic import BaseModel
from pydantic.fields import FieldInfo

logger = logging.getLogger(__name__)

_ARRAY_ORIGINS = (list, tuple, set, frozenset)


class ParameterType(str, Enum):
    """Primitive kinds a schema parameter can hold."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    NONE = "none"


class AllowedValues:
    """Annotation marker restricting a field to an enumerated set.

    Usage:
        color: Annotated[str, AllowedValues("red", "green")]
    """

    __slots__ = ("values",)

    def __init__(self, *values: Any) -> None:
        self.values = tuple(values)

    def __repr__(self) -> str:
        return f"AllowedValues{self.values!r}"


def create_primitive_schema(
    kind: ParameterType,
    description: str | None = None,
    enum: Iterable[Any] | None = None,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    exclusive_minimum: float | None = None,
    exclusive_maximum: float | None = None,
    pattern: str | None = None,
    multiple_of: float | None = None,
) -> dict[str, Any]:
    """Build the schema of a single scalar."""
    schema: dict[str, Any]
    if kind == ParameterType.NUMBER:
        schema = {"type": "number"}
    elif kind == ParameterType.BOOLEAN:
        schema = {"type": "boolean"}
    elif kind == ParameterType.DATETIME:
        schema = {"type": "string", "format": "date-time"}
    else:
        schema = {"type": "string"}

    enum_values = list(enum) if enum is not None else []
    if enum_values:
        schema["enum"] = enum_values
    if description:
        schema["description"] = description
    if minimum is not None:
        schema["minimum"] = minimum
    if maximum is not None:
        schema["maximum"] = maximum
    if exclusive_minimum is not None:
        schema["exclusiveMinimum"] = exclusive_minimum
    if exclusive_maximum is not None:
        schema["exclusiveMaximum"] = exclusive_maximum
    if pattern:
        schema["pattern"] = pattern
    if multiple_of is not None:
        schema["multipleOf"] = multiple_of
    return schema


def build_object_schema(members: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Wrap member schemas in an object schema requiring every member."""
    return {
        "type": "object",
        "properties": members,
        "required": list(members),
    }


_cache: dict[type, dict[str, Any]] = {}
_cache_lock = threading.Lock()


def generate_schema(result_type: type[BaseModel]) -> dict[str, Any]:
    """Return the object schema of result_type as an independent copy.

    Raises:
        TypeError: If result_type is not a pydantic model class.
    """
    cached = _cache.get(result_type)
    if cached is None:
        with _cache_lock:
            cached = _cache.get(result_type)
            if cached is None:
                cached = _build_model_schema(result_type)
                _cache[result_type] = cached
                logger.debug("Generated JSON schema for %s", result_type.__name__)
    return copy.deepcopy(cached)


def generate_named_schema(
    result_type: type[BaseModel], name: str | None = None,
) -> dict[str, Any]:
    """Return ``{"name": ..., "schema": ...}`` as expected by json_schema response formats."""
    return {"name": name or result_type.__name__, "schema": generate_schema(result_type)}


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


def describe_model(result_type: type[BaseModel], header_level: int = 2) -> str:
    """Render a markdown outline of a result type's fields."""
    lines = [f"{'#' * header_level} {result_type.__name__}"]
    _describe_fields(result_type, lines, indent="")
    return "\n".join(lines)


def _describe_fields(model_type: type[BaseModel], lines: list[str], indent: str) -> None:
    for name, field in model_type.model_fields.items():
        schema = _field_schema(field)
        kind = schema.get("type", "string")
        if kind == "array":
            kind = f"array of {schema['items'].get('type', 'string')}"
        line = f"{indent}* {field.alias or name} ({kind})"
        if field.description:
            line += f": {field.description}"
        lines.append(line)
        inner, _ = _unwrap(field.annotation)
        if get_origin(inner) in _ARRAY_ORIGINS:
            args = get_args(inner)
            inner, _ = _unwrap(args[0]) if args else (str, [])
        if _is_model(inner):
            _describe_fields(inner, lines, indent + "  ")


def _build_model_schema(model_type: type[BaseModel]) -> dict[str, Any]:
    if not _is_model(model_type):
        raise TypeError(f"Expected a pydantic model class, got {model_type!r}")
    members = {
        field.alias or name: _field_schema(field)
        for name, field in model_type.model_fields.items()
    }
    return build_object_schema(members)


def _field_schema(field: FieldInfo) -> dict[str, Any]:
    return _annotation_schema(field.annotation, field.description, list(field.metadata))


def _annotation_schema(
    annotation: Any, description: str | None, metadata: list[Any],
) -> dict[str, Any]:
    annotation, inner_metadata = _unwrap(annotation)
    metadata = metadata + inner_metadata

    if get_origin(annotation) in _ARRAY_ORIGINS or annotation in _ARRAY_ORIGINS:
        args = get_args(annotation)
        item_type = args[0] if args else str
        schema: dict[str, Any] = {
            "type": "array",
            "items": _annotation_schema(item_type, None, []),
        }
        if description:
            schema["description"] = description
        return schema

    if _is_model(annotation):
        schema = _build_model_schema(annotation)
        if description:
            schema["description"] = description
        return schema

    kind, type_enum = _classify(annotation)
    constraints = _collect_constraints(metadata)
    allowed = constraints.pop("enum", None) or type_enum
    return create_primitive_schema(kind, description, allowed, **constraints)


def _unwrap(annotation: Any) -> tuple[Any, list[Any]]:
    """Strip Annotated and Optional wrappers, collecting Annotated metadata."""
    metadata: list[Any] = []
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            base, *extra = get_args(annotation)
            metadata.extend(extra)
            annotation = base
        elif origin is Union or origin is types.UnionType:
            members = [a for a in get_args(annotation) if a is not type(None)]
            annotation = members[0] if members else str
        else:
            return annotation, metadata


def _classify(annotation: Any) -> tuple[ParameterType, list[Any] | None]:
    if get_origin(annotation) is Literal:
        values = list(get_args(annotation))
        return _kind_of_value(values[0]) if values else ParameterType.STRING, values
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return ParameterType.STRING, [str(member.value) for member in annotation]
        if issubclass(annotation, bool):
            return ParameterType.BOOLEAN, None
        if issubclass(annotation, (int, float, Decimal)):
            return ParameterType.NUMBER, None
        if issubclass(annotation, (dt.datetime, dt.date)):
            return ParameterType.DATETIME, None
        if issubclass(annotation, str):
            return ParameterType.STRING, None
    return ParameterType.NONE, None


def _kind_of_value(value: Any) -> ParameterType:
    if isinstance(value, bool):
        return ParameterType.BOOLEAN
    if isinstance(value, (int, float)):
        return ParameterType.NUMBER
    return ParameterType.STRING


def _collect_constraints(metadata: Iterable[Any]) -> dict[str, Any]:
    found: dict[str, Any] = {}
    for item in metadata:
        if isinstance(item, FieldInfo):
            found.update(_collect_constraints(item.metadata))
        elif isinstance(item, AllowedValues):
            found["enum"] = list(item.values)
        elif isinstance(item, annotated_types.Interval):
            found.update(_collect_constraints(item))
        elif isinstance(item, annotated_types.Ge):
            found["minimum"] = item.ge
        elif isinstance(item, annotated_types.Gt):
            found["exclusive_minimum"] = item.gt
        elif isinstance(item, annotated_types.Le):
            found["maximum"] = item.le
        elif isinstance(item, annotated_types.Lt):
            found["exclusive_maximum"] = item.lt
        elif isinstance(item, annotated_types.MultipleOf):
            found["multiple_of"] = item.multiple_of
        elif isinstance(getattr(item, "pattern", None), str):
            found["pattern"] = item.pattern
    return found


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)

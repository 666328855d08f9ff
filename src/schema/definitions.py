# src/schema/definitions.py — v1
"""Runtime schema definitions built from parameter lists.

A SchemaDefinition is a named, mutable list of SchemaParameter objects. It
can emit a JSON schema, emit a flat values mapping, absorb a values mapping
returned by a model, render itself as markdown for prompts and be deep
cloned. FunctionDefinition adds a description and emits the function
envelope expected by tool-calling APIs.

Definitions are plain pydantic models, so they load directly from
configuration (``SchemaDefinition.model_validate(data)`` or ``load(path)``).
"""

from __future__ import annotations

import datetime as dt
import json
import math
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel, model_validator

from polyllm.schema.generator import ParameterType, build_object_schema, create_primitive_schema


class SchemaParameter(BaseModel):
    """One named scalar slot of a schema definition."""

    name: str
    description: str = ""
    parameter_type: ParameterType = ParameterType.STRING
    required: bool = True
    value: str | None = None
    enum: list[str] | None = None
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    multiple_of: float | None = None

    def to_schema(self) -> dict[str, Any]:
        return create_primitive_schema(
            self.parameter_type,
            self.description,
            self.enum,
            minimum=self.minimum,
            maximum=self.maximum,
            pattern=self.pattern,
            multiple_of=self.multiple_of,
        )

    def get_value(self) -> Any:
        """Coerce the stored text into the declared primitive kind.

        Unparsable numbers become 0 and unparsable booleans False. An
        unparsable datetime yields None.
        """
        raw = self.value
        if self.parameter_type == ParameterType.NUMBER:
            return _parse_number(raw)
        if self.parameter_type == ParameterType.BOOLEAN:
            return _parse_bool(raw)
        if self.parameter_type == ParameterType.DATETIME:
            parsed = _parse_datetime(raw)
            return parsed.isoformat() if parsed is not None else None
        if self.parameter_type == ParameterType.NONE:
            return None
        return raw

    def render_markdown(self) -> str:
        if self.parameter_type == ParameterType.NONE:
            line = f"* {self.name}"
        else:
            line = f"* {self.name} : {self.value if self.value is not None else ''}"
        if self.description:
            line += f"\n  * {self.description}"
        return line


class SchemaDefinition(BaseModel):
    """Named parameter list that round-trips through structured output."""

    name: str
    parameters: list[SchemaParameter] = []

    @model_validator(mode="after")
    def _unique_parameter_names(self) -> SchemaDefinition:
        seen: set[str] = set()
        for parameter in self.parameters:
            if parameter.name in seen:
                raise ValueError(
                    f"Duplicate parameter name {parameter.name!r} in schema {self.name!r}"
                )
            seen.add(parameter.name)
        return self

    @classmethod
    def load(cls, path: str | Path) -> SchemaDefinition:
        """Read a definition from a JSON file."""
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    def get_parameter(self, name: str) -> SchemaParameter | None:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def _selected(self, names: Iterable[str] | None) -> list[SchemaParameter]:
        if names is None:
            return list(self.parameters)
        wanted = set(names)
        return [p for p in self.parameters if p.name in wanted]

    def generate_schema(self, names: Iterable[str] | None = None) -> dict[str, Any]:
        """Return ``{"name": ..., "schema": <object schema>}``."""
        members = {p.name: p.to_schema() for p in self._selected(names) if p.name}
        return {"name": self.name, "schema": build_object_schema(members)}

    def generate_values(self, names: Iterable[str] | None = None) -> dict[str, Any]:
        """Flat mapping of every named parameter holding a value."""
        values: dict[str, Any] = {}
        for parameter in self._selected(names):
            if not parameter.name or parameter.value in (None, ""):
                continue
            coerced = parameter.get_value()
            if coerced is not None:
                values[parameter.name] = coerced
        return values

    def absorb(self, values: dict[str, Any]) -> SchemaDefinition:
        """Overwrite stored values for every parameter named in values.

        Returns self so that ``definition.clone().absorb(values)`` chains.
        """
        for parameter in self.parameters:
            if parameter.name and parameter.name in values:
                parameter.value = stringify_value(values[parameter.name])
        return self

    def render_markdown(
        self,
        header: str | None = None,
        header_level: int = 2,
        names: Iterable[str] | None = None,
    ) -> str:
        lines = [f"{'#' * header_level} {header or self.name}"]
        lines.extend(p.render_markdown() for p in self._selected(names))
        return "\n".join(lines)

    def clone(self) -> SchemaDefinition:
        return self.model_copy(deep=True)


class FunctionDefinition(SchemaDefinition):
    """Schema definition offered to a model as a callable function."""

    description: str = ""

    def generate_schema(self, names: Iterable[str] | None = None) -> dict[str, Any]:
        selected = [p for p in self._selected(names) if p.name]
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {p.name: p.to_schema() for p in selected},
                "required": [p.name for p in selected if p.required],
            },
        }

    def clone(self) -> FunctionDefinition:
        return self.model_copy(deep=True)


def stringify_value(value: Any) -> str | None:
    """Render a JSON scalar or container as the text stored in a parameter."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _parse_number(raw: str | None) -> float:
    try:
        number = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _parse_bool(raw: str | None) -> bool:
    if raw is None:
        return False
    return raw.strip().lower() == "true"


def _parse_datetime(raw: str | None) -> dt.datetime | None:
    if not raw:
        return None
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return dt.datetime.fromisoformat(text)
    except ValueError:
        return None

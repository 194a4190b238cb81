"""Parameter schema model for tool arguments.

A :class:`ParameterSchema` is the immutable, provider-neutral description
of what a tool accepts: a tree of named, typed :class:`ParameterField`
objects. It renders to JSON Schema for advertising to a model and
validates the raw arguments the model sends back.

Schemas can be written by hand, read from an existing JSON-Schema
object (:meth:`ParameterSchema.from_json_schema`), or derived from a
pydantic model (:meth:`ParameterSchema.from_model`).
"""

from __future__ import annotations

import copy
import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentloop.core.errors import InvalidArgumentsError, SchemaError

if TYPE_CHECKING:
    from pydantic import BaseModel


class ParameterType(enum.Enum):
    """JSON types a parameter may take."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


def _matches_type(kind: ParameterType, value: Any) -> bool:
    """Return True if value is an instance of the JSON type."""
    # bool is an int subclass; never let it satisfy a numeric type
    if kind is ParameterType.STRING:
        return isinstance(value, str)
    if kind is ParameterType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind is ParameterType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind is ParameterType.BOOLEAN:
        return isinstance(value, bool)
    if kind is ParameterType.ARRAY:
        return isinstance(value, (list, tuple))
    return isinstance(value, Mapping)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


@dataclass(frozen=True, slots=True)
class ParameterField:
    """One named, typed argument (or nested element) of a tool.

    ``items`` describes array elements and is only valid for arrays;
    ``properties`` describes the keys of a nested object and is only
    valid for objects. ``default`` is applied when an optional field is
    absent; ``None`` means no default.
    """

    name: str
    type: ParameterType
    description: str | None = None
    required: bool = True
    default: Any = None
    enum: tuple[Any, ...] | None = None
    items: ParameterField | None = None
    properties: tuple[ParameterField, ...] = field(default=())

    def __post_init__(self) -> None:
        if not isinstance(self.type, ParameterType):
            try:
                object.__setattr__(self, "type", ParameterType(self.type))
            except ValueError:
                msg = f"Unsupported parameter type for '{self.name}': {self.type!r}"
                raise SchemaError(msg) from None
        if self.enum is not None:
            object.__setattr__(self, "enum", tuple(self.enum))
        object.__setattr__(self, "properties", tuple(self.properties))

        if self.required and self.default is not None:
            msg = f"Required field '{self.name}' cannot have a default"
            raise SchemaError(msg)
        if self.items is not None and self.type is not ParameterType.ARRAY:
            msg = f"Field '{self.name}' declares items but is not an array"
            raise SchemaError(msg)
        if self.properties and self.type is not ParameterType.OBJECT:
            msg = f"Field '{self.name}' declares properties but is not an object"
            raise SchemaError(msg)
        _check_unique_names(self.properties, owner=self.name)

        if self.enum is not None:
            if not self.enum:
                msg = f"Field '{self.name}' declares an empty enum"
                raise SchemaError(msg)
            for value in self.enum:
                if not _matches_type(self.type, value):
                    msg = (
                        f"Enum value {value!r} of field '{self.name}' is not "
                        f"of type {self.type.value}"
                    )
                    raise SchemaError(msg)
        if self.default is not None:
            problems: list[str] = []
            _check_value(self, self.default, self.name, problems)
            if problems:
                msg = f"Invalid default for field '{self.name}': {'; '.join(problems)}"
                raise SchemaError(msg)

    def to_json_schema(self) -> dict[str, Any]:
        """Render this field as a JSON-Schema property."""
        out: dict[str, Any] = {"type": self.type.value}
        if self.description:
            out["description"] = self.description
        if self.enum is not None:
            out["enum"] = list(self.enum)
        if self.items is not None:
            out["items"] = self.items.to_json_schema()
        if self.properties:
            out["properties"] = {p.name: p.to_json_schema() for p in self.properties}
            required = [p.name for p in self.properties if p.required]
            if required:
                out["required"] = required
        if self.default is not None:
            out["default"] = copy.deepcopy(self.default)
        return out


def _check_unique_names(fields: tuple[ParameterField, ...], *, owner: str) -> None:
    seen: set[str] = set()
    for f in fields:
        if not isinstance(f, ParameterField):
            msg = f"Expected ParameterField in '{owner}', got {type(f).__name__}"
            raise SchemaError(msg)
        if not f.name:
            msg = f"Field names in '{owner}' must be non-empty"
            raise SchemaError(msg)
        if f.name in seen:
            msg = f"Duplicate field name in '{owner}': {f.name}"
            raise SchemaError(msg)
        seen.add(f.name)


def _check_value(
    spec: ParameterField,
    value: Any,
    path: str,
    problems: list[str],
) -> Any:
    """Check value against spec, appending problems. Returns normalized value."""
    if not _matches_type(spec.type, value):
        problems.append(
            f"field '{path}' must be of type {spec.type.value}, got {_json_type_name(value)}"
        )
        return value

    if spec.enum is not None and value not in spec.enum:
        allowed = ", ".join(repr(v) for v in spec.enum)
        problems.append(f"field '{path}' must be one of [{allowed}], got {value!r}")
        return value

    if spec.type is ParameterType.ARRAY and spec.items is not None:
        return [
            _check_value(spec.items, item, f"{path}[{i}]", problems)
            for i, item in enumerate(value)
        ]

    if spec.type is ParameterType.OBJECT and spec.properties:
        return _check_object(
            spec.properties, value, path, allow_extra=False, problems=problems
        )

    if spec.type is ParameterType.ARRAY:
        return list(value)
    if spec.type is ParameterType.OBJECT:
        return dict(value)
    return value


def _check_object(
    fields: tuple[ParameterField, ...],
    value: Mapping[str, Any],
    path: str,
    *,
    allow_extra: bool,
    problems: list[str],
) -> dict[str, Any]:
    result: dict[str, Any] = {}
    known = {f.name for f in fields}

    for f in fields:
        field_path = _join(path, f.name)
        # An explicit null for an optional field counts as absent
        present = f.name in value and value[f.name] is not None
        if present:
            result[f.name] = _check_value(f, value[f.name], field_path, problems)
        elif f.required:
            problems.append(f"missing required field '{field_path}'")
        elif f.default is not None:
            result[f.name] = copy.deepcopy(f.default)

    for key in value:
        if key in known:
            continue
        if allow_extra:
            result[key] = value[key]
        else:
            problems.append(f"unknown field '{_join(path, str(key))}'")

    return result


def _json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


@dataclass(frozen=True, slots=True)
class ParameterSchema:
    """Immutable description of a tool's arguments.

    Field names are unique. Unknown argument keys are rejected unless
    ``additional_properties`` is True.
    """

    fields: tuple[ParameterField, ...] = ()
    additional_properties: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        _check_unique_names(self.fields, owner="<root>")

    @property
    def names(self) -> list[str]:
        """Field names in declaration order."""
        return [f.name for f in self.fields]

    @property
    def required_names(self) -> list[str]:
        """Names of required fields in declaration order."""
        return [f.name for f in self.fields if f.required]

    def get(self, name: str) -> ParameterField | None:
        """Return the top-level field with this name, if any."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_json_schema(self) -> dict[str, Any]:
        """Render as a JSON-Schema ``object`` suitable for LLM tool APIs."""
        out: dict[str, Any] = {
            "type": "object",
            "properties": {f.name: f.to_json_schema() for f in self.fields},
        }
        required = self.required_names
        if required:
            out["required"] = required
        if self.additional_properties:
            out["additionalProperties"] = True
        return out

    def validate(self, arguments: Any, *, tool_name: str = "") -> dict[str, Any]:
        """Validate decoded arguments against this schema.

        Returns:
            A new dict with defaults filled in for absent optional fields.

        Raises:
            InvalidArgumentsError: Listing every problem found.
        """
        if not isinstance(arguments, Mapping):
            raise InvalidArgumentsError(
                tool_name,
                [f"arguments must be a JSON object, got {_json_type_name(arguments)}"],
            )
        problems: list[str] = []
        result = _check_object(
            self.fields,
            arguments,
            "",
            allow_extra=self.additional_properties,
            problems=problems,
        )
        if problems:
            raise InvalidArgumentsError(tool_name, problems)
        return result

    # ── Builders ──────────────────────────────────────────────

    @classmethod
    def from_json_schema(cls, schema: Mapping[str, Any]) -> ParameterSchema:
        """Build a schema from a JSON-Schema ``object`` definition.

        Supports ``$ref`` into ``$defs`` and nullable ``anyOf`` unions as
        emitted by pydantic. Anything else unsupported raises SchemaError.
        """
        defs = schema.get("$defs", {})
        root = _resolve(schema, defs)
        root_type = root.get("type", "object")
        if root_type != "object":
            msg = f"Tool parameters must be an object schema, got {root_type!r}"
            raise SchemaError(msg)
        return cls(
            fields=_fields_from_json(root, defs),
            additional_properties=root.get("additionalProperties") is True,
        )

    @classmethod
    def from_model(cls, model: type[BaseModel]) -> ParameterSchema:
        """Derive a schema from a pydantic model's fields."""
        return cls.from_json_schema(model.model_json_schema())


def _resolve(node: Mapping[str, Any], defs: Mapping[str, Any]) -> Mapping[str, Any]:
    ref = node.get("$ref")
    if ref is None:
        return node
    prefix = "#/$defs/"
    if not isinstance(ref, str) or not ref.startswith(prefix):
        msg = f"Unsupported $ref: {ref!r}"
        raise SchemaError(msg)
    name = ref[len(prefix) :]
    if name not in defs:
        msg = f"Unresolved $ref: {ref}"
        raise SchemaError(msg)
    merged = dict(defs[name])
    # Sibling keys (description, default) take precedence over the target
    merged.update({k: v for k, v in node.items() if k != "$ref"})
    return _resolve(merged, defs)


def _fields_from_json(
    node: Mapping[str, Any],
    defs: Mapping[str, Any],
) -> tuple[ParameterField, ...]:
    properties = node.get("properties", {})
    required = set(node.get("required", []))
    return tuple(
        _field_from_json(name, prop, defs, required=name in required)
        for name, prop in properties.items()
    )


def _field_from_json(
    name: str,
    prop: Mapping[str, Any],
    defs: Mapping[str, Any],
    *,
    required: bool,
) -> ParameterField:
    prop = _resolve(prop, defs)

    if "anyOf" in prop:
        options = [_resolve(o, defs) for o in prop["anyOf"]]
        non_null = [o for o in options if o.get("type") != "null"]
        if len(non_null) != 1:
            msg = f"Field '{name}': only nullable unions are supported"
            raise SchemaError(msg)
        # Keep outer annotations (description, default) over the branch
        prop = {**non_null[0], **{k: v for k, v in prop.items() if k != "anyOf"}}

    raw_type = prop.get("type")
    if isinstance(raw_type, list):
        candidates = [t for t in raw_type if t != "null"]
        raw_type = candidates[0] if len(candidates) == 1 else None
    if raw_type is None and "enum" in prop:
        raw_type = "string"
    if raw_type is None:
        msg = f"Field '{name}' has no usable type"
        raise SchemaError(msg)

    items = None
    if raw_type == "array" and "items" in prop:
        items = _field_from_json("items", prop["items"], defs, required=True)

    properties: tuple[ParameterField, ...] = ()
    if raw_type == "object":
        properties = _fields_from_json(prop, defs)

    enum_values = prop.get("enum")
    return ParameterField(
        name=name,
        type=raw_type,
        description=prop.get("description"),
        required=required,
        default=None if required else copy.deepcopy(prop.get("default")),
        enum=tuple(enum_values) if enum_values is not None else None,
        items=items,
        properties=properties,
    )

"""Recursive validation of values against contract schema nodes."""

import json
import math
import re
from functools import lru_cache

from contract_monitor.errors import SchemaViolation, SpecInvalid
from contract_monitor.spec.store import SchemaSpecStore, ref_name

MAX_DEPTH = 64

FORMAT_PATTERNS = {
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "uri": re.compile(r"^https?://.+"),
    "date-time": re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})?$"),
    "date": re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    "time": re.compile(r"^\d{2}:\d{2}:\d{2}$"),
    "uuid": re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE),
}

_MULTIPLE_TOLERANCE = 1e-9


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def type_name(value: object) -> str:
    """JSON type name of a Python value, as used in error messages."""
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
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class SchemaValidator:
    """Validates values against schema nodes, resolving references through a store."""

    def __init__(self, store: SchemaSpecStore | None = None, max_depth: int = MAX_DEPTH):
        self.store = store
        self.max_depth = max_depth

    def validate(self, value: object, schema: dict, context: str = "value") -> None:
        """Raise SchemaViolation at the first place ``value`` breaks ``schema``."""
        self._validate(value, schema, context, 0)

    def resolve(self, schema: dict) -> dict:
        """Follow a chain of references to the first concrete schema node."""
        seen: set[str] = set()
        while isinstance(schema, dict) and "$ref" in schema:
            name = ref_name(schema["$ref"])
            if name in seen:
                raise SpecInvalid(f"circular reference through {schema['$ref']!r}")
            seen.add(name)
            schema = self._lookup(schema["$ref"])
        return schema

    def _lookup(self, ref: str) -> dict:
        if self.store is None:
            raise SpecInvalid(f"cannot resolve {ref!r} without a contract store")
        return self.store.resolve_ref(ref)

    # -- dispatch -------------------------------------------------------------

    def _validate(self, value: object, schema: dict, context: str, depth: int) -> None:
        if depth > self.max_depth:
            raise SchemaViolation(context, f"schema nesting exceeds maximum depth of {self.max_depth}")

        schema = self.resolve(schema)
        if not schema:
            return

        if value is None and schema.get("nullable"):
            return

        for sub_schema in schema.get("allOf", []):
            self._validate(value, sub_schema, context, depth + 1)

        schema_type = schema.get("type") or _infer_type(schema, value)

        if schema_type == "object":
            self._validate_object(value, schema, context, depth)
        elif schema_type == "array":
            self._validate_array(value, schema, context, depth)
        elif schema_type == "string":
            self._validate_string(value, schema, context)
        elif schema_type in ("number", "integer"):
            self._validate_number(value, schema, context)
        elif schema_type == "boolean":
            if not isinstance(value, bool):
                raise SchemaViolation(context, f"Expected boolean, got {type_name(value)}")
            self._validate_enum(value, schema, context)
        elif schema_type == "null":
            if value is not None:
                raise SchemaViolation(context, f"Expected null, got {type_name(value)}")
        else:
            self._validate_enum(value, schema, context)

    # -- object / array --------------------------------------------------------

    def _validate_object(self, value: object, schema: dict, context: str, depth: int) -> None:
        if not isinstance(value, dict):
            raise SchemaViolation(context, f"Expected object, got {type_name(value)}")

        for name in schema.get("required", []):
            if name not in value:
                raise SchemaViolation(f"{context}.{name}", f"Missing required property '{name}'")

        properties = schema.get("properties", {})
        additional = schema.get("additionalProperties", True)
        for name, prop_value in value.items():
            if name in properties:
                self._validate(prop_value, properties[name], f"{context}.{name}", depth + 1)
            elif additional is False:
                raise SchemaViolation(f"{context}.{name}", f"Additional property '{name}' not allowed")
            elif isinstance(additional, dict):
                self._validate(prop_value, additional, f"{context}.{name}", depth + 1)

        count = len(value)
        if "minProperties" in schema and count < schema["minProperties"]:
            raise SchemaViolation(context, f"Object must have at least {schema['minProperties']} properties")
        if "maxProperties" in schema and count > schema["maxProperties"]:
            raise SchemaViolation(context, f"Object must have at most {schema['maxProperties']} properties")

    def _validate_array(self, value: object, schema: dict, context: str, depth: int) -> None:
        if not isinstance(value, list):
            raise SchemaViolation(context, f"Expected array, got {type_name(value)}")

        if "minItems" in schema and len(value) < schema["minItems"]:
            raise SchemaViolation(context, f"Array must have at least {schema['minItems']} items")
        if "maxItems" in schema and len(value) > schema["maxItems"]:
            raise SchemaViolation(context, f"Array must have at most {schema['maxItems']} items")

        items = schema.get("items")
        if isinstance(items, dict):
            for index, item in enumerate(value):
                self._validate(item, items, f"{context}[{index}]", depth + 1)

        if schema.get("uniqueItems"):
            seen = set()
            for index, item in enumerate(value):
                canonical = json.dumps(_canonical(item), sort_keys=True, default=str)
                if canonical in seen:
                    raise SchemaViolation(context, f"Array items must be unique (duplicate at [{index}])")
                seen.add(canonical)

    # -- primitives -------------------------------------------------------------

    def _validate_string(self, value: object, schema: dict, context: str) -> None:
        if not isinstance(value, str):
            raise SchemaViolation(context, f"Expected string, got {type_name(value)}")

        if "minLength" in schema and len(value) < schema["minLength"]:
            raise SchemaViolation(context, f"String must be at least {schema['minLength']} characters long")
        if "maxLength" in schema and len(value) > schema["maxLength"]:
            raise SchemaViolation(context, f"String must be at most {schema['maxLength']} characters long")

        pattern = schema.get("pattern")
        if pattern and not _compile(pattern).search(value):
            raise SchemaViolation(context, f"String does not match pattern {pattern!r}")

        fmt = schema.get("format")
        if fmt in FORMAT_PATTERNS and not FORMAT_PATTERNS[fmt].match(value):
            raise SchemaViolation(context, f"Invalid {fmt} format")

        self._validate_enum(value, schema, context)

    def _validate_number(self, value: object, schema: dict, context: str) -> None:
        expected = schema.get("type", "number")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SchemaViolation(context, f"Expected {expected}, got {type_name(value)}")
        if isinstance(value, float) and not math.isfinite(value):
            raise SchemaViolation(context, f"Expected {expected}, got non-finite number")
        if expected == "integer" and isinstance(value, float) and not value.is_integer():
            raise SchemaViolation(context, f"Expected integer, got {value}")

        minimum = schema.get("minimum")
        maximum = schema.get("maximum")
        exclusive_min = schema.get("exclusiveMinimum")
        exclusive_max = schema.get("exclusiveMaximum")

        # OpenAPI 3.0 spells exclusive bounds as booleans next to minimum/maximum
        if exclusive_min is True and minimum is not None:
            exclusive_min, minimum = minimum, None
        if exclusive_max is True and maximum is not None:
            exclusive_max, maximum = maximum, None

        if minimum is not None and value < minimum:
            raise SchemaViolation(context, f"Value must be >= {minimum}")
        if maximum is not None and value > maximum:
            raise SchemaViolation(context, f"Value must be <= {maximum}")
        if _is_bound(exclusive_min) and value <= exclusive_min:
            raise SchemaViolation(context, f"Value must be > {exclusive_min}")
        if _is_bound(exclusive_max) and value >= exclusive_max:
            raise SchemaViolation(context, f"Value must be < {exclusive_max}")

        multiple_of = schema.get("multipleOf")
        if multiple_of:
            quotient = value / multiple_of
            if abs(quotient - round(quotient)) > _MULTIPLE_TOLERANCE:
                raise SchemaViolation(context, f"Value must be a multiple of {multiple_of}")

        self._validate_enum(value, schema, context)

    def _validate_enum(self, value: object, schema: dict, context: str) -> None:
        allowed = schema.get("enum")
        if allowed is not None and value not in allowed:
            raise SchemaViolation(context, "Value must be one of: " + ", ".join(str(a) for a in allowed))


def _is_bound(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _infer_type(schema: dict, value: object) -> str | None:
    if "properties" in schema:
        return "object"
    if "items" in schema:
        return "array"
    # keywords on an untyped node apply to values of the matching kind
    if isinstance(value, str):
        return "string"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return "number"
    return None


def _canonical(value: object) -> object:
    """Whole-number floats as ints, recursively, so 1 and 1.0 serialise alike."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _canonical(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_canonical(v) for v in value]
    return value

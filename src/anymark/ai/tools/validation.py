"""Parameter schema checks and argument validation for tools.

Tool arguments arrive from the model as loosely typed JSON. Before a tool body
runs, arguments are coerced towards the declared JSON Schema types and then
validated with :mod:`jsonschema`. Every violation is collected in one pass so
a single rejected call reports all of its problems at once.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import jsonschema
from jsonschema.exceptions import SchemaError

__all__ = [
    "ValidationResult",
    "validate_schema",
    "validate_params",
    "coerce_value",
]

LOGGER = logging.getLogger(__name__)

MAX_SCHEMA_ERRORS = 25

_TYPE_LABELS = {
    "string": "a string",
    "number": "a number",
    "integer": "an integer",
    "boolean": "a boolean",
    "array": "an array",
    "object": "an object",
    "null": "null",
}

# Violations already reported with a dedicated message before schema validation.
_PRECHECKED_VALIDATORS = frozenset({"required", "additionalProperties"})


@dataclass(slots=True)
class ValidationResult:
    """Outcome of :func:`validate_params`.

    Attributes:
        valid: ``True`` when no violations were found.
        errors: Every violation found, in discovery order.
        sanitized: Coerced parameters; the only value ever passed to a tool body.
    """

    valid: bool
    errors: list[str] = field(default_factory=list)
    sanitized: dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return "Invalid parameters: " + "; ".join(self.errors)


# ---------------------------------------------------------------------------
# Schema structure
# ---------------------------------------------------------------------------
def validate_schema(schema: Any) -> list[str]:
    """Return structural problems with a tool's parameter schema.

    The registry logs these but still registers the tool.
    """

    if not isinstance(schema, Mapping):
        return ["Schema must be an object"]
    problems: list[str] = []
    if schema.get("type") != "object":
        problems.append('Schema type must be "object"')
    if not isinstance(schema.get("properties"), Mapping):
        problems.append('Schema must have "properties" object')
    if "required" in schema and not isinstance(schema.get("required"), list):
        problems.append('Schema "required" must be an array')
    if not problems:
        try:
            _validator_class().check_schema(schema)
        except SchemaError as exc:
            problems.append(f"Invalid JSON schema: {exc.message}")
    return problems


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------
def validate_params(params: Any, schema: Mapping[str, Any]) -> ValidationResult:
    """Coerce and validate ``params`` against ``schema``.

    Coercion happens first (``"123"`` becomes ``123``, ``"true"`` becomes
    ``True``) and range and enum constraints are checked against the coerced
    value.

    Args:
        params: Raw arguments decoded from the model's tool call.
        schema: JSON Schema object describing the tool's parameters.

    Returns:
        A :class:`ValidationResult` carrying all errors and sanitized params.
    """

    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        return ValidationResult(valid=False, errors=["Parameters must be an object"])

    if not isinstance(schema, Mapping):
        return ValidationResult(valid=True, sanitized=dict(params))

    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}
    required = schema.get("required")
    if not isinstance(required, list):
        required = []
    closed = schema.get("additionalProperties") is False

    errors: list[str] = []
    reported: set[str] = set()
    sanitized: dict[str, Any] = {}

    for key in required:
        if params.get(key) is None:
            errors.append(f"Missing required parameter: {key}")
            reported.add(key)

    for key, value in params.items():
        prop_schema = properties.get(key)
        if prop_schema is None:
            if closed:
                errors.append(f"Unknown parameter: {key}")
                reported.add(key)
                continue
            sanitized[key] = value
            continue
        coerced, problem = coerce_value(value, prop_schema)
        if problem is not None:
            errors.append(f'Parameter "{key}" {problem}')
            reported.add(key)
        sanitized[key] = coerced

    errors.extend(_schema_errors(sanitized, schema, skip_keys=reported))
    return ValidationResult(valid=not errors, errors=errors, sanitized=sanitized)


def coerce_value(value: Any, prop_schema: Any) -> tuple[Any, str | None]:
    """Best-effort coercion of a single value towards its declared type.

    Returns:
        The (possibly) coerced value and an error fragment when the value
        cannot represent the declared type at all.
    """

    if not isinstance(prop_schema, Mapping):
        return value, None
    declared = prop_schema.get("type")
    if declared in ("number", "integer"):
        if isinstance(value, bool):
            return value, "must be a number"
        if isinstance(value, str):
            number = _parse_number(value)
            if number is None:
                return value, "must be a number"
            return number, None
        if not isinstance(value, (int, float)):
            return value, "must be a number"
        return value, None
    if declared == "boolean" and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True, None
        if lowered == "false":
            return False, None
    return value, None


def _parse_number(text: str) -> int | float | None:
    raw = text.strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        number = float(raw)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _schema_errors(
    instance: Mapping[str, Any],
    schema: Mapping[str, Any],
    *,
    skip_keys: Iterable[str],
) -> list[str]:
    skipped = set(skip_keys)
    validator_cls = _validator_class()
    try:
        validator_cls.check_schema(schema)
    except SchemaError:
        return _property_errors(instance, schema, skipped)

    messages: list[str] = []
    for issue in validator_cls(schema).iter_errors(dict(instance)):
        if issue.validator in _PRECHECKED_VALIDATORS and not issue.absolute_path:
            continue
        path = list(issue.absolute_path)
        if path and path[0] in skipped:
            continue
        messages.append(_format_issue(issue, path))
        if len(messages) >= MAX_SCHEMA_ERRORS:
            break
    return messages


def _property_errors(
    instance: Mapping[str, Any],
    schema: Mapping[str, Any],
    skipped: set[str],
) -> list[str]:
    """Validate property by property when the tool schema as a whole is malformed.

    Sub-schemas that are themselves invalid are skipped, so a tool registered
    with a logged schema problem stays callable.
    """

    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        return []
    validator_cls = _validator_class()
    messages: list[str] = []
    for key, value in instance.items():
        prop_schema = properties.get(key)
        if key in skipped or not isinstance(prop_schema, Mapping):
            continue
        try:
            validator_cls.check_schema(prop_schema)
        except SchemaError as exc:
            LOGGER.debug("Skipping invalid schema for parameter %s: %s", key, exc.message)
            continue
        for issue in validator_cls(prop_schema).iter_errors(value):
            messages.append(_format_issue(issue, [key, *issue.absolute_path]))
            if len(messages) >= MAX_SCHEMA_ERRORS:
                return messages
    return messages


def _format_issue(issue: jsonschema.ValidationError, path: Sequence[Any]) -> str:
    if not path:
        return issue.message
    label = _format_path(path)
    kind = issue.validator
    if kind == "type":
        expected = issue.validator_value
        if isinstance(expected, str):
            return f'Parameter "{label}" must be {_TYPE_LABELS.get(expected, expected)}'
        return f'Parameter "{label}" must be one of types: {", ".join(map(str, expected))}'
    if kind == "minimum":
        return f'Parameter "{label}" must be >= {issue.validator_value}'
    if kind == "maximum":
        return f'Parameter "{label}" must be <= {issue.validator_value}'
    if kind == "enum":
        choices = ", ".join(str(choice) for choice in issue.validator_value)
        return f'Parameter "{label}" must be one of: {choices}'
    return f'Parameter "{label}": {issue.message}'


def _format_path(path: Sequence[Any]) -> str:
    parts: list[str] = []
    for element in path:
        if isinstance(element, int):
            parts.append(f"[{element}]")
        elif parts:
            parts.append(f".{element}")
        else:
            parts.append(str(element))
    return "".join(parts)


def _validator_class():
    return jsonschema.Draft202012Validator

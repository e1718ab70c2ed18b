"""Schema-driven validation of node settings.

Each plugin's ``settings_fields`` are compiled into a JSON Schema and checked
with jsonschema. Validation also normalizes: defaults are filled in and
strings trimmed, so generate functions always receive complete settings.
"""

import copy
import logging
import re
from collections.abc import Mapping
from typing import Any

from jsonschema import Draft7Validator
from jsonschema import ValidationError as JsonSchemaValidationError

from .contract import FieldError, PluginDefinition, SettingsField, ValidationResult

logger = logging.getLogger(__name__)

_TYPE_NAMES = {
    "string": "string",
    "number": "number",
    "integer": "integer",
    "boolean": "boolean",
    "array": "array",
    "object": "object",
}


def _field_schema(settings_field: SettingsField) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": _TYPE_NAMES.get(settings_field.data_type, "string")}
    if settings_field.options is not None:
        schema["enum"] = list(settings_field.options)

    rules = settings_field.validation
    if rules is not None:
        if rules.min is not None:
            schema["minimum"] = rules.min
        if rules.max is not None:
            schema["maximum"] = rules.max
        if rules.min_length is not None:
            schema["minLength"] = rules.min_length
        if rules.max_length is not None:
            schema["maxLength"] = rules.max_length
        if rules.pattern is not None:
            schema["pattern"] = rules.pattern
    return schema


def build_settings_schema(definition: PluginDefinition) -> dict[str, Any]:
    """Compile a plugin's settings fields into a Draft 7 JSON Schema."""
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": {f.key: _field_schema(f) for f in definition.settings_fields},
        "required": [f.key for f in definition.settings_fields if f.required],
        "additionalProperties": True,
    }


def normalize_settings(definition: PluginDefinition, settings: Mapping[str, Any]) -> dict[str, Any]:
    """Copy settings, trimming strings and filling defaults for absent fields."""
    normalized: dict[str, Any] = {}
    for key, value in settings.items():
        normalized[key] = value.strip() if isinstance(value, str) else copy.deepcopy(value)

    for settings_field in definition.settings_fields:
        value = normalized.get(settings_field.key)
        # Empty values count as absent so required checks and defaults apply
        if value is None or (value == "" and settings_field.data_type != "string"):
            normalized.pop(settings_field.key, None)
        elif value == "" and settings_field.required:
            normalized.pop(settings_field.key, None)

        if settings_field.key not in normalized and settings_field.default is not None:
            normalized[settings_field.key] = copy.deepcopy(settings_field.default)
    return normalized


def _describe(error: JsonSchemaValidationError, definition: PluginDefinition) -> FieldError:
    """Turn a jsonschema error into a field-level message."""
    if error.validator == "required":
        match = re.search(r"'([^']+)' is a required property", error.message)
        key = match.group(1) if match else None
        return FieldError(key, f"Required field '{key}' is missing")

    key = str(error.absolute_path[0]) if error.absolute_path else None
    settings_field = definition.get_field(key) if key else None
    if settings_field and settings_field.validation and settings_field.validation.error_message:
        if error.validator not in ("type",):
            return FieldError(key, settings_field.validation.error_message)

    value = error.instance
    if error.validator == "type":
        message = f"Invalid type for field '{key}': expected {error.validator_value}, got {type(value).__name__}"
    elif error.validator == "minimum":
        message = f"Field '{key}' must be >= {error.validator_value} (got {value})"
    elif error.validator == "maximum":
        message = f"Field '{key}' must be <= {error.validator_value} (got {value})"
    elif error.validator == "minLength":
        message = f"Field '{key}' is too short (minimum {error.validator_value} characters)"
    elif error.validator == "maxLength":
        message = f"Field '{key}' is too long (maximum {error.validator_value} characters)"
    elif error.validator == "pattern":
        message = f"Field '{key}' does not match pattern {error.validator_value}"
    elif error.validator == "enum":
        choices = ", ".join(repr(v) for v in error.validator_value)
        message = f"Field '{key}' must be one of: {choices} (got {value!r})"
    else:
        message = f"Field '{key}': {error.message}" if key else error.message
    return FieldError(key, message)


def validate_settings(definition: PluginDefinition, settings: Any) -> ValidationResult:
    """Validate and normalize settings for one node.

    Fails closed: any schema violation yields ``is_valid=False``.

    Args:
        definition: Plugin definition holding the settings schema
        settings: User supplied settings mapping

    Returns:
        ValidationResult with field-level errors and the normalized settings
    """
    if settings is None:
        settings = {}
    if not isinstance(settings, Mapping):
        return ValidationResult(
            is_valid=False,
            errors=[FieldError(None, f"Settings must be an object, got {type(settings).__name__}")],
        )

    normalized = normalize_settings(definition, settings)
    validator = Draft7Validator(build_settings_schema(definition))
    raw_errors = sorted(
        validator.iter_errors(normalized),
        key=lambda e: ([str(p) for p in e.absolute_path], str(e.validator)),
    )

    errors = [_describe(e, definition) for e in raw_errors]
    if errors:
        logger.debug(
            "Settings rejected",
            extra={"phase": "validation", "plugin": definition.slug, "errors": [e.message for e in errors]},
        )
        return ValidationResult(is_valid=False, errors=errors, settings=normalized)
    return ValidationResult(is_valid=True, errors=[], settings=normalized)

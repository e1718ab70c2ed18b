"""Tests for schema-driven settings validation."""

import pytest

from tensorweave.plugins import (
    FieldValidation,
    PluginDefinition,
    SettingsField,
    build_settings_schema,
    normalize_settings,
    validate_settings,
)
from tensorweave.plugins.builtin.layers import CONV2D, DROPOUT


@pytest.fixture
def definition():
    return PluginDefinition(
        slug="example",
        settings_fields=(
            SettingsField("units", "integer", required=True, validation=FieldValidation(min=1, max=1024)),
            SettingsField("name", "string", default="block", validation=FieldValidation(min_length=2, max_length=8)),
            SettingsField("mode", "string", default="fast", options=("fast", "slow")),
            SettingsField("code", "string", validation=FieldValidation(pattern=r"^[a-z]+$")),
            SettingsField("rate", "number", default=0.1),
        ),
    )


class TestSchemaCompilation:
    def test_schema_shape(self, definition):
        schema = build_settings_schema(definition)

        assert schema["required"] == ["units"]
        assert schema["properties"]["units"] == {"type": "integer", "minimum": 1, "maximum": 1024}
        assert schema["properties"]["mode"] == {"type": "string", "enum": ["fast", "slow"]}
        assert schema["additionalProperties"] is True


class TestNormalization:
    def test_defaults_are_filled(self, definition):
        normalized = normalize_settings(definition, {"units": 3})

        assert normalized == {"units": 3, "name": "block", "mode": "fast", "rate": 0.1}

    def test_strings_are_trimmed(self, definition):
        normalized = normalize_settings(definition, {"units": 3, "name": "  head  "})
        assert normalized["name"] == "head"

    def test_none_counts_as_absent(self, definition):
        normalized = normalize_settings(definition, {"units": 3, "mode": None})
        assert normalized["mode"] == "fast"

    def test_input_is_not_mutated(self, definition):
        settings = {"units": 3, "extra": [1, 2]}
        normalized = normalize_settings(definition, settings)
        normalized["extra"].append(3)

        assert settings == {"units": 3, "extra": [1, 2]}


class TestValidateSettings:
    def test_valid_settings(self, definition):
        result = validate_settings(definition, {"units": 16})

        assert result.is_valid
        assert result.errors == []
        assert result.settings["name"] == "block"

    def test_missing_required_field(self, definition):
        result = validate_settings(definition, {})

        assert not result.is_valid
        assert result.error_for("units").message == "Required field 'units' is missing"

    def test_empty_required_string_is_missing(self):
        definition = PluginDefinition(slug="x", settings_fields=(SettingsField("dataset", "string", required=True),))

        result = validate_settings(definition, {"dataset": "   "})

        assert result.error_for("dataset").message == "Required field 'dataset' is missing"

    def test_wrong_type(self, definition):
        result = validate_settings(definition, {"units": "16"})

        assert result.error_for("units").message == "Invalid type for field 'units': expected integer, got str"

    def test_minimum_and_maximum(self, definition):
        low = validate_settings(definition, {"units": 0})
        high = validate_settings(definition, {"units": 2048})

        assert low.error_for("units").message == "Field 'units' must be >= 1 (got 0)"
        assert high.error_for("units").message == "Field 'units' must be <= 1024 (got 2048)"

    def test_string_length(self, definition):
        result = validate_settings(definition, {"units": 1, "name": "x"})
        assert result.error_for("name").message == "Field 'name' is too short (minimum 2 characters)"

        result = validate_settings(definition, {"units": 1, "name": "abcdefghij"})
        assert result.error_for("name").message == "Field 'name' is too long (maximum 8 characters)"

    def test_pattern(self, definition):
        result = validate_settings(definition, {"units": 1, "code": "ABC"})
        assert result.error_for("code").message == "Field 'code' does not match pattern ^[a-z]+$"

    def test_enum(self, definition):
        result = validate_settings(definition, {"units": 1, "mode": "medium"})
        assert result.error_for("mode").message == "Field 'mode' must be one of: 'fast', 'slow' (got 'medium')"

    def test_custom_error_message(self):
        result = validate_settings(DROPOUT, {"p": 1.5})
        assert result.error_for("p").message == "Dropout probability must be between 0 and 1"

    def test_custom_message_does_not_hide_type_errors(self):
        result = validate_settings(DROPOUT, {"p": "half"})
        assert result.error_for("p").message == "Invalid type for field 'p': expected number, got str"

    def test_negative_channels(self):
        """A negative channel count is reported against the field, not the node."""
        result = validate_settings(CONV2D, {"inChannels": -1, "outChannels": 8, "kernelSize": 3})

        assert not result.is_valid
        assert [e.field for e in result.errors] == ["inChannels"]
        assert result.errors[0].message == "Field 'inChannels' must be >= 1 (got -1)"

    def test_errors_are_sorted_by_field(self, definition):
        result = validate_settings(definition, {"units": 0, "mode": "medium", "name": "x"})

        assert [e.field for e in result.errors] == ["mode", "name", "units"]

    def test_non_mapping_settings(self, definition):
        result = validate_settings(definition, ["units", 1])

        assert not result.is_valid
        assert result.errors[0].field is None
        assert "Settings must be an object, got list" in result.errors[0].message

    def test_none_settings_treated_as_empty(self):
        definition = PluginDefinition(slug="x", settings_fields=(SettingsField("a", "integer", default=1),))

        result = validate_settings(definition, None)

        assert result.is_valid
        assert result.settings == {"a": 1}

    def test_booleans_are_not_integers(self, definition):
        result = validate_settings(definition, {"units": True})
        assert result.error_for("units").message.startswith("Invalid type for field 'units'")

"""Plugin contract, settings validation and code generation helpers."""

from .codegen import (
    assign_or_expression,
    build_layer_constructor,
    children_list,
    emitted_variable_name,
    indent,
    python_literal,
    strip_assignment,
)
from .contract import (
    Children,
    EmittedVariable,
    FieldError,
    FieldValidation,
    GenerationContext,
    Handle,
    ImportSpec,
    InputRef,
    Plugin,
    PluginDefinition,
    SettingsField,
    ValidationResult,
    plugin,
)
from .scope import rewrite_scoped_references
from .validation import build_settings_schema, normalize_settings, validate_settings

__all__ = [
    "Children",
    "EmittedVariable",
    "FieldError",
    "FieldValidation",
    "GenerationContext",
    "Handle",
    "ImportSpec",
    "InputRef",
    "Plugin",
    "PluginDefinition",
    "SettingsField",
    "ValidationResult",
    "assign_or_expression",
    "build_layer_constructor",
    "build_settings_schema",
    "children_list",
    "emitted_variable_name",
    "indent",
    "normalize_settings",
    "plugin",
    "python_literal",
    "rewrite_scoped_references",
    "strip_assignment",
    "validate_settings",
]

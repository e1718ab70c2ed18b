"""Plugin contract: static definition plus a code generation function.

A plugin is data, not a class hierarchy. ``PluginDefinition`` declares the
settings schema, handles, emitted variables and imports; ``Plugin`` pairs it
with a pure ``generate(settings, children, context) -> str`` function.

Example:
    >>> from tensorweave.plugins import PluginDefinition, SettingsField, plugin
    >>>
    >>> @plugin(PluginDefinition(slug="relu", settings_fields=(SettingsField("inplace", "boolean", default=False),)))
    ... def relu(settings, children=None, context=None):
    ...     return f"torch.nn.ReLU(inplace={settings['inplace']})"
    >>> relu.get_translation_code({"inplace": False})
    'torch.nn.ReLU(inplace=False)'
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

DATA_TYPES = ("string", "number", "integer", "boolean", "array", "object")

Children = Union[None, str, list[str]]


@dataclass(frozen=True)
class FieldValidation:
    """Bounds applied to a single settings value."""

    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class SettingsField:
    """One entry of a plugin's settings schema."""

    key: str
    data_type: str = "string"
    default: Any = None
    required: bool = False
    label: str = ""
    description: str = ""
    validation: Optional[FieldValidation] = None
    options: Optional[tuple[Any, ...]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "dataType": self.data_type, "required": self.required}
        if self.default is not None:
            data["defaultValue"] = self.default
        if self.label:
            data["label"] = self.label
        if self.description:
            data["description"] = self.description
        if self.options is not None:
            data["options"] = list(self.options)
        if self.validation is not None:
            data["validation"] = {k: v for k, v in vars(self.validation).items() if v is not None}
        return data


@dataclass(frozen=True)
class ImportSpec:
    """Import required by generated code.

    ``items`` empty means ``import <path> [as <alias>]``; otherwise
    ``from <path> import <items>`` with per-item aliases in ``as_``.
    """

    path: str
    items: tuple[str, ...] = ()
    alias: Optional[str] = None
    as_: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImportSpec":
        as_map = data.get("as") or data.get("as_") or {}
        return cls(
            path=data["path"],
            items=tuple(data.get("items") or ()),
            alias=data.get("alias") or None,
            as_=tuple(sorted(dict(as_map).items())),
        )

    @property
    def item_aliases(self) -> dict[str, str]:
        return dict(self.as_)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"path": self.path}
        if self.items:
            data["items"] = list(self.items)
        if self.alias:
            data["alias"] = self.alias
        if self.as_:
            data["as"] = dict(self.as_)
        return data


@dataclass(frozen=True)
class EmittedVariable:
    """Variable a plugin assigns its result to, optionally behind a toggle."""

    value: str
    switch_key: Optional[str] = None
    is_on_by_default: bool = True

    @property
    def toggle_key(self) -> Optional[str]:
        """Settings key of the toggle (``settingsFields.emitX`` -> ``emitX``)."""
        if not self.switch_key:
            return None
        return self.switch_key.split(".")[-1]


@dataclass(frozen=True)
class Handle:
    id: str
    required: bool = False
    description: str = ""


PREV_HANDLE = Handle("prev", required=True)
NEXT_HANDLE = Handle("next")


@dataclass(frozen=True)
class PluginDefinition:
    """Static, read-only metadata for one plugin type."""

    slug: str
    name: str = ""
    version: str = "1.0.0"
    node_type: str = "custom"
    description: str = ""
    settings_fields: tuple[SettingsField, ...] = ()
    input_handles: tuple[Handle, ...] = (PREV_HANDLE,)
    output_handles: tuple[Handle, ...] = (NEXT_HANDLE,)
    emits_variables: tuple[EmittedVariable, ...] = ()
    imports: tuple[ImportSpec, ...] = ()
    # Structural plugins nest their children instead of being sequenced after them
    structural: bool = False
    min_children: int = 0

    def get_field(self, key: str) -> Optional[SettingsField]:
        for settings_field in self.settings_fields:
            if settings_field.key == key:
                return settings_field
        return None

    def validate_definition(self) -> list[str]:
        """Check internal consistency; returns a list of problems (empty if valid)."""
        errors: list[str] = []
        if not self.slug:
            errors.append("Plugin slug is required")

        keys: set[str] = set()
        for settings_field in self.settings_fields:
            if not settings_field.key:
                errors.append("Settings field key is required")
                continue
            if settings_field.key in keys:
                errors.append(f"Duplicate settings field key: {settings_field.key}")
            keys.add(settings_field.key)
            if settings_field.data_type not in DATA_TYPES:
                errors.append(f"Settings field {settings_field.key} has unknown dataType '{settings_field.data_type}'")

        for kind, handles in (("input", self.input_handles), ("output", self.output_handles)):
            seen: set[str] = set()
            for handle in handles:
                if handle.id in seen:
                    errors.append(f"Duplicate {kind} handle id: {handle.id}")
                seen.add(handle.id)

        for variable in self.emits_variables:
            toggle_key = variable.toggle_key
            if not toggle_key:
                continue
            toggle = self.get_field(toggle_key)
            if toggle is None:
                errors.append(
                    f"Emitted variable '{variable.value}' requires a boolean toggle settings field '{toggle_key}'"
                )
                continue
            if toggle.data_type != "boolean":
                errors.append(f"Settings field '{toggle_key}' must have dataType boolean")
            if not toggle.required:
                errors.append(f"Settings field '{toggle_key}' must be required")
            if toggle.default is not None and toggle.default != variable.is_on_by_default:
                errors.append(
                    f"Settings field '{toggle_key}'.default ({toggle.default}) must match "
                    f"isOnByDefault ({variable.is_on_by_default}) for emitted variable '{variable.value}'"
                )

        if self.min_children and not self.structural:
            errors.append("min_children is only meaningful for structural plugins")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "version": self.version,
            "nodeType": self.node_type,
            "description": self.description,
            "structural": self.structural,
            "minChildren": self.min_children,
            "settingsFields": [f.to_dict() for f in self.settings_fields],
            "inputHandles": [h.id for h in self.input_handles],
            "outputHandles": [h.id for h in self.output_handles],
            "emits": {
                "variables": [
                    {"value": v.value, "switchKey": v.switch_key, "isOnByDefault": v.is_on_by_default}
                    for v in self.emits_variables
                ],
                "imports": [i.to_dict() for i in self.imports],
            },
        }


@dataclass(frozen=True)
class FieldError:
    field: Optional[str]
    message: str

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    """Outcome of settings validation.

    ``settings`` holds the normalized copy (defaults filled, strings trimmed)
    that generation receives; it is only meaningful when ``is_valid``.
    """

    is_valid: bool
    errors: list[FieldError] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)

    def error_for(self, key: str) -> Optional[FieldError]:
        for error in self.errors:
            if error.field == key:
                return error
        return None


@dataclass(frozen=True)
class InputRef:
    """What a predecessor offers to the node consuming it."""

    node_id: str
    plugin_type: str
    variable: Optional[str] = None
    handle: Optional[str] = None


@dataclass(frozen=True)
class GenerationContext:
    node_id: str
    plugin_type: str
    input_data: dict[int, InputRef] = field(default_factory=dict)
    global_context: dict[str, Any] = field(default_factory=dict)

    def get_input(self, handle_number: int) -> Optional[InputRef]:
        return self.input_data.get(handle_number)

    def get_all_inputs(self) -> list[InputRef]:
        return [self.input_data[i] for i in sorted(self.input_data)]


GenerateFn = Callable[[dict[str, Any], Children, Optional[GenerationContext]], str]
ImportsFn = Callable[[dict[str, Any]], list[ImportSpec]]


@dataclass(frozen=True)
class Plugin:
    """A plugin definition bound to its generate function.

    ``settings_imports`` covers plugins whose imports depend on the node's
    settings (user supplied imports, a chosen base class). It reads validated
    settings only, so imports are known without running ``generate``.
    """

    definition: PluginDefinition
    generate: GenerateFn
    settings_imports: Optional[ImportsFn] = None

    @property
    def slug(self) -> str:
        return self.definition.slug

    def validate_settings(self, settings: Any) -> ValidationResult:
        from .validation import validate_settings

        return validate_settings(self.definition, settings)

    def declared_imports(self, settings: Optional[dict[str, Any]] = None) -> list[ImportSpec]:
        imports = list(self.definition.imports)
        if self.settings_imports is not None:
            imports.extend(self.settings_imports(settings or {}))
        return imports

    def get_translation_code(
        self, settings: dict[str, Any], children: Children = None, context: Optional[GenerationContext] = None
    ) -> str:
        return self.generate(settings, children, context)


def plugin(
    definition: PluginDefinition, settings_imports: Optional[ImportsFn] = None
) -> Callable[[GenerateFn], Plugin]:
    """Decorator binding a generate function to its definition."""

    def decorator(generate: GenerateFn) -> Plugin:
        return Plugin(definition=definition, generate=generate, settings_imports=settings_imports)

    return decorator

"""User-authored code nodes: free code blocks and generated classes."""

import re
from typing import Any, Optional

from ..codegen import indent
from ..contract import FieldValidation, ImportSpec, PluginDefinition, SettingsField, plugin

_PLACEHOLDER = re.compile(r"\$(\w+)")
_CLASS_SELF_MARKER = "@classnodeself"

NO_BASE_CLASS = "No base class"
TORCH_BASE_CLASSES = ("torch.nn.Module", "torch.utils.data.Dataset")


def replace_placeholders(code: str) -> str:
    """``$name`` -> ``name``."""
    return _PLACEHOLDER.sub(lambda m: m.group(1), code)


def custom_imports(settings: dict[str, Any]) -> list[ImportSpec]:
    return [ImportSpec.from_dict(item) for item in settings.get("customImports") or [] if item.get("path")]


CUSTOM_CODE = PluginDefinition(
    slug="custom-code",
    name="Custom Code",
    node_type="custom",
    description="Free Python code; $name placeholders are replaced by the bare name",
    settings_fields=(
        SettingsField("code", "string", default=""),
        SettingsField("customImports", "array", default=[], description="[{path, items?, alias?, as?}]"),
    ),
)


@plugin(CUSTOM_CODE, settings_imports=custom_imports)
def custom_code(settings, children=None, context=None):
    return replace_placeholders(settings.get("code") or "").strip()


def _params(parameters: list[dict[str, Any]]) -> str:
    rendered = ["self"]
    for param in parameters:
        default = param.get("defaultValue")
        rendered.append(f"{param['name']}={default}" if default else param["name"])
    return ", ".join(rendered)


def _auto_methods(base_class: str, existing: set[str]) -> list[dict[str, Any]]:
    """Stub methods every subclass of a known torch base needs."""
    stubs: list[dict[str, Any]] = []
    if base_class == "torch.nn.Module" and "forward" not in existing:
        stubs.append(
            {
                "name": "forward",
                "parameters": [{"name": "x"}],
                "code": "# Define the forward pass of your neural network\n# x = self.layer1(x)\n# return x\npass",
            }
        )
    elif base_class == "torch.utils.data.Dataset":
        if "__len__" not in existing:
            stubs.append(
                {"name": "__len__", "parameters": [], "code": "# Return the size of the dataset\npass"}
            )
        if "__getitem__" not in existing:
            stubs.append(
                {
                    "name": "__getitem__",
                    "parameters": [{"name": "idx"}],
                    "code": "# Return a single item from the dataset\npass",
                }
            )
    return stubs


def _strip_class_self_markers(code: str) -> str:
    return "\n".join(line for line in code.split("\n") if line.strip() != _CLASS_SELF_MARKER)


def generate_class_code(
    class_name: str,
    base_class: str = "",
    constructor_items: Optional[list[dict[str, Any]]] = None,
    methods: Optional[list[dict[str, Any]]] = None,
) -> str:
    """Render a Python class definition.

    Args:
        class_name: Name of the generated class
        base_class: Dotted base class name, empty for none
        constructor_items: ``{"type": "parameter", "parameter": {...}}`` entries become
            ``__init__`` arguments stored on ``self``; ``{"type": "code", "code": ...}``
            entries are emitted verbatim into ``__init__``
        methods: ``{"name", "parameters", "code"}`` entries

    Returns:
        Class source without a trailing newline
    """
    constructor_items = constructor_items or []
    methods = methods or []
    has_base = bool(base_class) and base_class != NO_BASE_CLASS

    lines = [f"class {class_name}({base_class}):" if has_base else f"class {class_name}:"]

    parameters = [item["parameter"] for item in constructor_items if item.get("type") == "parameter"]
    lines.append(f"    def __init__({_params(parameters)}):")

    body: list[str] = []
    if has_base:
        body.append("super().__init__()")
    for item in constructor_items:
        if item.get("type") == "parameter" and item.get("parameter"):
            param = item["parameter"]
            body.append(f"self.{param.get('propertyName') or param['name']} = {param['name']}")
        elif item.get("type") == "code" and item.get("code"):
            body.extend(line for line in _strip_class_self_markers(item["code"]).split("\n") if line.strip())
    lines.append(indent("\n".join(body) or "pass", 2))

    all_methods = _auto_methods(base_class, {m["name"] for m in methods}) if has_base else []
    all_methods.extend(methods)
    for method in all_methods:
        lines.append("")
        lines.append(f"    def {method['name']}({_params(method.get('parameters') or [])}):")
        code = method.get("code") or ""
        lines.append(indent(code if code.strip() else "pass", 2))

    return "\n".join(lines)


def class_imports(settings: dict[str, Any]) -> list[ImportSpec]:
    imports = custom_imports(settings)
    base_class = settings.get("baseClass") or ""
    if base_class in TORCH_BASE_CLASSES:
        imports.insert(0, ImportSpec("torch"))
    elif base_class and base_class != NO_BASE_CLASS and settings.get("baseClassImport"):
        imports.insert(0, ImportSpec(settings["baseClassImport"], items=(base_class,)))
    return imports


CLASS = PluginDefinition(
    slug="class",
    name="Class",
    node_type="custom",
    description="Generates a Python class with constructor parameters and methods",
    settings_fields=(
        SettingsField(
            "className",
            "string",
            default="MyClass",
            required=True,
            validation=FieldValidation(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", error_message="Invalid class name"),
        ),
        SettingsField("baseClass", "string", default=""),
        SettingsField("baseClassImport", "string", default="", description="Module providing a custom base class"),
        SettingsField("constructorItems", "array", default=[]),
        SettingsField("methods", "array", default=[]),
        SettingsField("customImports", "array", default=[]),
    ),
)


@plugin(CLASS, settings_imports=class_imports)
def class_node(settings, children=None, context=None):
    code = generate_class_code(
        settings["className"],
        base_class=settings.get("baseClass") or "",
        constructor_items=settings.get("constructorItems") or [],
        methods=settings.get("methods") or [],
    )
    return replace_placeholders(code)

"""Structural plugins that nest their children instead of sequencing them."""

from ..codegen import assign_or_expression, children_list, emitted_variable_name, indent, strip_assignment
from ..contract import (
    PREV_HANDLE,
    EmittedVariable,
    FieldValidation,
    Handle,
    ImportSpec,
    PluginDefinition,
    SettingsField,
    plugin,
)
from ..scope import rewrite_scoped_references

_IDENTIFIER = FieldValidation(
    pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", error_message="Must be a valid Python identifier"
)

SEQUENTIAL = PluginDefinition(
    slug="sequential",
    name="Sequential",
    node_type="model_layer",
    description="Chains child layers in order: torch.nn.Sequential",
    settings_fields=(
        SettingsField("variableName", "string", default="model", validation=_IDENTIFIER),
        SettingsField("emitVariable", "boolean", default=True, required=True),
    ),
    input_handles=(PREV_HANDLE, Handle("layers", description="Child layers, in edge order")),
    emits_variables=(EmittedVariable("model", switch_key="settingsFields.emitVariable", is_on_by_default=True),),
    imports=(ImportSpec("torch"),),
    structural=True,
    min_children=1,
)


@plugin(SEQUENTIAL)
def sequential(settings, children=None, context=None):
    layers = [strip_assignment(child) for child in children_list(children) if child.strip()]
    if not layers:
        raise ValueError("Sequential requires at least one child layer")
    body = indent(",\n".join(layers) + ",")
    code = f"torch.nn.Sequential(\n{body}\n)"
    return assign_or_expression(code, emitted_variable_name(SEQUENTIAL, settings, "variableName"))


NN_MODULE = PluginDefinition(
    slug="nn-module",
    name="PyTorch NN Module",
    node_type="model",
    description="Generates a torch.nn.Module subclass whose layers are the node's children",
    settings_fields=(
        SettingsField("className", "string", default="NeuralNetwork", required=True, validation=_IDENTIFIER),
        SettingsField("constructorParams", "array", default=[]),
        SettingsField("constructorArgs", "array", default=[], description="Arguments passed when instantiating"),
        SettingsField("forwardParams", "array", default=["x"]),
        SettingsField("forwardCode", "string", default="", description="Body of forward(); layers are layer_<i>"),
        SettingsField("instanceName", "string", default="model", validation=_IDENTIFIER),
        SettingsField("emitInstance", "boolean", default=True, required=True),
    ),
    input_handles=(PREV_HANDLE, Handle("layers", description="Child layers, in edge order")),
    emits_variables=(EmittedVariable("model", switch_key="settingsFields.emitInstance", is_on_by_default=True),),
    imports=(ImportSpec("torch"),),
    structural=True,
)


def _default_forward(layer_names: list[str], forward_params: list[str]) -> str:
    arg = forward_params[0] if forward_params else "x"
    lines = [f"{arg} = {name}({arg})" for name in layer_names]
    lines.append(f"return {arg}")
    return "\n".join(lines)


@plugin(NN_MODULE)
def nn_module(settings, children=None, context=None):
    layers = [strip_assignment(child) for child in children_list(children) if child.strip()]
    layer_names = [f"layer_{i}" for i in range(len(layers))]
    constructor_params = [str(p) for p in settings.get("constructorParams") or []]
    forward_params = [str(p) for p in settings.get("forwardParams") or []]

    init_lines = ["super().__init__()"]
    init_lines.extend(f"self.{name} = {layer}" for name, layer in zip(layer_names, layers))

    forward_code = settings.get("forwardCode") or _default_forward(layer_names, forward_params)
    forward_body = rewrite_scoped_references(forward_code, layer_names)

    lines = [
        f"class {settings['className']}(torch.nn.Module):",
        f"    def __init__({', '.join(['self', *constructor_params])}):",
        indent("\n".join(init_lines), 2),
        "",
        f"    def forward({', '.join(['self', *forward_params])}):",
        indent(forward_body, 2),
    ]
    code = "\n".join(lines)

    instance = emitted_variable_name(NN_MODULE, settings, "instanceName")
    constructor_args = [str(a) for a in settings.get("constructorArgs") or []]
    # The instance needs an argument for every required parameter
    required = [p for p in constructor_params if "=" not in p and not p.startswith("*")]
    if instance and len(constructor_args) >= len(required):
        code += f"\n\n\n{instance} = {settings['className']}({', '.join(constructor_args)})"
    return code

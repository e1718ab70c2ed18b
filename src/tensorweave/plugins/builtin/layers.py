"""torch.nn layer plugins."""

from ..codegen import assign_or_expression, build_layer_constructor, emitted_variable_name
from ..contract import EmittedVariable, FieldValidation, ImportSpec, PluginDefinition, SettingsField, plugin

TORCH = ImportSpec("torch")

_POSITIVE = FieldValidation(min=1)


def _emit_fields(default_name: str) -> tuple[SettingsField, ...]:
    return (
        SettingsField("variableName", "string", default=default_name, label="Variable name"),
        SettingsField("emitVariable", "boolean", default=False, required=True, label="Assign to variable"),
    )


def _emits(default_name: str) -> tuple[EmittedVariable, ...]:
    return (EmittedVariable(default_name, switch_key="settingsFields.emitVariable", is_on_by_default=False),)


LINEAR = PluginDefinition(
    slug="linear",
    name="Linear",
    node_type="model_layer",
    description="Applies an affine linear transformation: torch.nn.Linear",
    settings_fields=(
        SettingsField("inFeatures", "integer", required=True, label="Input features", validation=_POSITIVE),
        SettingsField("outFeatures", "integer", required=True, label="Output features", validation=_POSITIVE),
        SettingsField("bias", "boolean", default=True, label="Bias"),
        *_emit_fields("linear"),
    ),
    emits_variables=_emits("linear"),
    imports=(TORCH,),
)


@plugin(LINEAR)
def linear(settings, children=None, context=None):
    code = build_layer_constructor(
        "torch.nn.Linear",
        {"in_features": settings["inFeatures"], "out_features": settings["outFeatures"]},
        {"bias": settings.get("bias")},
        defaults={"bias": True},
    )
    return assign_or_expression(code, emitted_variable_name(LINEAR, settings, "variableName"))


RELU = PluginDefinition(
    slug="relu",
    name="ReLU",
    node_type="model_layer",
    description="Rectified linear unit: torch.nn.ReLU",
    settings_fields=(SettingsField("inplace", "boolean", default=False, label="In place"), *_emit_fields("relu")),
    emits_variables=_emits("relu"),
    imports=(TORCH,),
)


@plugin(RELU)
def relu(settings, children=None, context=None):
    code = build_layer_constructor("torch.nn.ReLU", {}, {"inplace": settings.get("inplace")}, {"inplace": False})
    return assign_or_expression(code, emitted_variable_name(RELU, settings, "variableName"))


CONV2D = PluginDefinition(
    slug="conv2d",
    name="Conv2d",
    node_type="model_layer",
    description="2D convolution over an input signal: torch.nn.Conv2d",
    settings_fields=(
        SettingsField("inChannels", "integer", required=True, label="Input channels", validation=_POSITIVE),
        SettingsField("outChannels", "integer", required=True, label="Output channels", validation=_POSITIVE),
        SettingsField("kernelSize", "integer", required=True, label="Kernel size", validation=_POSITIVE),
        SettingsField("stride", "integer", default=1, validation=_POSITIVE),
        SettingsField("padding", "integer", default=0, validation=FieldValidation(min=0)),
        SettingsField("dilation", "integer", default=1, validation=_POSITIVE),
        SettingsField("groups", "integer", default=1, validation=_POSITIVE),
        SettingsField("bias", "boolean", default=True),
        SettingsField("paddingMode", "string", default="zeros", options=("zeros", "reflect", "replicate", "circular")),
        *_emit_fields("conv"),
    ),
    emits_variables=_emits("conv"),
    imports=(TORCH,),
)


@plugin(CONV2D)
def conv2d(settings, children=None, context=None):
    code = build_layer_constructor(
        "torch.nn.Conv2d",
        {
            "in_channels": settings["inChannels"],
            "out_channels": settings["outChannels"],
            "kernel_size": settings["kernelSize"],
        },
        {
            "stride": settings.get("stride"),
            "padding": settings.get("padding"),
            "dilation": settings.get("dilation"),
            "groups": settings.get("groups"),
            "bias": settings.get("bias"),
            "padding_mode": settings.get("paddingMode"),
        },
        defaults={"stride": 1, "padding": 0, "dilation": 1, "groups": 1, "bias": True, "padding_mode": "zeros"},
    )
    return assign_or_expression(code, emitted_variable_name(CONV2D, settings, "variableName"))


FLATTEN = PluginDefinition(
    slug="flatten",
    name="Flatten",
    node_type="model_layer",
    settings_fields=(
        SettingsField("startDim", "integer", default=1),
        SettingsField("endDim", "integer", default=-1),
        *_emit_fields("flatten"),
    ),
    emits_variables=_emits("flatten"),
    imports=(TORCH,),
)


@plugin(FLATTEN)
def flatten(settings, children=None, context=None):
    code = build_layer_constructor(
        "torch.nn.Flatten",
        {},
        {"start_dim": settings.get("startDim"), "end_dim": settings.get("endDim")},
        defaults={"start_dim": 1, "end_dim": -1},
    )
    return assign_or_expression(code, emitted_variable_name(FLATTEN, settings, "variableName"))


DROPOUT = PluginDefinition(
    slug="dropout",
    name="Dropout",
    node_type="model_layer",
    settings_fields=(
        SettingsField(
            "p",
            "number",
            default=0.5,
            label="Probability",
            validation=FieldValidation(min=0, max=1, error_message="Dropout probability must be between 0 and 1"),
        ),
        SettingsField("inplace", "boolean", default=False),
        *_emit_fields("dropout"),
    ),
    emits_variables=_emits("dropout"),
    imports=(TORCH,),
)


@plugin(DROPOUT)
def dropout(settings, children=None, context=None):
    code = build_layer_constructor(
        "torch.nn.Dropout",
        {},
        {"p": settings.get("p"), "inplace": settings.get("inplace")},
        defaults={"p": 0.5, "inplace": False},
    )
    return assign_or_expression(code, emitted_variable_name(DROPOUT, settings, "variableName"))

"""Loss, optimizer and data loading plugins."""

from ..codegen import assign_or_expression, build_call, emitted_variable_name, python_literal
from ..contract import EmittedVariable, FieldValidation, ImportSpec, PluginDefinition, SettingsField, plugin

_IDENTIFIER = FieldValidation(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", error_message="Must be a valid Python identifier")


def _optional_kwargs(values: dict, defaults: dict) -> dict[str, str]:
    """Render kwargs whose value differs from the library default."""
    return {k: python_literal(v) for k, v in values.items() if v is not None and v != defaults.get(k)}


CROSS_ENTROPY_LOSS = PluginDefinition(
    slug="cross-entropy-loss",
    name="CrossEntropyLoss",
    node_type="loss_function",
    description="Cross entropy between input logits and target: torch.nn.CrossEntropyLoss",
    settings_fields=(
        SettingsField("lossVarName", "string", default="criterion", required=True, validation=_IDENTIFIER),
        SettingsField("emitLossVar", "boolean", default=True, required=True),
        SettingsField("weightInput", "string", default="", description="Variable holding class weights"),
        SettingsField("ignoreIndex", "integer", default=-100),
        SettingsField("reduction", "string", default="mean", options=("none", "mean", "sum")),
        SettingsField("labelSmoothing", "number", default=0.0, validation=FieldValidation(min=0.0, max=1.0)),
    ),
    emits_variables=(EmittedVariable("criterion", switch_key="settingsFields.emitLossVar", is_on_by_default=True),),
    imports=(ImportSpec("torch"),),
)


@plugin(CROSS_ENTROPY_LOSS)
def cross_entropy_loss(settings, children=None, context=None):
    kwargs: dict[str, str] = {}
    if settings.get("weightInput"):
        kwargs["weight"] = settings["weightInput"]
    kwargs.update(
        _optional_kwargs(
            {
                "ignore_index": settings.get("ignoreIndex"),
                "reduction": settings.get("reduction"),
                "label_smoothing": settings.get("labelSmoothing"),
            },
            {"ignore_index": -100, "reduction": "mean", "label_smoothing": 0.0},
        )
    )
    code = build_call("torch.nn.CrossEntropyLoss", [], kwargs)
    return assign_or_expression(code, emitted_variable_name(CROSS_ENTROPY_LOSS, settings, "lossVarName"))


def _model_parameters(settings, context) -> str:
    """``<model>.parameters()`` from settings, else from the first predecessor's variable."""
    explicit = settings.get("modelParamsInput")
    if explicit:
        return explicit
    if context is not None:
        for ref in context.get_all_inputs():
            if ref.variable:
                return f"{ref.variable}.parameters()"
    return "model.parameters()"


SGD = PluginDefinition(
    slug="sgd",
    name="SGD",
    node_type="optimizer",
    description="Stochastic gradient descent: torch.optim.SGD",
    settings_fields=(
        SettingsField("optimizerVarName", "string", default="optimizer", required=True, validation=_IDENTIFIER),
        SettingsField("emitOptimizerVar", "boolean", default=True, required=True),
        SettingsField("modelParamsInput", "string", default="", description="Expression yielding the parameters"),
        SettingsField("lr", "number", default=0.001, validation=FieldValidation(min=0)),
        SettingsField("momentum", "number", default=0, validation=FieldValidation(min=0)),
        SettingsField("dampening", "number", default=0),
        SettingsField("weightDecay", "number", default=0, validation=FieldValidation(min=0)),
        SettingsField("nesterov", "boolean", default=False),
        SettingsField("maximize", "boolean", default=False),
    ),
    emits_variables=(
        EmittedVariable("optimizer", switch_key="settingsFields.emitOptimizerVar", is_on_by_default=True),
    ),
    imports=(ImportSpec("torch"),),
)


@plugin(SGD)
def sgd(settings, children=None, context=None):
    kwargs = _optional_kwargs(
        {
            "lr": settings.get("lr"),
            "momentum": settings.get("momentum"),
            "dampening": settings.get("dampening"),
            "weight_decay": settings.get("weightDecay"),
            "nesterov": settings.get("nesterov"),
            "maximize": settings.get("maximize"),
        },
        {"lr": 0.001, "momentum": 0, "dampening": 0, "weight_decay": 0, "nesterov": False, "maximize": False},
    )
    code = build_call("torch.optim.SGD", [_model_parameters(settings, context)], kwargs)
    return assign_or_expression(code, emitted_variable_name(SGD, settings, "optimizerVarName"))


ADAM = PluginDefinition(
    slug="adam",
    name="Adam",
    node_type="optimizer",
    description="Adam optimizer: torch.optim.Adam",
    settings_fields=(
        SettingsField("optimizerVarName", "string", default="optimizer", required=True, validation=_IDENTIFIER),
        SettingsField("emitOptimizerVar", "boolean", default=True, required=True),
        SettingsField("modelParamsInput", "string", default=""),
        SettingsField("lr", "number", default=0.001, validation=FieldValidation(min=0)),
        SettingsField("betas", "array", default=[0.9, 0.999]),
        SettingsField("eps", "number", default=1e-08, validation=FieldValidation(min=0)),
        SettingsField("weightDecay", "number", default=0, validation=FieldValidation(min=0)),
        SettingsField("amsgrad", "boolean", default=False),
    ),
    emits_variables=(
        EmittedVariable("optimizer", switch_key="settingsFields.emitOptimizerVar", is_on_by_default=True),
    ),
    imports=(ImportSpec("torch"),),
)


@plugin(ADAM)
def adam(settings, children=None, context=None):
    betas = settings.get("betas")
    kwargs = _optional_kwargs(
        {
            "lr": settings.get("lr"),
            "betas": tuple(betas) if betas is not None else None,
            "eps": settings.get("eps"),
            "weight_decay": settings.get("weightDecay"),
            "amsgrad": settings.get("amsgrad"),
        },
        {"lr": 0.001, "betas": (0.9, 0.999), "eps": 1e-08, "weight_decay": 0, "amsgrad": False},
    )
    code = build_call("torch.optim.Adam", [_model_parameters(settings, context)], kwargs)
    return assign_or_expression(code, emitted_variable_name(ADAM, settings, "optimizerVarName"))


DATALOADER = PluginDefinition(
    slug="dataloader",
    name="DataLoader",
    node_type="dataloader",
    description="Batches a dataset: torch.utils.data.DataLoader",
    settings_fields=(
        SettingsField("dataset", "string", required=True, validation=_IDENTIFIER, description="Dataset variable"),
        SettingsField("variableName", "string", default="dataloader", required=True, validation=_IDENTIFIER),
        SettingsField("emitDataloaderVar", "boolean", default=True, required=True),
        SettingsField("batchSize", "integer", default=1, validation=FieldValidation(min=1)),
        SettingsField("shuffle", "boolean", default=False),
        SettingsField("numWorkers", "integer", default=0, validation=FieldValidation(min=0)),
        SettingsField("dropLast", "boolean", default=False),
        SettingsField("pinMemory", "boolean", default=False),
    ),
    emits_variables=(
        EmittedVariable("dataloader", switch_key="settingsFields.emitDataloaderVar", is_on_by_default=True),
    ),
    imports=(ImportSpec("torch.utils.data", items=("DataLoader",)),),
)


@plugin(DATALOADER)
def dataloader(settings, children=None, context=None):
    kwargs = _optional_kwargs(
        {
            "batch_size": settings.get("batchSize"),
            "shuffle": settings.get("shuffle"),
            "num_workers": settings.get("numWorkers"),
            "drop_last": settings.get("dropLast"),
            "pin_memory": settings.get("pinMemory"),
        },
        {"batch_size": 1, "shuffle": False, "num_workers": 0, "drop_last": False, "pin_memory": False},
    )
    code = build_call("DataLoader", [settings["dataset"]], kwargs)
    return assign_or_expression(code, emitted_variable_name(DATALOADER, settings, "variableName"))

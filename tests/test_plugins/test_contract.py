"""Tests for plugin definitions and the plugin decorator."""

from tensorweave.plugins import (
    EmittedVariable,
    GenerationContext,
    Handle,
    ImportSpec,
    InputRef,
    Plugin,
    PluginDefinition,
    SettingsField,
    plugin,
)


class TestImportSpec:
    def test_from_dict(self):
        spec = ImportSpec.from_dict({"path": "torch.nn", "items": ["Linear", "ReLU"], "as": {"ReLU": "Act"}})

        assert spec.path == "torch.nn"
        assert spec.items == ("Linear", "ReLU")
        assert spec.item_aliases == {"ReLU": "Act"}

    def test_to_dict_round_trip(self):
        data = {"path": "numpy", "alias": "np"}
        assert ImportSpec.from_dict(data).to_dict() == data

    def test_specs_are_hashable(self):
        assert len({ImportSpec("torch"), ImportSpec("torch")}) == 1


class TestValidateDefinition:
    def test_valid_definition(self):
        definition = PluginDefinition(slug="ok", settings_fields=(SettingsField("a", "integer"),))
        assert definition.validate_definition() == []

    def test_duplicate_keys_and_unknown_types(self):
        definition = PluginDefinition(
            slug="bad",
            settings_fields=(SettingsField("a", "integer"), SettingsField("a", "tensor")),
        )

        problems = definition.validate_definition()

        assert "Duplicate settings field key: a" in problems
        assert "Settings field a has unknown dataType 'tensor'" in problems

    def test_duplicate_handles(self):
        definition = PluginDefinition(slug="bad", output_handles=(Handle("next"), Handle("next")))
        assert definition.validate_definition() == ["Duplicate output handle id: next"]

    def test_emitted_variable_needs_toggle_field(self):
        definition = PluginDefinition(
            slug="bad",
            emits_variables=(EmittedVariable("model", switch_key="settingsFields.emitModel"),),
        )

        assert definition.validate_definition() == [
            "Emitted variable 'model' requires a boolean toggle settings field 'emitModel'"
        ]

    def test_toggle_field_rules(self):
        definition = PluginDefinition(
            slug="bad",
            settings_fields=(SettingsField("emitModel", "string", default=False),),
            emits_variables=(EmittedVariable("model", switch_key="settingsFields.emitModel", is_on_by_default=True),),
        )

        problems = definition.validate_definition()

        assert "Settings field 'emitModel' must have dataType boolean" in problems
        assert "Settings field 'emitModel' must be required" in problems
        assert any("must match isOnByDefault" in p for p in problems)

    def test_min_children_requires_structural(self):
        definition = PluginDefinition(slug="bad", min_children=2)
        assert definition.validate_definition() == ["min_children is only meaningful for structural plugins"]

    def test_missing_slug(self):
        assert "Plugin slug is required" in PluginDefinition(slug="").validate_definition()


class TestPluginDecorator:
    def test_decorator_binds_definition(self):
        @plugin(PluginDefinition(slug="echo", settings_fields=(SettingsField("text", "string", default="hi"),)))
        def echo(settings, children=None, context=None):
            return f"print({settings['text']!r})"

        assert isinstance(echo, Plugin)
        assert echo.slug == "echo"
        assert echo.get_translation_code({"text": "yo"}) == "print('yo')"

    def test_settings_imports_extend_static_imports(self):
        @plugin(
            PluginDefinition(slug="np", imports=(ImportSpec("torch"),)),
            settings_imports=lambda settings: [ImportSpec(settings["module"])],
        )
        def uses_module(settings, children=None, context=None):
            return ""

        assert uses_module.declared_imports({"module": "numpy"}) == [ImportSpec("torch"), ImportSpec("numpy")]

    def test_to_dict(self):
        definition = PluginDefinition(
            slug="layer",
            settings_fields=(SettingsField("units", "integer", default=4, required=True),),
            imports=(ImportSpec("torch"),),
        )

        data = definition.to_dict()

        assert data["slug"] == "layer"
        assert data["settingsFields"] == [{"key": "units", "dataType": "integer", "required": True, "defaultValue": 4}]
        assert data["inputHandles"] == ["prev"]
        assert data["outputHandles"] == ["next"]
        assert data["emits"]["imports"] == [{"path": "torch"}]


class TestGenerationContext:
    def test_inputs_are_ordered_by_handle_number(self):
        context = GenerationContext(
            node_id="n",
            plugin_type="t",
            input_data={1: InputRef("b", "relu"), 0: InputRef("a", "linear", variable="fc")},
        )

        assert [ref.node_id for ref in context.get_all_inputs()] == ["a", "b"]
        assert context.get_input(0).variable == "fc"
        assert context.get_input(5) is None

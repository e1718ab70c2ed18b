"""Tests for qualifying scoped layer references inside generated classes."""

import logging

import pytest

from tensorweave.core import UndefinedScopedVariableError
from tensorweave.plugins import rewrite_scoped_references

LAYERS = ["layer_0", "layer_1"]


class TestRewrite:
    def test_defined_names_are_qualified(self):
        code = "x = layer_0(x)\nx = layer_1(x)\nreturn x"

        assert rewrite_scoped_references(code, LAYERS) == "x = self.layer_0(x)\nx = self.layer_1(x)\nreturn x"

    def test_qualified_defined_names_are_untouched(self):
        code = "x = self.layer_0(x)"
        assert rewrite_scoped_references(code, LAYERS) == code

    def test_method_access_on_defined_name(self):
        """Only the head of a dotted name is qualified."""
        code = "w = layer_0.weight"
        assert rewrite_scoped_references(code, LAYERS) == "w = self.layer_0.weight"

    def test_attribute_of_other_object_is_untouched(self):
        code = "y = other.layer_0(x)\nz = foo().layer_1"
        assert rewrite_scoped_references(code, LAYERS) == code

    def test_strings_and_comments_are_untouched(self):
        code = 'print("layer_0")  # layer_1 is next\nx = layer_1(x)'

        assert rewrite_scoped_references(code, LAYERS) == 'print("layer_0")  # layer_1 is next\nx = self.layer_1(x)'

    def test_non_matching_names_are_untouched(self):
        code = "layer = layers_0 + my_layer_0"
        assert rewrite_scoped_references(code, LAYERS) == code

    def test_custom_pattern_and_qualifier(self):
        code = "out = block_a(x)"
        rewritten = rewrite_scoped_references(code, ["block_a"], pattern=r"block_\w+", qualifier="ctx")
        assert rewritten == "out = ctx.block_a(x)"

    def test_keyword_arguments_are_untouched(self):
        """Names in keyword or parameter position are not references to the layer."""
        code = "y = build(layer_0=layer_0, size = 3)\nz = f(x, layer_1 = 2)"

        assert rewrite_scoped_references(code, LAYERS) == (
            "y = build(layer_0=self.layer_0, size = 3)\nz = f(x, layer_1 = 2)"
        )

    def test_lambda_parameters_are_untouched(self):
        code = "g = lambda layer_1: layer_0(x)"
        assert rewrite_scoped_references(code, LAYERS) == "g = lambda layer_1: self.layer_0(x)"

    def test_comparison_is_still_a_reference(self):
        code = "same = (x, layer_0 == y)"
        assert rewrite_scoped_references(code, LAYERS) == "same = (x, self.layer_0 == y)"


class TestUndefinedReferences:
    def test_qualified_undefined_raises_with_line(self):
        code = "x = self.layer_0(x)\nx = self.layer_5(x)\nreturn x"

        with pytest.raises(UndefinedScopedVariableError) as exc_info:
            rewrite_scoped_references(code, LAYERS)

        error = exc_info.value
        assert error.variable == "layer_5"
        assert error.line_number == 2
        assert error.line == "x = self.layer_5(x)"

    def test_unqualified_undefined_is_left_and_logged(self, caplog):
        code = "x = layer_7(x)"

        with caplog.at_level(logging.WARNING, logger="tensorweave.plugins.scope"):
            result = rewrite_scoped_references(code, LAYERS)

        assert result == code
        assert "layer_7" in caplog.text
        record = caplog.records[-1]
        assert record.phase == "scope"
        assert record.free_variables == ["layer_7"]

    def test_no_warning_when_everything_is_defined(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tensorweave.plugins.scope"):
            rewrite_scoped_references("x = layer_0(x)", LAYERS)

        assert caplog.records == []

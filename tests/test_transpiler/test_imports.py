"""Tests for import merging and alias conflict handling."""

import logging

from tensorweave.plugins import ImportSpec
from tensorweave.transpiler import apply_alias_renames, merge_imports, plan_imports
from tensorweave.transpiler.imports import snake_alias


class TestPlanImports:
    def test_basic_imports_first_then_from_imports(self):
        plan = plan_imports(
            [
                ("a", ImportSpec("torch")),
                ("b", ImportSpec("torch.nn", items=("ReLU", "Linear"))),
                ("c", ImportSpec("numpy", alias="np")),
                ("d", ImportSpec("collections", items=("OrderedDict",))),
                ("e", ImportSpec("torch")),
            ]
        )

        assert plan.lines() == [
            "import numpy as np",
            "import torch",
            "from collections import OrderedDict",
            "from torch.nn import Linear, ReLU",
        ]

    def test_from_imports_are_merged_per_module(self):
        plan = plan_imports(
            [
                ("a", ImportSpec("torch.utils.data", items=("DataLoader",))),
                ("b", ImportSpec("torch.utils.data", items=("Dataset", "DataLoader"))),
            ]
        )

        assert plan.render() == "from torch.utils.data import DataLoader, Dataset"

    def test_item_aliases(self):
        plan = plan_imports([("a", ImportSpec("torch.nn", items=("Module", "Linear"), as_=(("Module", "Base"),)))])

        assert plan.lines() == ["from torch.nn import Linear, Module as Base"]

    def test_specs_without_path_are_ignored(self):
        assert plan_imports([("a", ImportSpec(""))]).lines() == []


class TestAliasConflicts:
    def test_snake_alias(self):
        assert snake_alias("MyAlias", 1) == "my_alias1"
        assert snake_alias("np", 2) == "np2"

    def test_later_alias_is_renamed_for_its_owner(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tensorweave.transpiler.imports"):
            plan = plan_imports(
                [
                    ("first", ImportSpec("numpy", alias="MyAlias")),
                    ("second", ImportSpec("pandas", alias="MyAlias")),
                ]
            )

        assert plan.lines() == ["import numpy as MyAlias", "import pandas as my_alias1"]
        assert plan.renames == {"second": {"MyAlias": "my_alias1"}}
        assert "renamed to 'my_alias1'" in caplog.text

    def test_third_conflict_gets_next_counter(self):
        plan = plan_imports(
            [
                ("a", ImportSpec("numpy", alias="lib")),
                ("b", ImportSpec("pandas", alias="lib")),
                ("c", ImportSpec("scipy", alias="lib")),
            ]
        )

        assert plan.renames == {"b": {"lib": "lib1"}, "c": {"lib": "lib2"}}

    def test_same_alias_for_same_module_is_not_a_conflict(self):
        plan = plan_imports([("a", ImportSpec("numpy", alias="np")), ("b", ImportSpec("numpy", alias="np"))])

        assert plan.lines() == ["import numpy as np"]
        assert plan.renames == {}

    def test_item_alias_conflict(self):
        plan = plan_imports(
            [
                ("a", ImportSpec("torch.nn", items=("Module",), as_=(("Module", "Base"),))),
                ("b", ImportSpec("mylib", items=("Thing",), as_=(("Thing", "Base"),))),
            ]
        )

        assert plan.renames == {"b": {"Base": "base1"}}
        assert "from mylib import Thing as base1" in plan.lines()


class TestMergeImports:
    def test_merge_is_idempotent(self):
        specs = [
            ImportSpec("torch"),
            ImportSpec("numpy", alias="np"),
            ImportSpec("torch.nn", items=("Linear",)),
            ImportSpec("torch.nn", items=("Module",), as_=(("Module", "Base"),)),
            ImportSpec("torch"),
        ]

        once = merge_imports(specs)

        assert merge_imports(once) == once
        assert plan_imports(("", s) for s in once).lines() == plan_imports(("", s) for s in specs).lines()


class TestApplyAliasRenames:
    def test_code_references_are_renamed(self):
        code = "x = MyAlias.array([1])  # MyAlias stays\ns = 'MyAlias'\nobj.MyAlias = MyAlias"

        assert apply_alias_renames(code, {"MyAlias": "my_alias1"}) == (
            "x = my_alias1.array([1])  # MyAlias stays\ns = 'MyAlias'\nobj.MyAlias = my_alias1"
        )

    def test_no_renames(self):
        assert apply_alias_renames("x = 1", {}) == "x = 1"

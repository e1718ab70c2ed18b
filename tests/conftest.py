"""Root-level test configuration and fixtures."""

from typing import Callable, Optional

import pytest

from tensorweave.plugins import Plugin
from tensorweave.registry import BuiltinPluginSource, PluginRegistry
from tests.shared.plugins import make_plugin

TENSORWEAVE_ENV_VARS = (
    "TENSORWEAVE_PLUGINS_DIR",
    "TENSORWEAVE_REMOTE_URL",
    "TENSORWEAVE_FORMATTER",
    "TENSORWEAVE_MULTI_ROOT",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from the user's ~/.tensorweave and TENSORWEAVE_* variables."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in TENSORWEAVE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def plugin_factory() -> Callable[..., Plugin]:
    return make_plugin


@pytest.fixture
def registry_factory() -> Callable[..., PluginRegistry]:
    """Registry serving exactly the given plugins."""

    def factory(*plugins: Plugin, sources: Optional[list] = None) -> PluginRegistry:
        return PluginRegistry(sources or [BuiltinPluginSource(list(plugins))])

    return factory


@pytest.fixture
def builtin_registry() -> PluginRegistry:
    return PluginRegistry()

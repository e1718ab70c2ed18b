"""Tests for plugin resolution, version pinning and concurrent fetching."""

import asyncio
import threading
import time
from typing import Optional

import pytest

from tensorweave.core import PluginNotFoundError
from tensorweave.core.settings import TensorweaveSettings
from tensorweave.plugins import Plugin
from tensorweave.registry import (
    BuiltinPluginSource,
    LocalPluginSource,
    PluginRegistry,
    PluginSource,
    PluginVersion,
    RemotePluginSource,
)
from tests.shared.plugins import make_plugin


class RecordingSource(PluginSource):
    """In-memory source that counts loads and can be slowed down."""

    name = "recording"

    def __init__(self, delay: float = 0.0):
        self.plugins: dict[tuple[str, str], tuple[Optional[str], Plugin]] = {}
        self.loads: list[tuple[str, str]] = []
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def add(self, slug: str, version: str, created_at: Optional[str] = None, code: str = "") -> Plugin:
        plugin = make_plugin(slug, code or f"{slug}_{version.replace('.', '_')}()", version=version)
        self.plugins[(slug, version)] = (created_at, plugin)
        return plugin

    def list_versions(self, slug: str) -> list[PluginVersion]:
        return [PluginVersion(v, created) for (s, v), (created, _) in self.plugins.items() if s == slug]

    def load(self, slug: str, version: str) -> Optional[Plugin]:
        with self._lock:
            self.loads.append((slug, version))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            entry = self.plugins.get((slug, version))
            return entry[1] if entry else None
        finally:
            with self._lock:
                self.active -= 1

    def list_slugs(self) -> list[str]:
        return sorted({slug for slug, _ in self.plugins})


class TestResolve:
    def test_builtin_by_slug(self, builtin_registry):
        assert builtin_registry.resolve("linear").slug == "linear"

    def test_explicit_version(self, builtin_registry):
        assert builtin_registry.resolve("linear:1.0.0").slug == "linear"

    def test_canvas_aliases(self, builtin_registry):
        assert builtin_registry.resolve("@tensorify/core/EndNode").slug == "end"
        assert builtin_registry.resolve("@tensorify/core/CustomCodeNode").slug == "custom-code"

    def test_unknown_type(self, builtin_registry):
        with pytest.raises(PluginNotFoundError) as exc_info:
            builtin_registry.resolve("ghost")

        assert exc_info.value.reason == "Plugin 'ghost' not found in builtin"

    def test_unknown_version(self, builtin_registry):
        with pytest.raises(PluginNotFoundError):
            builtin_registry.resolve("linear:7.0.0")

    def test_malformed_type(self, builtin_registry):
        with pytest.raises(PluginNotFoundError):
            builtin_registry.resolve("not a type")

    def test_results_are_cached(self):
        source = RecordingSource()
        source.add("block", "1.0.0")
        registry = PluginRegistry([source])

        first = registry.resolve("block")
        second = registry.resolve("block:1.0.0")

        assert first is second
        assert source.loads == [("block", "1.0.0")]


class TestVersionPinning:
    def test_latest_is_newest_by_creation_time(self):
        source = RecordingSource()
        source.add("block", "2.0.0", created_at="2024-01-01T00:00:00Z")
        source.add("block", "1.5.0", created_at="2024-03-01T00:00:00Z")

        assert PluginRegistry([source]).resolve("block").definition.version == "1.5.0"

    def test_latest_stays_pinned_for_the_run(self):
        """A version published mid-run does not change what 'latest' means."""
        source = RecordingSource()
        source.add("block", "1.0.0", created_at="2024-01-01")
        registry = PluginRegistry([source])
        registry.resolve("block")

        source.add("block", "2.0.0", created_at="2024-02-01")

        assert registry.resolve("block:latest").definition.version == "1.0.0"
        registry.clear_cache()
        assert registry.resolve("block").definition.version == "2.0.0"

    def test_first_source_with_versions_decides(self):
        preferred = RecordingSource()
        preferred.add("block", "1.0.0")
        fallback = RecordingSource()
        fallback.add("block", "5.0.0")

        plugin = PluginRegistry([preferred, fallback]).resolve("block")

        assert plugin.definition.version == "1.0.0"
        assert fallback.loads == []

    def test_explicit_version_falls_through_sources(self):
        override = RecordingSource()
        override.add("linear", "2.0.0")
        registry = PluginRegistry([override, BuiltinPluginSource()])

        assert registry.resolve("linear").definition.version == "2.0.0"
        assert registry.resolve("linear:1.0.0").definition.version == "1.0.0"


class TestThreadSafety:
    def test_concurrent_resolves_load_once(self):
        source = RecordingSource(delay=0.05)
        source.add("block", "1.0.0")
        registry = PluginRegistry([source])
        results: list[Plugin] = []

        threads = [threading.Thread(target=lambda: results.append(registry.resolve("block"))) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert len({id(plugin) for plugin in results}) == 1
        assert source.loads == [("block", "1.0.0")]


class TestAsyncResolution:
    def test_concurrent_aresolve_shares_one_fetch(self, monkeypatch):
        source = RecordingSource(delay=0.05)
        source.add("block", "1.0.0")
        registry = PluginRegistry([source])
        calls: list[str] = []
        original = registry.resolve

        def counting_resolve(plugin_type):
            calls.append(plugin_type)
            return original(plugin_type)

        monkeypatch.setattr(registry, "resolve", counting_resolve)

        async def main():
            return await asyncio.gather(*(registry.aresolve("block") for _ in range(5)))

        plugins = asyncio.run(main())

        assert calls == ["block"]
        assert all(plugin is plugins[0] for plugin in plugins)

    def test_prefetch_reports_failures_per_type(self, builtin_registry):
        resolved = asyncio.run(builtin_registry.prefetch(["linear", "ghost", "linear", "relu"]))

        assert list(resolved) == ["linear", "ghost", "relu"]
        assert resolved["linear"].slug == "linear"
        assert isinstance(resolved["ghost"], PluginNotFoundError)

    def test_prefetch_reraises_unexpected_errors(self):
        class ExplodingSource(PluginSource):
            def list_versions(self, slug):
                raise RuntimeError("store corrupted")

        registry = PluginRegistry([ExplodingSource()])

        with pytest.raises(RuntimeError, match="store corrupted"):
            asyncio.run(registry.prefetch(["block"]))

    def test_fetch_concurrency_is_bounded(self):
        source = RecordingSource(delay=0.05)
        for i in range(6):
            source.add(f"block{i}", "1.0.0")
        registry = PluginRegistry([source], max_concurrent_fetches=2)

        resolved = asyncio.run(registry.prefetch([f"block{i}" for i in range(6)]))

        assert len(resolved) == 6
        assert source.max_active <= 2

    def test_cancellation_discards_fetch(self):
        """Cancelling the caller cancels the shared fetch; a later call starts a new one."""
        started = threading.Event()
        release = threading.Event()
        plugin = make_plugin("slow")

        class BlockingSource(PluginSource):
            def list_versions(self, slug):
                return [PluginVersion("1.0.0")]

            def load(self, slug, version):
                started.set()
                release.wait(5)
                return plugin

        registry = PluginRegistry([BlockingSource()])

        async def main():
            task = asyncio.ensure_future(registry.aresolve("slow"))
            await asyncio.to_thread(started.wait, 5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            release.set()
            return await registry.aresolve("slow")

        assert asyncio.run(main()) is plugin


class TestListPlugins:
    def test_builtins_are_listed_sorted(self, builtin_registry):
        slugs = [definition.slug for definition in builtin_registry.list_plugins()]

        assert slugs == sorted(slugs)
        assert {"linear", "sequential", "nn-module", "end"} <= set(slugs)

    def test_higher_priority_source_wins(self):
        override = RecordingSource()
        override.add("linear", "2.0.0")
        registry = PluginRegistry([override, BuiltinPluginSource()])

        by_slug = {definition.slug: definition for definition in registry.list_plugins()}

        assert by_slug["linear"].version == "2.0.0"
        assert by_slug["relu"].version == "1.0.0"


class TestFromSettings:
    def test_default_chain_is_builtin_only(self):
        registry = PluginRegistry.from_settings(TensorweaveSettings())
        assert [type(source) for source in registry.sources] == [BuiltinPluginSource]

    def test_full_chain_order(self, tmp_path):
        settings = TensorweaveSettings()
        settings.registry.remote_url = "https://plugins.example.com"
        settings.registry.max_concurrent_fetches = 3

        registry = PluginRegistry.from_settings(settings, plugins_dir=tmp_path)

        assert [type(source) for source in registry.sources] == [
            LocalPluginSource,
            RemotePluginSource,
            BuiltinPluginSource,
        ]
        assert registry.max_concurrent_fetches == 3

"""Plugin registry: resolves node types to plugins.

Resolution is memoized per registry. A type without a version (or with
``:latest``) is pinned to one concrete version the first time it is
resolved, so every node of that type in the run gets the same plugin.
"""

import asyncio
import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Optional, Union

from tensorweave.core.exceptions import NodeError, PluginNotFoundError
from tensorweave.core.settings import TensorweaveSettings
from tensorweave.plugins.builtin import BUILTIN_ALIASES
from tensorweave.plugins.contract import Plugin, PluginDefinition

from .sources import BuiltinPluginSource, LocalPluginSource, PluginSource, RemotePluginSource, newest
from .versions import parse_plugin_type

logger = logging.getLogger(__name__)


class _LoopState:
    """Per event loop fetch bookkeeping."""

    def __init__(self, loop: asyncio.AbstractEventLoop, max_concurrent: int):
        self.loop = loop
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.inflight: dict[str, asyncio.Task] = {}


class PluginRegistry:
    """Resolves plugin type strings against an ordered list of sources.

    Sources earlier in the list take priority. The registry is safe to use
    from several threads and from asyncio code; each plugin type is fetched
    at most once.
    """

    def __init__(self, sources: Optional[list[PluginSource]] = None, max_concurrent_fetches: int = 8):
        self.sources: list[PluginSource] = sources if sources is not None else [BuiltinPluginSource()]
        self.max_concurrent_fetches = max_concurrent_fetches
        self._cache: dict[str, Plugin] = {}
        self._pins: dict[str, str] = {}
        self._guard = threading.Lock()
        self._slug_locks: dict[str, threading.Lock] = {}
        self._loop_state: Optional[_LoopState] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[TensorweaveSettings] = None,
        plugins_dir: Optional[Union[str, Path]] = None,
        remote_url: Optional[str] = None,
    ) -> "PluginRegistry":
        """Build the default source chain: local directory, remote store, built-ins."""
        settings = settings or TensorweaveSettings()
        plugins_dir = plugins_dir or settings.registry.plugins_dir
        remote_url = remote_url or settings.registry.remote_url

        sources: list[PluginSource] = []
        if plugins_dir:
            sources.append(LocalPluginSource(Path(plugins_dir)))
        if remote_url:
            sources.append(RemotePluginSource(remote_url, timeout=settings.registry.request_timeout))
        sources.append(BuiltinPluginSource())
        return cls(sources, max_concurrent_fetches=settings.registry.max_concurrent_fetches)

    def _slug_lock(self, slug: str) -> threading.Lock:
        with self._guard:
            lock = self._slug_locks.get(slug)
            if lock is None:
                lock = self._slug_locks[slug] = threading.Lock()
            return lock

    def _pin_latest(self, slug: str, plugin_type: str) -> str:
        pinned = self._pins.get(slug)
        if pinned is not None:
            return pinned
        for source in self.sources:
            candidate = newest(source.list_versions(slug))
            if candidate is not None:
                self._pins[slug] = candidate.version
                logger.debug(
                    f"Pinned {slug} to {candidate.version} from {source.name}",
                    extra={"phase": "registry", "plugin": slug},
                )
                return candidate.version
        raise PluginNotFoundError(plugin_type, source=self._source_names())

    def _source_names(self) -> str:
        return ", ".join(source.name for source in self.sources)

    def resolve(self, plugin_type: str) -> Plugin:
        """Resolve a node type to its plugin.

        Args:
            plugin_type: ``[@namespace/]name[:version]``

        Returns:
            The plugin providing that type

        Raises:
            PluginNotFoundError: If no source has the type (or the requested version)
            PluginLoadError: If a source has the type but it cannot be loaded
        """
        try:
            ref = parse_plugin_type(plugin_type)
        except ValueError as e:
            raise PluginNotFoundError(plugin_type) from e

        slug = BUILTIN_ALIASES.get(ref.slug, ref.slug)
        with self._slug_lock(slug):
            version = ref.version or self._pin_latest(slug, plugin_type)
            key = f"{slug}:{version}"
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            for source in self.sources:
                plugin = source.load(slug, version)
                if plugin is not None:
                    logger.debug(f"Resolved {plugin_type} from {source.name}", extra={"phase": "registry"})
                    self._cache[key] = plugin
                    return plugin
        raise PluginNotFoundError(plugin_type, source=self._source_names())

    def _state(self) -> _LoopState:
        loop = asyncio.get_running_loop()
        if self._loop_state is None or self._loop_state.loop is not loop:
            self._loop_state = _LoopState(loop, self.max_concurrent_fetches)
        return self._loop_state

    async def _fetch(self, state: _LoopState, plugin_type: str) -> Plugin:
        async with state.semaphore:
            return await asyncio.to_thread(self.resolve, plugin_type)

    async def aresolve(self, plugin_type: str) -> Plugin:
        """Async ``resolve``; concurrent calls for one type share a single fetch.

        Cancelling the caller cancels the shared fetch.
        """
        state = self._state()
        task = state.inflight.get(plugin_type)
        if task is None:
            task = asyncio.ensure_future(self._fetch(state, plugin_type))
            state.inflight[plugin_type] = task
            task.add_done_callback(lambda _t, key=plugin_type: state.inflight.pop(key, None))
        return await task

    async def prefetch(self, plugin_types: Iterable[str]) -> dict[str, Union[Plugin, NodeError]]:
        """Resolve distinct types concurrently.

        Returns:
            Mapping of type to plugin, or to the NodeError explaining why it failed
        """
        unique = list(dict.fromkeys(plugin_types))
        results = await asyncio.gather(*(self.aresolve(t) for t in unique), return_exceptions=True)

        resolved: dict[str, Union[Plugin, NodeError]] = {}
        for plugin_type, result in zip(unique, results):
            if isinstance(result, (Plugin, NodeError)):
                resolved[plugin_type] = result
            elif isinstance(result, BaseException):
                raise result
        return resolved

    def list_plugins(self) -> list[PluginDefinition]:
        """Definitions of every listable plugin, one per slug, highest priority source first."""
        definitions: dict[str, PluginDefinition] = {}
        for source in self.sources:
            for slug in source.list_slugs():
                if slug in definitions:
                    continue
                definitions[slug] = self.resolve(slug).definition
        return [definitions[slug] for slug in sorted(definitions)]

    def clear_cache(self) -> None:
        with self._guard:
            self._cache.clear()
            self._pins.clear()

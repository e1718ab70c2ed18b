"""Where plugin implementations come from.

A source answers two questions for a slug: which versions exist, and what
is the plugin for one of them. Sources are consulted in priority order by
the registry; none of them cache across registries.

SECURITY WARNING: local and remote sources execute plugin modules. Only
point them at directories and stores you trust.
"""

import importlib.util
import logging
import re
import types
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import requests

from tensorweave.core.exceptions import PluginLoadError
from tensorweave.plugins.builtin import BUILTIN_PLUGINS
from tensorweave.plugins.contract import Plugin

from .versions import version_key

logger = logging.getLogger(__name__)

PLUGIN_FILE = "plugin.py"
PLUGIN_ATTRIBUTE = "PLUGIN"


@dataclass(frozen=True)
class PluginVersion:
    version: str
    created_at: Optional[str] = None


def newest(versions: list[PluginVersion]) -> Optional[PluginVersion]:
    """Newest by creation time; versions without a timestamp rank oldest, ties go to the higher version."""
    if not versions:
        return None
    return max(versions, key=lambda v: (v.created_at or "", version_key(v.version)))


def plugin_from_module(module: Any, origin: str) -> Plugin:
    """Extract and check the ``PLUGIN`` object a plugin module exposes."""
    candidate = getattr(module, PLUGIN_ATTRIBUTE, None)
    if not isinstance(candidate, Plugin):
        raise PluginLoadError(
            f"Plugin module '{origin}' must define {PLUGIN_ATTRIBUTE} as a tensorweave Plugin",
            details={"origin": origin},
        )
    problems = candidate.definition.validate_definition()
    if problems:
        raise PluginLoadError(
            f"Invalid plugin definition in '{origin}': {'; '.join(problems)}",
            plugin_type=candidate.slug,
            details={"origin": origin, "problems": problems},
        )
    return candidate


def _module_name(origin: str) -> str:
    return "tensorweave_plugin_" + re.sub(r"\W", "_", origin)


class PluginSource:
    """Base class for plugin sources."""

    name = "source"

    def list_versions(self, slug: str) -> list[PluginVersion]:
        raise NotImplementedError

    def load(self, slug: str, version: str) -> Optional[Plugin]:
        """Return the plugin, or None when this source does not have it."""
        raise NotImplementedError

    def list_slugs(self) -> list[str]:
        return []


class BuiltinPluginSource(PluginSource):
    """Plugins shipped in ``tensorweave.plugins.builtin``."""

    name = "builtin"

    def __init__(self, plugins: Optional[list[Plugin]] = None):
        self._plugins = {p.slug: p for p in (plugins if plugins is not None else BUILTIN_PLUGINS)}

    def list_versions(self, slug: str) -> list[PluginVersion]:
        plugin = self._plugins.get(slug)
        return [PluginVersion(plugin.definition.version)] if plugin else []

    def load(self, slug: str, version: str) -> Optional[Plugin]:
        plugin = self._plugins.get(slug)
        if plugin is None or plugin.definition.version != version:
            return None
        return plugin

    def list_slugs(self) -> list[str]:
        return sorted(self._plugins)


class LocalPluginSource(PluginSource):
    """Plugins in a directory, one folder per plugin.

    Layout::

        <directory>/<slug>/plugin.py
        <directory>/<slug>:<version>/plugin.py
        <directory>/@<namespace>/<name>:<version>/plugin.py

    Unversioned folders take their version from the plugin definition; they
    are only imported when their slug is asked for.
    """

    name = "local"

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()
        # slug -> [(folder version or None, plugin.py path)]
        self._index: Optional[dict[str, list[tuple[Optional[str], Path]]]] = None
        self._loaded: dict[Path, Plugin] = {}

    def _plugin_dirs(self) -> list[tuple[str, Path]]:
        found: list[tuple[str, Path]] = []
        if not self.directory.is_dir():
            logger.warning(f"Plugins directory does not exist: {self.directory}")
            return found
        for entry in sorted(self.directory.iterdir()):
            if not entry.is_dir():
                continue
            if entry.name.startswith("@"):
                found.extend(
                    (f"{entry.name}/{child.name}", child)
                    for child in sorted(entry.iterdir())
                    if (child / PLUGIN_FILE).is_file()
                )
            elif (entry / PLUGIN_FILE).is_file():
                found.append((entry.name, entry))
        return found

    def _build_index(self) -> dict[str, list[tuple[Optional[str], Path]]]:
        if self._index is not None:
            return self._index
        index: dict[str, list[tuple[Optional[str], Path]]] = {}
        for folder_name, folder in self._plugin_dirs():
            slug, _, version = folder_name.partition(":")
            index.setdefault(slug, []).append((version or None, folder / PLUGIN_FILE))
        self._index = index
        logger.debug(
            f"Indexed {len(index)} local plugin(s)",
            extra={"phase": "registry", "directory": str(self.directory)},
        )
        return index

    def _load_file(self, path: Path) -> Plugin:
        if path in self._loaded:
            return self._loaded[path]
        try:
            spec = importlib.util.spec_from_file_location(_module_name(str(path)), path)
            if spec is None or spec.loader is None:
                raise ImportError(f"Could not load spec from {path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            raise PluginLoadError(
                f"Failed to import plugin from '{path}'",
                details={"file_path": str(path), "import_error": str(e)},
            ) from e
        plugin = plugin_from_module(module, str(path))
        self._loaded[path] = plugin
        return plugin

    def _versions(self, slug: str) -> list[tuple[str, Path]]:
        return [
            (version or self._load_file(path).definition.version, path)
            for version, path in self._build_index().get(slug, [])
        ]

    def list_versions(self, slug: str) -> list[PluginVersion]:
        versions = []
        for version, path in self._versions(slug):
            created = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()
            versions.append(PluginVersion(version, created))
        return versions

    def load(self, slug: str, version: str) -> Optional[Plugin]:
        for candidate, path in self._versions(slug):
            if candidate == version:
                return self._load_file(path)
        return None

    def list_slugs(self) -> list[str]:
        return sorted(self._build_index())


class RemotePluginSource(PluginSource):
    """Plugins served over HTTP.

    ``<base_url>/<slug>/index.json`` lists versions as
    ``{"versions": [{"version": "1.0.0", "createdAt": "..."}]}`` and
    ``<base_url>/<slug>:<version>/plugin.py`` is the plugin module.
    """

    name = "remote"

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, url: str) -> Optional[requests.Response]:
        logger.debug(f"Fetching {url}", extra={"phase": "registry"})
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PluginLoadError(f"Failed to fetch '{url}': {e}", details={"url": url}) from e
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise PluginLoadError(
                f"Plugin store returned HTTP {response.status_code} for '{url}'",
                details={"url": url, "status_code": response.status_code},
            ) from e
        return response

    def list_versions(self, slug: str) -> list[PluginVersion]:
        response = self._get(f"{self.base_url}/{slug}/index.json")
        if response is None:
            return []
        try:
            data = response.json()
        except ValueError as e:
            raise PluginLoadError(f"Invalid version index for '{slug}'", plugin_type=slug) from e
        if not isinstance(data, dict) or not isinstance(data.get("versions", []), list):
            raise PluginLoadError(
                f"Invalid version index for '{slug}': expected an object with a 'versions' list",
                plugin_type=slug,
                details={"index_type": type(data).__name__},
            )
        return [
            PluginVersion(str(item["version"]), item.get("createdAt"))
            for item in data.get("versions", [])
            if isinstance(item, dict) and item.get("version")
        ]

    def load(self, slug: str, version: str) -> Optional[Plugin]:
        url = f"{self.base_url}/{slug}:{version}/{PLUGIN_FILE}"
        response = self._get(url)
        if response is None:
            return None
        module = types.ModuleType(_module_name(url))
        module.__file__ = url
        try:
            exec(compile(response.text, url, "exec"), module.__dict__)  # noqa: S102
        except Exception as e:
            raise PluginLoadError(
                f"Failed to execute remote plugin '{slug}:{version}'",
                plugin_type=f"{slug}:{version}",
                details={"url": url, "import_error": str(e)},
            ) from e
        return plugin_from_module(module, url)

"""Settings management for tensorweave with environment variable override support."""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class RegistrySettings(BaseModel):
    """Where plugin definitions come from."""

    plugins_dir: Optional[str] = Field(
        default=None, description="Local directory of plugin folders (<slug>[:<version>]/plugin.py)"
    )
    remote_url: Optional[str] = Field(default=None, description="Base URL of the remote plugin store")
    request_timeout: float = Field(default=10.0, gt=0)
    max_concurrent_fetches: int = Field(default=8, ge=1)


class FormatterSettings(BaseModel):
    """External formatter invocation."""

    enabled: bool = Field(default=True)
    command: list[str] = Field(default_factory=lambda: ["black", "--quiet", "-"])
    timeout: float = Field(default=20.0, gt=0)


class ResolverSettings(BaseModel):
    """Graph resolution behavior.

    multi_root controls what happens when a resolved path has more than one
    root node: "warn" logs and continues, "error" fails the artifact.
    """

    multi_root: str = Field(default="warn")

    @field_validator("multi_root")
    @classmethod
    def validate_multi_root(cls, v: str) -> str:
        if v not in ["warn", "error"]:
            raise ValueError(f"Invalid multi_root: {v}. Must be 'warn' or 'error'")
        return v


class TensorweaveSettings(BaseModel):
    """Main settings configuration."""

    version: str = Field(default="1.0.0")
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    formatter: FormatterSettings = Field(default_factory=FormatterSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)


class SettingsManager:
    """Manages tensorweave settings with environment variable override support."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or Path.home() / ".tensorweave" / "settings.json"
        self._settings: Optional[TensorweaveSettings] = None
        self._lock = threading.Lock()

    def load(self) -> TensorweaveSettings:
        """Load settings with environment variable overrides."""
        if self._settings is None:
            self._settings = self._load_from_file()
        # Env overrides are applied to a copy so toggling them never leaks into save()
        settings = self._settings.model_copy(deep=True)
        self._apply_env_overrides(settings)
        return settings

    def reload(self) -> TensorweaveSettings:
        """Force reload settings from file."""
        self._settings = None
        return self.load()

    def _load_from_file(self) -> TensorweaveSettings:
        """Load settings from file or return defaults."""
        if self.settings_path.exists():
            try:
                with open(self.settings_path) as f:
                    data = json.load(f)
                return TensorweaveSettings(**data)
            except Exception as e:
                logger.warning(f"Failed to load settings from {self.settings_path} ({e}); using defaults")
        return TensorweaveSettings()

    def _apply_env_overrides(self, settings: TensorweaveSettings) -> None:
        plugins_dir = os.getenv("TENSORWEAVE_PLUGINS_DIR")
        if plugins_dir:
            settings.registry.plugins_dir = plugins_dir

        remote_url = os.getenv("TENSORWEAVE_REMOTE_URL")
        if remote_url:
            settings.registry.remote_url = remote_url

        formatter = os.getenv("TENSORWEAVE_FORMATTER")
        if formatter is not None:
            if formatter.lower() in ("on", "true", "1", "yes"):
                settings.formatter.enabled = True
            elif formatter.lower() in ("off", "false", "0", "no"):
                settings.formatter.enabled = False
            else:
                logger.warning(f"Invalid TENSORWEAVE_FORMATTER: {formatter}. Expected on/off")

        multi_root = os.getenv("TENSORWEAVE_MULTI_ROOT")
        if multi_root is not None:
            if multi_root.lower() in ("warn", "error"):
                settings.resolver.multi_root = multi_root.lower()
            else:
                logger.warning(
                    f"Invalid TENSORWEAVE_MULTI_ROOT: {multi_root}. Using default: {settings.resolver.multi_root}"
                )

    def save(self, settings: Optional[TensorweaveSettings] = None) -> None:
        """Save settings to file with an atomic replace."""
        with self._lock:
            if settings is None:
                settings = self._settings or self._load_from_file()

            self.settings_path.parent.mkdir(parents=True, exist_ok=True)

            temp_fd, temp_path = tempfile.mkstemp(dir=self.settings_path.parent, prefix=".settings.", suffix=".tmp")
            try:
                with open(temp_fd, "w", encoding="utf-8") as f:
                    json.dump(settings.model_dump(), f, indent=2)
                os.replace(temp_path, self.settings_path)
                self._settings = None
            except Exception:
                Path(temp_path).unlink(missing_ok=True)
                raise

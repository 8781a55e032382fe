"""
Maniac Configuration
====================

Layered configuration container.

Sources are merged by priority (highest wins):
1. Runtime values set with ``Config.set``
2. ``MANIAC_*`` environment variables
3. ``config/{APP_ENV}.py``
4. ``config/app.py``
5. Defaults passed to the constructor

Environment variables use a double underscore as the nesting separator, so
``MANIAC_APP__ASSET_URL=https://cdn.test`` sets ``app.asset_url``.

Example:
    config = Config({"app": {"debug": False}})
    config.load_from_path(Path("config"))

    if config.get_bool("app.debug"):
        ...
    views = config.get_list("view.paths", ["views"])
"""

from __future__ import annotations

import importlib.util
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, TypeVar, Union

import orjson

from maniac.utils.helpers import deep_merge, get_nested, set_nested

T = TypeVar("T")

ENV_PREFIX = "MANIAC_"

DEFAULTS: Dict[str, Any] = {
    "app": {
        "name": "Maniac",
        "env": "production",
        "debug": False,
        "url": "http://localhost",
        "asset_url": None,
        "key": "",
    },
    "view": {
        "paths": ["views"],
        "cache": "storage/views",
        "extension": ".niac.html",
    },
    "database": {
        "url": "sqlite:///database.sqlite",
        "migrations": "database/migrations",
        "seeders": "database/seeders",
    },
    "mail": {
        "default": "log",
        "mailers": {"log": {"transport": "log"}, "array": {"transport": "array"}},
        "from": {"address": "hello@example.com", "name": "Maniac"},
        "markdown": {"theme": "default", "paths": []},
    },
    "logging": {"level": "info", "format": "text", "file": None},
}


@dataclass
class ConfigSource:
    """A named layer of configuration values."""

    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    priority: int = 0


class Config:
    """
    Application configuration with dot-notation access.

    Example:
        config = Config()
        config.set("mail.default", "smtp")
        config.get("mail.default")           # "smtp"
        config.get("mail.missing", "fallback")  # "fallback"
    """

    def __init__(self, defaults: Optional[Mapping[str, Any]] = None) -> None:
        self._sources: List[ConfigSource] = []
        self._merged: Dict[str, Any] = {}
        self._dirty = True
        self.add_source("defaults", dict(defaults if defaults is not None else DEFAULTS), priority=0)

    def load_from_path(self, config_path: Union[str, Path], env: Optional[str] = None) -> "Config":
        """
        Load ``app.py`` and ``{env}.py`` from a directory, then apply
        ``MANIAC_*`` environment overrides.

        Args:
            config_path: Directory holding the configuration modules
            env: Environment name, defaults to ``$APP_ENV`` or ``production``
        """
        config_path = Path(config_path)
        if config_path.is_dir():
            base = config_path / "app.py"
            if base.is_file():
                self.add_source("app", self._load_python_config(base), priority=10)

            env = env or os.getenv("APP_ENV", "production")
            specific = config_path / f"{env}.py"
            if specific.is_file():
                self.add_source(f"env:{env}", self._load_python_config(specific), priority=20)

        self.load_env_overrides()
        return self

    def _load_python_config(self, path: Path) -> Dict[str, Any]:
        spec = importlib.util.spec_from_file_location(f"maniac_config_{path.stem}", path)
        if spec is None or spec.loader is None:
            return {}
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        if isinstance(getattr(module, "config", None), dict):
            return module.config
        return {
            key.lower(): value
            for key, value in vars(module).items()
            if not key.startswith("_") and key.isupper()
        }

    def load_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """Apply ``MANIAC_SECTION__KEY`` variables as a high priority layer."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for key, value in environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            path = key[len(ENV_PREFIX):].lower().replace("__", ".")
            set_nested(overrides, path, self._parse_env_value(value))

        self._sources = [s for s in self._sources if s.name != "env_vars"]
        if overrides:
            self.add_source("env_vars", overrides, priority=100)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        lowered = value.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
        if lowered in ("null", "none"):
            return None
        for cast in (int, float):
            try:
                return cast(value)
            except ValueError:
                continue
        if value.startswith(("{", "[")):
            try:
                return orjson.loads(value)
            except orjson.JSONDecodeError:
                return value
        return value

    def add_source(self, name: str, data: Dict[str, Any], priority: int = 0) -> None:
        self._sources.append(ConfigSource(name=name, data=data, priority=priority))
        self._dirty = True

    def _merge(self) -> Dict[str, Any]:
        if self._dirty:
            merged: Dict[str, Any] = {}
            for source in sorted(self._sources, key=lambda s: s.priority):
                merged = deep_merge(merged, source.data)
            self._merged = merged
            self._dirty = False
        return self._merged

    def get(self, key: str, default: T = None) -> Union[Any, T]:
        """
        Get a value using dot notation.

        Args:
            key: Key such as ``"app.debug"``
            default: Returned when the key is missing

        Returns:
            Configured value or default
        """
        return get_nested(self._merge(), key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1", "on")
        return bool(value)

    def get_list(self, key: str, default: Optional[List[Any]] = None) -> List[Any]:
        value = self.get(key, default)
        if value is None:
            return list(default or [])
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [value]

    def set(self, key: str, value: Any) -> None:
        """Set a runtime value. Runtime values outrank every other source."""
        runtime = next((s for s in self._sources if s.name == "runtime"), None)
        if runtime is None:
            runtime = ConfigSource(name="runtime", priority=1000)
            self._sources.append(runtime)
        set_nested(runtime.data, key, value)
        self._dirty = True

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def section(self, prefix: str) -> Dict[str, Any]:
        value = self.get(prefix)
        return dict(value) if isinstance(value, dict) else {}

    def all(self) -> Dict[str, Any]:
        return dict(self._merge())

    def __getitem__(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

"""
Maniac Environment
==================

``.env`` file loading and typed access to environment variables.

Example:
    env = Env(base_path / ".env").load()

    debug = env.bool("APP_DEBUG", default=False)
    port = env.int("APP_PORT", default=8000)
    key = env.str("APP_KEY", required=True)
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

_VARIABLE = re.compile(r"\$\{([^}]+)\}|\$(\w+)")

TRUTHY = frozenset({"true", "1", "yes", "on", "(true)"})
FALSY = frozenset({"false", "0", "no", "off", "(false)", ""})


class Env:
    """
    Environment variable reader backed by an optional ``.env`` file.

    Values already present in ``os.environ`` win over file values unless
    ``override`` is set.
    """

    def __init__(
        self,
        env_file: Optional[Union[str, Path]] = None,
        override: bool = False,
    ):
        self.env_file = Path(env_file) if env_file else None
        self.override = override
        self._values: Dict[str, str] = {}

    def load(self, env_file: Optional[Union[str, Path]] = None) -> "Env":
        """
        Read the ``.env`` file (when it exists) into the process environment.

        Returns:
            Self for chaining
        """
        path = Path(env_file) if env_file else self.env_file
        if path is None:
            path = Path.cwd() / ".env"
        if path.is_file():
            self.parse(path.read_text(encoding="utf-8"))
        return self

    def parse(self, content: str) -> Dict[str, str]:
        """Parse ``KEY=value`` lines and export them. Returns the parsed pairs."""
        parsed: Dict[str, str] = {}
        for raw in content.splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            quoted = len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'"
            if quoted:
                quote, value = value[0], value[1:-1]
                if quote == '"':
                    value = value.replace("\\n", "\n").replace('\\"', '"')
                    value = self._interpolate(value)
            else:
                value = self._interpolate(value.split(" #", 1)[0].rstrip())

            parsed[key] = value
            self._values[key] = value
            if self.override or key not in os.environ:
                os.environ[key] = value
        return parsed

    def _interpolate(self, value: str) -> str:
        def replace(match: re.Match) -> str:
            name = match.group(1) or match.group(2)
            return os.environ.get(name, self._values.get(name, ""))

        return _VARIABLE.sub(replace, value)

    def get(
        self,
        key: str,
        default: Optional[str] = None,
        required: bool = False,
    ) -> Optional[str]:
        """
        Look up a variable.

        Raises:
            KeyError: When ``required`` and the variable is missing
        """
        value = os.environ.get(key, self._values.get(key))
        if value is None:
            if required:
                raise KeyError(f"Required environment variable '{key}' is not set")
            return default
        return value

    def str(self, key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
        return self.get(key, default, required)

    def int(self, key: str, default: Optional[int] = None, required: bool = False) -> Optional[int]:
        value = self.get(key, required=required)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' is not a valid integer") from None

    def bool(self, key: str, default: Optional[bool] = None, required: bool = False) -> Optional[bool]:
        value = self.get(key, required=required)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in TRUTHY:
            return True
        if lowered in FALSY:
            return False
        raise ValueError(f"Environment variable '{key}' is not a valid boolean")

    def list(
        self,
        key: str,
        default: Optional[List[str]] = None,
        separator: str = ",",
    ) -> Optional[List[str]]:
        value = self.get(key)
        if value is None:
            return default
        return [item.strip() for item in value.split(separator) if item.strip()]

    def __contains__(self, key: str) -> bool:
        return key in os.environ or key in self._values

    def __getitem__(self, key: str) -> Optional[str]:
        return self.get(key)

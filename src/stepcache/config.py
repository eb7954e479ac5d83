"""Settings loader for fingerprint and cache configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from stepcache.core.digest import get_hasher
from stepcache.core.validation import ConfigurationError, raise_for_schema

MAINFOLDER_ENV = "STEPCACHE_MAINFOLDER"

_ENV_OVERRIDES = {
    "hash_algorithm": "STEPCACHE_HASH_ALGORITHM",
    "source_folder": "STEPCACHE_SOURCEFOLDER",
    "cache_folder": "STEPCACHE_CACHEFOLDER",
}

SETTINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "hash_algorithm": {"type": "string", "minLength": 1},
        "main_folder": {"type": "string"},
        "source_folder": {"type": "string"},
        "cache_folder": {"type": "string"},
        "max_workers": {"type": "integer", "minimum": 1},
        "verbosity": {"type": "integer", "minimum": 0},
    },
    "additionalProperties": False,
}


def get_main_folder() -> Path:
    """Return the main folder from ``$STEPCACHE_MAINFOLDER`` or ``~/.stepcache``."""
    env = os.environ.get(MAINFOLDER_ENV)
    if env:
        return Path(env)
    return Path.home() / ".stepcache"


def _resolve_cache_folder(main_folder: Path, value: str | Path) -> Path:
    # A bare name is shorthand for a revision folder below <main>/cache
    text = str(value)
    if "/" not in text and os.sep not in text:
        return main_folder / "cache" / text
    return Path(text)


@dataclass(frozen=True)
class Settings:
    hash_algorithm: str = "md5"
    main_folder: Path = field(default_factory=get_main_folder)
    source_folder: Path | None = None
    cache_folder: Path | None = None
    max_workers: int = 1
    verbosity: int = 1
    # Folders as given, before derivation from main_folder
    _explicit_source_folder: Path | None = field(default=None, init=False, repr=False, compare=False)
    _explicit_cache_folder: Path | str | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Fail early on an unknown digest
        get_hasher(self.hash_algorithm)
        object.__setattr__(self, "main_folder", Path(self.main_folder))
        object.__setattr__(self, "_explicit_source_folder", self.source_folder)
        object.__setattr__(self, "_explicit_cache_folder", self.cache_folder)
        if self.source_folder is None:
            object.__setattr__(self, "source_folder", self.main_folder / "sources")
        else:
            object.__setattr__(self, "source_folder", Path(self.source_folder))
        if self.cache_folder is None:
            object.__setattr__(self, "cache_folder", self.main_folder / "cache" / "default")
        else:
            object.__setattr__(
                self, "cache_folder", _resolve_cache_folder(self.main_folder, self.cache_folder)
            )

    def replace(self, **changes: Any) -> Settings:
        """Return a copy with ``changes`` applied.

        Folders that were derived from ``main_folder`` are derived again, so
        changing the main folder moves the default source and cache folders too.
        """
        names = [f.name for f in fields(self) if f.init]
        unknown = set(changes) - set(names)
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        values = {name: getattr(self, name) for name in names}
        values["source_folder"] = self._explicit_source_folder
        values["cache_folder"] = self._explicit_cache_folder
        values.update(changes)
        return Settings(**values)

    def as_dict(self) -> dict[str, Any]:
        return {
            "hash_algorithm": self.hash_algorithm,
            "main_folder": str(self.main_folder),
            "source_folder": str(self.source_folder),
            "cache_folder": str(self.cache_folder),
            "max_workers": self.max_workers,
            "verbosity": self.verbosity,
        }


def load_settings(path: str | Path | None = None, profile: str = "default") -> Settings:
    """Load settings from a profile-keyed YAML file.

    Precedence (highest first):
    1. Environment variables (``STEPCACHE_HASH_ALGORITHM``, ``STEPCACHE_SOURCEFOLDER``,
       ``STEPCACHE_CACHEFOLDER``)
    2. Profile values from the settings file
    3. Built-in defaults

    Args:
        path: Optional path to settings YAML file
        profile: Profile name to load (default: "default")

    Raises:
        ConfigurationError: If the file is unreadable, the profile is missing
            or any value is invalid
    """
    profile_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except OSError as exc:
            raise ConfigurationError(f"Cannot read settings file {config_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in settings file {config_path}: {exc}") from exc
        if not isinstance(data, dict) or profile not in data:
            raise ConfigurationError(f"Profile '{profile}' not found in {config_path}")
        profile_data = dict(data[profile] or {})
        raise_for_schema(profile_data, SETTINGS_SCHEMA, context=f"settings:{profile}")

    for key, env_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            profile_data[key] = value

    if "main_folder" in profile_data:
        profile_data["main_folder"] = Path(profile_data["main_folder"])
    return Settings(**profile_data)


__all__ = ["MAINFOLDER_ENV", "Settings", "get_main_folder", "load_settings"]

"""Configuration management for the user directory service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

STORE_BACKENDS = ("json", "sqlite", "memory")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_STORE_PATHS = {
    "json": _PROJECT_ROOT / "data" / "users.json",
    "sqlite": _PROJECT_ROOT / "data" / "users.sqlite3",
}


def _resolve_path(raw: object, base_path: Path | None) -> Path:
    candidate = Path(str(raw)).expanduser()
    if candidate.is_absolute() or base_path is None:
        return candidate.resolve(strict=False)
    return (base_path / candidate).resolve(strict=False)


@dataclass(frozen=True)
class DirectoryConfig:
    """Runtime settings for the directory service."""

    store_backend: str = "json"
    store_path: Optional[Path] = None
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "DirectoryConfig":
        """Create a :class:`DirectoryConfig` from raw dictionary data."""

        store_raw = data.get("store") or {}
        if not isinstance(store_raw, Mapping):
            raise ValueError("The 'store' configuration section must be a mapping")
        server_raw = data.get("server") or {}
        if not isinstance(server_raw, Mapping):
            raise ValueError("The 'server' configuration section must be a mapping")

        backend = str(store_raw.get("backend", "json")).strip().lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(f"Unknown store backend '{backend}'")

        raw_path = store_raw.get("path")
        store_path = _resolve_path(raw_path, base_path) if raw_path else _DEFAULT_STORE_PATHS.get(backend)

        return DirectoryConfig(
            store_backend=backend,
            store_path=store_path,
            host=str(server_raw.get("host", "0.0.0.0")),
            port=int(server_raw.get("port", 8000)),
            log_level=str(data.get("log_level", "info")).lower(),
        )

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> "DirectoryConfig":
        env = os.environ if environ is None else environ
        updated = self

        backend = env.get("USERDIR_STORE_BACKEND")
        if backend:
            backend = backend.strip().lower()
            if backend not in STORE_BACKENDS:
                raise ValueError(f"Unknown store backend '{backend}'")
            updated = replace(updated, store_backend=backend, store_path=_DEFAULT_STORE_PATHS.get(backend))

        store_path = env.get("USERDIR_STORE_PATH")
        if store_path:
            updated = replace(updated, store_path=_resolve_path(store_path, None))

        return updated


def load_config(config_path: Path) -> DirectoryConfig:
    """Load settings from a YAML file; a missing file yields the defaults."""

    if not config_path.exists():
        return DirectoryConfig.from_dict({})

    with config_path.open("r", encoding="utf-8") as handle:
        raw: Dict[str, object] = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return DirectoryConfig.from_dict(raw, base_path=config_path.parent)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (_PROJECT_ROOT / "config" / "userdir.yaml").resolve(strict=False)
    return candidate


def load_runtime_config(environ: Mapping[str, str] | None = None) -> DirectoryConfig:
    env = os.environ if environ is None else environ
    config = load_config(resolve_config_path(env.get("USERDIR_CONFIG")))
    return config.with_env_overrides(env)


__all__ = [
    "STORE_BACKENDS",
    "DirectoryConfig",
    "load_config",
    "load_runtime_config",
    "resolve_config_path",
]

"""
Catalog settings loader.

The settings file is TOML with one table per catalog:

    [family]
    data_path = "/Volumes/Photos/archive"
    thumbnail_path = "/Users/me/Pictures/casket/family"
"""
import logging
import os
import tomllib
from pathlib import Path
from typing import Dict, Optional

from . import config
from .exceptions import ConfigError
from .models import CatalogConfig


def default_config_path() -> Path:
    env = os.environ.get(config.CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".config" / "casket" / "catalogs.toml"


def load_catalogs(path: Optional[Path] = None) -> Dict[str, CatalogConfig]:
    """
    Reads every catalog defined in the settings file.
    A missing or malformed file is fatal.
    """
    path = path or default_config_path()
    logging.debug(f"Loading catalog settings from {path}")

    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    try:
        with path.open("rb") as f:
            raw = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigError(f"Could not read settings file {path}: {e}") from e

    catalogs: Dict[str, CatalogConfig] = {}
    for name, table in raw.items():
        if not isinstance(table, dict):
            raise ConfigError(f"Catalog '{name}' must be a table in {path}")
        missing = [k for k in ("data_path", "thumbnail_path") if not table.get(k)]
        if missing:
            raise ConfigError(f"Catalog '{name}' is missing {', '.join(missing)}")
        catalogs[name] = CatalogConfig(
            name=name,
            data_path=Path(str(table["data_path"])).expanduser(),
            thumbnail_path=Path(str(table["thumbnail_path"])).expanduser(),
        )
    return catalogs


def get_catalog(name: str, path: Optional[Path] = None) -> CatalogConfig:
    catalogs = load_catalogs(path)
    if name not in catalogs:
        available = ", ".join(sorted(catalogs)) or "none"
        raise ConfigError(f"Catalog '{name}' not found (available: {available})")
    return catalogs[name]


def validate_catalog(catalog: CatalogConfig):
    """
    Makes sure both roots exist and are writable before any file is touched.
    Absent roots are created.
    """
    for label, root in (("data_path", catalog.data_path), ("thumbnail_path", catalog.thumbnail_path)):
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create {label} {root}: {e}") from e
        if not root.is_dir():
            raise ConfigError(f"{label} is not a directory: {root}")
        if not os.access(root, os.W_OK | os.X_OK):
            raise ConfigError(f"{label} is not writable: {root}")

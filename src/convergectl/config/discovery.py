"""Config discovery.

Walk-up finder locates ``converge.toml`` or a ``converge/`` directory,
similar to how git finds ``.git/``. Supports the ``CONVERGECTL_CONFIG`` env
var and the ``--config`` CLI flag.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "converge.toml"
CONFIG_DIRNAME = "converge"
META_FILENAME = "meta.toml"
INVENTORY_FILENAME = "inventory.ini"
CONFIG_ENV_VAR = "CONVERGECTL_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for a config.

    A file wins over a directory at the same level. Returns None if
    nothing was found. ``CONVERGECTL_CONFIG`` is checked first.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path).expanduser()
        return p.resolve() if p.exists() else None

    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        directory = current / CONFIG_DIRNAME
        if directory.is_dir():
            return directory
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def meta_path(config_path: Path) -> Path | None:
    """The file carrying meta settings for *config_path*."""
    if config_path.is_dir():
        candidate = config_path / META_FILENAME
        return candidate if candidate.is_file() else None
    return config_path


def inventory_path(config_path: Path) -> Path:
    base = config_path if config_path.is_dir() else config_path.parent
    return base / INVENTORY_FILENAME

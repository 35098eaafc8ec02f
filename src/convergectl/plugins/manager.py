"""Plugin discovery and loading.

Discovery: entry_points (pip-installed) in the ``convergectl.plugins``
group via pluggy, plus single-file plugins from ``<config dir>/plugins/``.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

import pluggy

from convergectl.plugins.hookspecs import ConvergectlHookSpec

PROJECT_NAME = "convergectl"
ENTRY_POINT_GROUP = "convergectl.plugins"
LOCAL_MODULE_PREFIX = "convergectl_local_plugin_"

logger = logging.getLogger(__name__)


class PluginManager:
    """Manages plugin discovery, loading, and hook dispatch."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(ConvergectlHookSpec)
        self._loaded: bool = False

    def discover_and_load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then single-file plugins in *local_dir*.

        Returns the names of all registered plugins.
        """
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._instantiate_classes()
        if local_dir is not None:
            self._discover_local(local_dir)
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    def call(self, hook_name: str, **payload: Any) -> list[Any]:
        """Invoke every implementation of *hook_name* with *payload*."""
        hook = getattr(self._pm.hook, hook_name)
        return list(hook(**payload))

    # ------------------------------------------------------------------
    # Local directory discovery
    # ------------------------------------------------------------------

    def _discover_local(self, local_dir: Path) -> None:
        """Register hook classes from each ``*.py`` in *local_dir*.

        ``_``-prefixed files are helpers and are not loaded. A file that
        fails to import, or a class that fails to instantiate, is logged
        and skipped.
        """
        if not local_dir.is_dir():
            return
        for py_file in sorted(local_dir.glob("*.py")):
            if py_file.name.startswith("_"):
                continue
            module = _import_file(py_file)
            if module is None:
                continue
            for cls in _hook_classes(module):
                name = f"{module.__name__}.{cls.__name__}"
                try:
                    self.register_plugin(cls(), name=name)
                except Exception:
                    logger.warning("Failed to instantiate plugin %s", name, exc_info=True)

    def _instantiate_classes(self) -> None:
        """Entry points may register a class; hooks need bound instances."""
        for plugin in list(self._pm.get_plugins()):
            if not (inspect.isclass(plugin) and _has_hook_impls(plugin)):
                continue
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                self._pm.register(plugin(), name=name)
            except Exception:
                logger.warning("Failed to instantiate entry-point plugin %s", name, exc_info=True)


def _import_file(py_file: Path) -> ModuleType | None:
    """Import *py_file* as ``convergectl_local_plugin_<stem>``; None on failure."""
    module_name = f"{LOCAL_MODULE_PREFIX}{py_file.stem}"
    spec = importlib.util.spec_from_file_location(module_name, py_file)
    if spec is None or spec.loader is None:
        logger.warning("Could not create module spec for %s", py_file)
        return None
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        logger.warning("Failed to load local plugin %s", py_file, exc_info=True)
        sys.modules.pop(module_name, None)
        return None
    return module


def _hook_classes(module: ModuleType) -> list[type]:
    """Classes defined in *module* (not imported into it) that implement hooks."""
    return [
        obj
        for _name, obj in inspect.getmembers(module, inspect.isclass)
        if obj.__module__ == module.__name__ and _has_hook_impls(obj)
    ]


def _has_hook_impls(cls: type) -> bool:
    """Whether *cls* has a public method marked with ``@hookimpl``."""
    return any(
        callable(getattr(cls, name, None))
        and getattr(getattr(cls, name), f"{PROJECT_NAME}_impl", None)
        for name in dir(cls)
        if not name.startswith("_")
    )

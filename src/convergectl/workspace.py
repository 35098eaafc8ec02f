"""Workspace — the single dependency injected into every service.

It owns the loaded declaration, the per-machine cache database, the plugin
manager and the collaborators that touch the outside world (shell,
transport, HTTP fetcher, confirmation prompt). Everything is created
lazily, so ``--help`` and ``--examples`` never read config or open the
database.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from convergectl.config.loader import Declaration, load_declaration
from convergectl.errors import ConfigError
from convergectl.infrastructure.cache_store import ArtifactHashStore, BlobCache, CacheStore
from convergectl.infrastructure.database.engine import init_cache_database
from convergectl.infrastructure.http import Fetcher
from convergectl.infrastructure.shell import Shell, ShellRunner
from convergectl.infrastructure.templates import TemplateRenderer
from convergectl.infrastructure.transport import SshTransport, Transport
from convergectl.plugins.manager import PluginManager

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from convergectl.config.settings import CvgSettings

logger = logging.getLogger(__name__)

PLUGINS_DIRNAME = "plugins"


class Workspace:
    """Lazily-built collaborators for one CLI invocation."""

    def __init__(
        self,
        settings: CvgSettings,
        *,
        shell: Shell | None = None,
        transport: Transport | None = None,
        fetcher: Fetcher | None = None,
        prompt: Callable[[str], bool] | None = None,
        clock: Callable[[], float] = time.time,
        load_plugins: bool = True,
    ) -> None:
        self.settings = settings
        self.shell: Shell = shell or ShellRunner()
        self.transport: Transport = transport or SshTransport(settings.remote.ssh_options)
        self.fetcher = fetcher or Fetcher()
        self.renderer = TemplateRenderer()
        self.clock = clock
        self._prompt = prompt
        self._load_plugins = load_plugins
        self._declaration: Declaration | None = None
        self._engine: Engine | None = None
        self._plugins: PluginManager | None = None

    # --- declaration ---

    @property
    def config_path(self) -> Path:
        if self.settings.config_path is None:
            msg = "No converge.toml or converge/ directory found (use -c/--config)"
            raise ConfigError(msg)
        return self.settings.config_path

    @property
    def declaration(self) -> Declaration:
        if self._declaration is None:
            self._declaration = load_declaration(self.config_path)
        return self._declaration

    # --- persistence ---

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = init_cache_database(self.settings.cache_dir)
        return self._engine

    @property
    def cache_store(self) -> CacheStore:
        return CacheStore(self.engine)

    @property
    def blob_cache(self) -> BlobCache:
        return BlobCache(self.engine, clock=self.clock)

    @property
    def artifact_hashes(self) -> ArtifactHashStore:
        return ArtifactHashStore(self.engine)

    # --- plugins ---

    @property
    def plugins(self) -> PluginManager | None:
        if not self._load_plugins:
            return None
        if self._plugins is None:
            self._plugins = PluginManager()
            local_dir = None
            if self.settings.config_path is not None:
                local_dir = self.settings.base_dir / PLUGINS_DIRNAME
            names = self._plugins.discover_and_load(local_dir=local_dir)
            if names:
                logger.debug("Plugins loaded: %s", ", ".join(names))
        return self._plugins

    # --- interaction ---

    def confirm(self, prompt: str) -> bool:
        """Ask once. ``--yes`` accepts and ``--no-interact`` declines without asking."""
        if self.settings.assume_yes:
            return True
        if self.settings.no_interact or self._prompt is None:
            return False
        return self._prompt(prompt)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

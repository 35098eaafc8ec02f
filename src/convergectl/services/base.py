"""BaseService — foundation for all convergectl services.

Every service receives a :class:`~convergectl.workspace.Workspace` at
construction time. The workspace owns the loaded declaration, the cache
database, the plugin manager and the execution collaborators.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from convergectl.workspace import Workspace

logger = logging.getLogger(__name__)


class BaseService:
    """Base for all service-layer classes."""

    def __init__(self, workspace: Workspace) -> None:
        self._ws = workspace

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Call a plugin hook. No-op when plugins are disabled.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        plugins = self._ws.plugins
        if plugins is None:
            return
        try:
            plugins.call(hook_name, **payload)
        except Exception:
            logger.warning("Plugin hook %s failed", hook_name, exc_info=True)
            warnings.append(f"Plugin hook {hook_name} failed")

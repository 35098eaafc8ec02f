"""Extension layer — plugin system via pluggy.

INVARIANT: Plugin failures are warnings, never errors.
"""

from convergectl.plugins.hookspecs import hookimpl
from convergectl.plugins.manager import PluginManager

__all__ = ["PluginManager", "hookimpl"]

"""Exception hierarchy shared by every layer.

Fatal errors (configuration, artifact builds, dispatch constraints) abort a
run before reconciliation starts. Item and host failures are never raised
past their own boundary; they are recorded as outcome data instead.
"""

from __future__ import annotations


class ConvergeError(Exception):
    """Base class for all convergectl errors."""

    code = "CONVERGE_ERROR"


class ConfigError(ConvergeError):
    """Malformed declaration, unresolved selector, or cyclic probe graph."""

    code = "CONFIG_ERROR"


class ArtifactBuildError(ConvergeError):
    """An artifact could not be built. Fatal to the whole run."""

    code = "ARTIFACT_BUILD_FAILED"


class DispatchError(ConvergeError):
    """A dispatch constraint was violated before any host was contacted."""

    code = "DISPATCH_REJECTED"


class HostUnreachableError(ConvergeError):
    """The transport could not open a channel to a remote host."""

    code = "HOST_UNREACHABLE"

    def __init__(self, host: str, message: str) -> None:
        super().__init__(f"{host}: {message}")
        self.host = host

"""Host targets and inventory matching."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel

from convergectl.errors import ConfigError


class LocalTarget(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["local"] = "local"

    @property
    def addresses(self) -> tuple[str, ...]:
        return ()


class SingleRemote(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["single"] = "single"
    address: str

    @property
    def addresses(self) -> tuple[str, ...]:
        return (self.address,)


class MultiRemote(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["multi"] = "multi"
    pattern: str
    hosts: tuple[str, ...]

    @property
    def addresses(self) -> tuple[str, ...]:
        return self.hosts


HostTarget = LocalTarget | SingleRemote | MultiRemote


def parse_inventory(text: str) -> list[str]:
    """Host names from ``inventory.ini`` content, in file order.

    ``[group]`` headers, ``;``/``#`` comments and blank lines are ignored.
    Anything after the first whitespace on a host line (ansible-style
    variables) is dropped.

    Examples:
        >>> parse_inventory("[web]\\nweb1 ansible_user=x\\n; old\\nweb2\\n")
        ['web1', 'web2']
    """
    hosts: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith((";", "#", "[")):
            continue
        host = line.split()[0]
        if host not in hosts:
            hosts.append(host)
    return hosts


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Anchored regex for a host glob; only ``*`` is special."""
    parts = [re.escape(p) for p in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$")


def match_hosts(pattern: str, inventory: list[str]) -> list[str]:
    """Inventory hosts matching *pattern*.

    Raises:
        ConfigError: If nothing matches.
    """
    regex = glob_to_regex(pattern)
    matched = [h for h in inventory if regex.match(h)]
    if not matched:
        msg = f"No hosts in inventory match {pattern!r}"
        raise ConfigError(msg)
    return matched


def resolve_target(
    *,
    target: str | None,
    remotes: str | None,
    inventory: list[str],
) -> HostTarget:
    """Turn ``-t`` / ``-r`` flags into a host target."""
    if target and remotes:
        msg = "Use either --target or --remotes, not both"
        raise ConfigError(msg)
    if target:
        return SingleRemote(address=target)
    if remotes:
        return MultiRemote(pattern=remotes, hosts=tuple(match_hosts(remotes, inventory)))
    return LocalTarget()

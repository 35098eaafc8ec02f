"""Providers — the check/apply implementation behind each item kind.

:func:`provider_for` matches exhaustively over the closed item union.
"""

from __future__ import annotations

from typing import Any

from convergectl.domain.items import (
    AliasItem,
    AssertItem,
    CommandItem,
    CopyItem,
    EnsureLineItem,
    EnvItem,
    FetchItem,
    Item,
    LineItem,
    PackageItem,
    RunItem,
    ScriptItem,
    ServiceItem,
    SymlinkItem,
    TemplateItem,
)
from convergectl.providers.assertion import AssertProvider
from convergectl.providers.command import CommandProvider
from convergectl.providers.context import Provider, RunContext
from convergectl.providers.files import (
    CopyProvider,
    EnsureLineProvider,
    FetchProvider,
    LineProvider,
    SymlinkProvider,
    TemplateProvider,
)
from convergectl.providers.package import PackageProvider
from convergectl.providers.run import RunProvider
from convergectl.providers.script import ScriptProvider
from convergectl.providers.service import ServiceProvider
from convergectl.providers.shellrc import AliasProvider, EnvProvider

__all__ = ["Provider", "RunContext", "provider_for"]


def provider_for(item: Item) -> Provider[Any]:
    match item:
        case PackageItem():
            return PackageProvider()
        case ServiceItem():
            return ServiceProvider()
        case CopyItem():
            return CopyProvider()
        case SymlinkItem():
            return SymlinkProvider()
        case FetchItem():
            return FetchProvider()
        case EnsureLineItem():
            return EnsureLineProvider()
        case LineItem():
            return LineProvider()
        case TemplateItem():
            return TemplateProvider()
        case AliasItem():
            return AliasProvider()
        case EnvItem():
            return EnvProvider()
        case ScriptItem():
            return ScriptProvider()
        case CommandItem():
            return CommandProvider()
        case AssertItem():
            return AssertProvider()
        case RunItem():
            return RunProvider()
    msg = f"No provider for {type(item).__name__}"
    raise TypeError(msg)

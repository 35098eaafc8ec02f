"""Probe dependency graph on NetworkX.

Edges point from a dependency to its dependent, so topological
generations are ready-sets: every probe in a generation depends only on
probes from earlier generations.
"""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx

from convergectl.domain.probes import Probe
from convergectl.errors import ConfigError


def build_probe_graph(probes: Iterable[Probe]) -> nx.DiGraph:
    """Build and validate the dependency DAG.

    Raises:
        ConfigError: On a duplicate probe name, an unknown dependency, or a
            cycle. Raised before anything is evaluated.
    """
    g: nx.DiGraph = nx.DiGraph()
    listed = list(probes)
    for probe in listed:
        if probe.name in g:
            msg = f"Duplicate probe {probe.name!r}"
            raise ConfigError(msg)
        g.add_node(probe.name, probe=probe)
    for probe in listed:
        for dep in probe.deps:
            if dep not in g:
                msg = f"Probe {probe.name!r} depends on unknown probe {dep!r}"
                raise ConfigError(msg)
            g.add_edge(dep, probe.name)
    if not nx.is_directed_acyclic_graph(g):
        cycle = " -> ".join(u for u, _v in nx.find_cycle(g))
        msg = f"Cyclic probe dependency: {cycle}"
        raise ConfigError(msg)
    return g


def restrict(g: nx.DiGraph, names: Iterable[str]) -> nx.DiGraph:
    """Subgraph of *names* plus all of their transitive dependencies.

    Raises:
        ConfigError: If a name is not a declared probe.
    """
    keep: set[str] = set()
    for name in names:
        if name not in g:
            msg = f"Unknown probe {name!r}"
            raise ConfigError(msg)
        keep.add(name)
        keep |= nx.ancestors(g, name)
    sub: nx.DiGraph = nx.DiGraph()
    sub.add_nodes_from((n, data) for n, data in g.nodes(data=True) if n in keep)
    sub.add_edges_from((u, v) for u, v in g.edges if u in keep and v in keep)
    return sub


def generations(g: nx.DiGraph) -> list[list[str]]:
    """Ready-sets in dependency order, declaration order within each."""
    order = {name: i for i, name in enumerate(g.nodes)}
    return [sorted(gen, key=order.__getitem__) for gen in nx.topological_generations(g)]

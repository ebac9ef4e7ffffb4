# dag.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set, Tuple

from .errors import ConfigurationError
from .model import Step


@dataclass(frozen=True)
class Graph:
    """
    Dependency graph over steps, keyed by step name.

      - steps:  name -> Step, in declaration order
      - adj:    producer -> consumers (producer must finish before consumer)
      - indeg:  number of distinct producers per step
    """
    steps: Dict[str, Step]
    adj: Dict[str, Set[str]]
    indeg: Dict[str, int]

    def edges(self) -> Set[Tuple[str, str]]:
        return {(p, c) for p, consumers in self.adj.items() for c in consumers}

    def producers(self, name: str) -> Set[str]:
        return {p for p, consumers in self.adj.items() if name in consumers}

    def descendants(self, name: str) -> Set[str]:
        """Every step transitively consuming something from `name`."""
        seen: Set[str] = set()
        q = deque(self.adj.get(name, ()))
        while q:
            node = q.popleft()
            if node in seen:
                continue
            seen.add(node)
            q.extend(self.adj.get(node, ()))
        return seen


def build_graph(steps: Iterable[Step]) -> Graph:
    """
    Build a DAG from steps by linking each input artifact to its producer.

    Raises ConfigurationError for:
      - duplicate step names
      - two steps producing the same artifact
      - an input nobody produces
      - a cycle
    """
    steps = list(steps)

    by_name: Dict[str, Step] = {}
    for s in steps:
        if s.name in by_name:
            raise ConfigurationError(f"Duplicate step name: {s.name}")
        by_name[s.name] = s

    producer_of: Dict[str, str] = {}
    for s in steps:
        for artifact in sorted(s.outputs()):
            if artifact in producer_of:
                raise ConfigurationError(
                    f"Artifact '{artifact}' is produced by more than one step",
                    producers=f"{producer_of[artifact]}, {s.name}",
                )
            producer_of[artifact] = s.name

    adj: Dict[str, Set[str]] = {name: set() for name in by_name}
    indeg: Dict[str, int] = {name: 0 for name in by_name}

    for s in steps:
        for artifact in sorted(s.inputs()):
            producer = producer_of.get(artifact)
            if producer is None:
                raise ConfigurationError(
                    f"Step '{s.name}' requires '{artifact}' but no step produces it",
                    known_artifacts=sorted(producer_of),
                )
            # Edge producer -> consumer (several shared artifacts are one edge)
            if s.name not in adj[producer]:
                adj[producer].add(s.name)
                indeg[s.name] += 1

    graph = Graph(steps=by_name, adj=adj, indeg=indeg)
    topo_order(graph)
    return graph


def topo_order(graph: Graph) -> List[str]:
    """
    Return step names in a valid execution order.
    Raises ConfigurationError if the graph has a cycle.
    """
    indeg = dict(graph.indeg)  # copy (we mutate it)
    q = deque(sorted(n for n, d in indeg.items() if d == 0))
    order: List[str] = []

    while q:
        node = q.popleft()
        order.append(node)
        for child in sorted(graph.adj.get(node, set())):
            indeg[child] -= 1
            if indeg[child] == 0:
                q.append(child)

    if len(order) != len(indeg):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise ConfigurationError("Step graph has a cycle", stuck_steps=", ".join(remaining))

    return order

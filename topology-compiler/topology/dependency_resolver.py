"""
Dependency Resolver

Orders service activation so that every service starts after the services
it discovers by name. Depth-first topological sort over the declared
dependency edges, visiting nodes in declaration order.
"""

import logging
from enum import Enum
from typing import Dict, List

from .errors import CyclicDependency, UnknownDependency
from .models import DependencyGraph, ServiceNode

logger = logging.getLogger(__name__)


class _Mark(Enum):
    IN_PROGRESS = "in_progress"
    DONE = "done"


def _check_dependencies(graph: DependencyGraph) -> Dict[str, ServiceNode]:
    by_name = {node.name: node for node in graph.nodes}
    for node in graph.nodes:
        for dep in node.depends_on:
            if dep not in by_name:
                raise UnknownDependency(node.name, dep)
    return by_name


def resolve_order(graph: DependencyGraph) -> List[ServiceNode]:
    """
    Return the nodes of ``graph`` with every dependency before its dependents.

    Raises CyclicDependency with the cycle's nodes when no such order exists,
    and UnknownDependency when a node depends on a service outside the graph.
    """
    by_name = _check_dependencies(graph)
    marks: Dict[str, _Mark] = {}
    path: List[ServiceNode] = []
    order: List[ServiceNode] = []

    # Explicit stack of (node, remaining dependencies); chains may exceed the recursion limit.
    for root in graph.nodes:
        if root.name in marks:
            continue
        marks[root.name] = _Mark.IN_PROGRESS
        path.append(root)
        stack = [(root, iter(root.depends_on))]

        while stack:
            node, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                path.pop()
                marks[node.name] = _Mark.DONE
                order.append(node)
                continue

            mark = marks.get(dep)
            if mark is _Mark.DONE:
                continue
            if mark is _Mark.IN_PROGRESS:
                start = next(i for i, n in enumerate(path) if n.name == dep)
                raise CyclicDependency(path[start:])

            child = by_name[dep]
            marks[dep] = _Mark.IN_PROGRESS
            path.append(child)
            stack.append((child, iter(child.depends_on)))

    logger.debug("Resolved launch order: %s", [n.name for n in order])
    return order


def resolve_stages(graph: DependencyGraph) -> List[List[ServiceNode]]:
    """
    Group nodes into activation waves.

    A node's stage is one past the highest stage among its dependencies, so
    all nodes in a wave may start together once earlier waves are active.
    """
    stage_of: Dict[str, int] = {}
    for node in resolve_order(graph):
        stage_of[node.name] = max((stage_of[dep] + 1 for dep in node.depends_on), default=0)

    stages: List[List[ServiceNode]] = [[] for _ in range(max(stage_of.values(), default=-1) + 1)]
    for node in graph.nodes:
        stages[stage_of[node.name]].append(node)
    return stages

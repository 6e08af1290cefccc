"""Topology compiler: subnet partitioning, access rules and service launch ordering."""

from .access_graph import access_graph, build_rules
from .assembler import assemble
from .config import TopologyConfig, default_config, load_config
from .dependency_resolver import resolve_order, resolve_stages
from .errors import (
    CapacityExceeded,
    CyclicDependency,
    InconsistentTopology,
    TopologyError,
    UnknownDependency,
    UnknownTier,
)
from .models import AccessEdge, AddressBlock, DependencyGraph, DeploymentPlan, ServiceNode, Tier
from .partitioner import allocate_zones, partition

__all__ = [
    "AccessEdge",
    "AddressBlock",
    "CapacityExceeded",
    "CyclicDependency",
    "DependencyGraph",
    "DeploymentPlan",
    "InconsistentTopology",
    "ServiceNode",
    "Tier",
    "TopologyConfig",
    "TopologyError",
    "UnknownDependency",
    "UnknownTier",
    "access_graph",
    "allocate_zones",
    "assemble",
    "build_rules",
    "default_config",
    "load_config",
    "partition",
    "resolve_order",
    "resolve_stages",
]

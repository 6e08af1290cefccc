"""
Topology Assembler

Composes partitioning, access rules and launch ordering into a single
DeploymentPlan and cross-checks the pieces against each other. The plan is
only computed here; provisioning belongs to the external engine.
"""

import logging
import time
from typing import Dict, List, Set, Tuple

from metrics import METRICS

from .access_graph import build_rules, implied_edges
from .config import TopologyConfig
from .dependency_resolver import resolve_order, resolve_stages
from .errors import InconsistentTopology, TopologyError, UnknownTier
from .models import (
    AccessEdge,
    AddressBlock,
    DependencyGraph,
    DeploymentPlan,
    ExternalEgress,
    PublicEntrypoint,
    ServiceLaunch,
    ServiceNode,
    Subnet,
    Tier,
    TierAssignment,
)
from .partitioner import allocate_zones, partition

logger = logging.getLogger(__name__)


def build_tiers(config: TopologyConfig) -> List[Tier]:
    return [
        Tier(
            name=t.name,
            port=t.port,
            protocol=t.protocol,
            external=t.external,
            calls=tuple(t.calls),
            egress=tuple(ExternalEgress(e.cidr, e.port, e.protocol) for e in t.egress),
            app_protocol=t.app_protocol,
            zones=tuple(t.zones),
        )
        for t in config.tiers
    ]


def build_edges(config: TopologyConfig, tiers: List[Tier]) -> List[AccessEdge]:
    """Explicit edges, defaulted to the destination's port, plus edges implied by tier calls."""
    by_name = {tier.name: tier for tier in tiers}
    edges = []
    for e in config.edges:
        target = by_name.get(e.destination)
        if target is None:
            raise UnknownTier(e.destination, referenced_by=f"edge {e.source} -> {e.destination}")
        edges.append(AccessEdge(
            source=e.source,
            destination=e.destination,
            port=e.port if e.port is not None else target.port,
            protocol=e.protocol or target.protocol,
        ))
    edges.extend(implied_edges(tiers))
    # Same flow declared twice collapses; keep first-seen order.
    return list(dict.fromkeys(edges))


def build_graph(config: TopologyConfig) -> DependencyGraph:
    return DependencyGraph(tuple(
        ServiceNode(
            name=s.name,
            tier=s.tier,
            discovery_alias=s.discovery_alias or s.name,
            replicas=s.replicas,
            depends_on=tuple(s.depends_on),
            cluster=s.cluster,
            port=s.port,
        )
        for s in config.services
    ))


def _assign_tiers(config: TopologyConfig, tiers: List[Tier], subnets: List[Subnet]) -> Dict[str, Tuple[str, ...]]:
    by_zone = {subnet.zone: subnet.name for subnet in subnets}
    assignments = {}
    for tier in tiers:
        zones = tier.zones or tuple(config.zones)
        unknown = [zone for zone in zones if zone not in by_zone]
        if unknown:
            raise InconsistentTopology(f"Tier {tier.name} is restricted to undeclared zones: {unknown}")
        assignments[tier.name] = tuple(by_zone[zone] for zone in zones)
    return assignments


def _check_services(graph: DependencyGraph, assignments: Dict[str, Tuple[str, ...]]):
    aliases: Dict[str, str] = {}
    for node in graph.nodes:
        if node.tier not in assignments:
            raise InconsistentTopology(f"Service {node.name} belongs to undeclared tier {node.tier}")
        if not assignments[node.tier]:
            raise InconsistentTopology(f"Tier {node.tier} of service {node.name} has no subnet assignment")
        owner = aliases.setdefault(node.discovery_alias, node.name)
        if owner != node.name:
            raise InconsistentTopology(
                f"Discovery alias {node.discovery_alias} used by both {owner} and {node.name}"
            )


def _check_edges(edges: List[AccessEdge], tiers: List[Tier], graph: DependencyGraph):
    by_name = {tier.name: tier for tier in tiers}
    served: Set[str] = {node.tier for node in graph.nodes}
    for edge in edges:
        for endpoint in (edge.source, edge.destination):
            if endpoint not in served:
                raise InconsistentTopology(f"Edge {edge} references tier {endpoint} with no declared service")
        target = by_name[edge.destination]
        if (edge.port, edge.protocol) != (target.port, target.protocol):
            raise InconsistentTopology(
                f"Edge {edge} does not match {target.name} exposed port {target.protocol}/{target.port}"
            )


def _check_entrypoints(tiers: List[Tier], graph: DependencyGraph):
    served: Set[str] = {node.tier for node in graph.nodes}
    for tier in tiers:
        if tier.external and tier.name not in served:
            raise InconsistentTopology(f"External tier {tier.name} has no declared service")


def _check_reachability(graph: DependencyGraph, edges: List[AccessEdge]):
    flows = {(edge.source, edge.destination) for edge in edges}
    for node in graph.nodes:
        for dep_name in node.depends_on:
            dep = graph.get(dep_name)
            if dep.tier != node.tier and (node.tier, dep.tier) not in flows:
                raise InconsistentTopology(
                    f"Service {node.name} depends on {dep.name} but tier {node.tier} "
                    f"has no access edge to tier {dep.tier}"
                )


def compile_plan(config: TopologyConfig) -> DeploymentPlan:
    """Compile ``config`` without recording metrics or logging; used to reload stored plans."""
    prefix = config.naming_prefix
    namespace = f"{prefix}.local"

    block = AddressBlock.from_cidr(config.cidr)
    blocks = partition(block, config.subnet_host_bits, config.subnet_count)
    subnets = allocate_zones(blocks, config.zones, prefix)

    tiers = build_tiers(config)
    edges = build_edges(config, tiers)
    rules = build_rules(tiers, edges)

    graph = build_graph(config)
    order = resolve_order(graph)
    stage_of = {
        node.name: stage
        for stage, nodes in enumerate(resolve_stages(graph))
        for node in nodes
    }

    assignments = _assign_tiers(config, tiers, subnets)
    _check_services(graph, assignments)
    _check_edges(edges, tiers, graph)
    _check_entrypoints(tiers, graph)
    _check_reachability(graph, edges)

    tier_by_name = {tier.name: tier for tier in tiers}
    services = tuple(
        ServiceLaunch(
            position=position,
            stage=stage_of[node.name],
            name=node.name,
            tier=node.tier,
            discovery_alias=node.discovery_alias,
            fqdn=f"{node.discovery_alias}.{namespace}",
            port=node.port or tier_by_name[node.tier].port,
            replicas=node.replicas,
            depends_on=node.depends_on,
            cluster=f"{prefix}-{node.cluster}-cluster" if node.cluster else f"{prefix}-cluster",
        )
        for position, node in enumerate(order)
    )

    return DeploymentPlan(
        naming_prefix=prefix,
        vpc_cidr=block.cidr,
        region=config.region,
        launch_type=config.launch_type,
        namespace=namespace,
        subnets=tuple(subnets),
        tiers=tuple(
            TierAssignment(tier.name, f"{prefix}-{tier.name}-sg", assignments[tier.name])
            for tier in tiers
        ),
        rules=rules,
        services=services,
        entrypoints=tuple(
            PublicEntrypoint(tier.name, tier.port, tier.app_protocol or tier.protocol, assignments[tier.name])
            for tier in tiers
            if tier.external
        ),
    )


def assemble(config: TopologyConfig) -> DeploymentPlan:
    """
    Compile ``config`` into a DeploymentPlan.

    The first inconsistency detected by any component aborts compilation;
    nothing is auto-corrected.
    """
    start_time = time.time()
    try:
        plan = compile_plan(config)
    except TopologyError as e:
        METRICS["compile_failures"].labels(error=e.kind).inc()
        logger.error("Compilation of %s failed: %s", config.naming_prefix, e)
        raise

    duration_ms = (time.time() - start_time) * 1000
    METRICS["compile_latency"].observe(duration_ms)
    METRICS["plans_compiled"].inc()
    METRICS["subnets_allocated"].set(len(plan.subnets))
    METRICS["firewall_rules"].set(len(plan.rules))
    METRICS["services"].set(len(plan.services))

    logger.info(
        "Compiled plan %s: %d subnets, %d rules, launch order %s (%.1f ms)",
        config.naming_prefix,
        len(plan.subnets),
        len(plan.rules),
        " -> ".join(plan.launch_order),
        duration_ms,
    )
    return plan

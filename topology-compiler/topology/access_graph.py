"""
Access Graph Builder

Translates declared tier-to-tier flows into security group rules.

Every AccessEdge yields exactly one ingress rule on the destination and one
egress rule on the source, scoped to the edge's port and protocol. CIDR
rules appear only for externally reachable tiers (ingress on their own port)
and for egress a tier declares explicitly. Nothing is implied.
"""

import logging
from typing import Dict, Iterable, List, Set, Tuple

from .errors import InvalidAccessEdge, UnknownTier
from .models import ANY_IPV4, AccessEdge, FirewallRule, PeerType, RuleDirection, Tier

logger = logging.getLogger(__name__)


def implied_edges(tiers: Iterable[Tier]) -> List[AccessEdge]:
    """Edges implied by each tier's ``calls`` list, on the callee's port."""
    by_name = {tier.name: tier for tier in tiers}
    edges = []
    for tier in by_name.values():
        for callee in tier.calls:
            target = by_name.get(callee)
            if target is None:
                raise UnknownTier(callee, referenced_by=f"tier {tier.name}")
            edges.append(AccessEdge(tier.name, target.name, target.port, target.protocol))
    return edges


def _check_edges(tiers: Dict[str, Tier], edges: Iterable[AccessEdge]) -> Set[AccessEdge]:
    checked = set()
    for edge in edges:
        for endpoint in (edge.source, edge.destination):
            if endpoint not in tiers:
                raise UnknownTier(endpoint, referenced_by=f"edge {edge}")
        if edge.source == edge.destination:
            raise InvalidAccessEdge(f"Self-referencing edge on tier {edge.source}")
        checked.add(edge)
    return checked


def build_rules(tiers: Iterable[Tier], edges: Iterable[AccessEdge]) -> Tuple[FirewallRule, ...]:
    """
    Build the minimal rule set realizing ``edges``.

    Pure: the same tiers and edges always produce the same ordered tuple.
    Duplicate edges collapse into one rule pair.
    """
    by_name = {tier.name: tier for tier in tiers}
    rules: Set[FirewallRule] = set()

    for edge in _check_edges(by_name, edges):
        rules.add(FirewallRule(
            tier=edge.destination,
            direction=RuleDirection.INGRESS,
            protocol=edge.protocol,
            from_port=edge.port,
            to_port=edge.port,
            peer=edge.source,
            peer_type=PeerType.TIER,
        ))
        rules.add(FirewallRule(
            tier=edge.source,
            direction=RuleDirection.EGRESS,
            protocol=edge.protocol,
            from_port=edge.port,
            to_port=edge.port,
            peer=edge.destination,
            peer_type=PeerType.TIER,
        ))

    for tier in by_name.values():
        if tier.external:
            rules.add(FirewallRule(
                tier=tier.name,
                direction=RuleDirection.INGRESS,
                protocol=tier.protocol,
                from_port=tier.port,
                to_port=tier.port,
                peer=ANY_IPV4,
                peer_type=PeerType.CIDR,
            ))
        for egress in tier.egress:
            rules.add(FirewallRule(
                tier=tier.name,
                direction=RuleDirection.EGRESS,
                protocol=egress.protocol,
                from_port=egress.port,
                to_port=egress.port,
                peer=egress.cidr,
                peer_type=PeerType.CIDR,
            ))

    ordered = tuple(sorted(rules, key=FirewallRule.sort_key))
    logger.debug("Built %d rules for %d tiers", len(ordered), len(by_name))
    return ordered


def access_graph(tiers: Iterable[Tier], edges: Iterable[AccessEdge]) -> Dict[str, List[Tuple[str, int, str]]]:
    """Adjacency of the access graph: tier -> sorted (destination, port, protocol)."""
    by_name = {tier.name: tier for tier in tiers}
    graph: Dict[str, List[Tuple[str, int, str]]] = {name: [] for name in sorted(by_name)}
    for edge in _check_edges(by_name, edges):
        graph[edge.source].append((edge.destination, edge.port, edge.protocol))
    for targets in graph.values():
        targets.sort()
    return graph

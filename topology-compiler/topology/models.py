"""
Topology data model.

Immutable value types shared by the partitioner, the access graph builder,
the dependency resolver and the assembler.
"""

import hashlib
import ipaddress
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import DuplicateServiceNode, InvalidAddressBlock

ANY_IPV4 = "0.0.0.0/0"


class RuleDirection(Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class PeerType(Enum):
    TIER = "tier"
    CIDR = "cidr"


@dataclass(frozen=True)
class AddressBlock:
    """An IPv4 CIDR block."""

    base: str
    prefix_length: int

    def __post_init__(self):
        if not 0 <= self.prefix_length <= 32:
            raise InvalidAddressBlock(f"Prefix length out of range: /{self.prefix_length}")
        try:
            ipaddress.IPv4Network(f"{self.base}/{self.prefix_length}")
        except ValueError as e:
            raise InvalidAddressBlock(f"Invalid address block {self.base}/{self.prefix_length}: {e}")

    @classmethod
    def from_cidr(cls, cidr: str) -> "AddressBlock":
        if "/" not in cidr:
            raise InvalidAddressBlock(f"Missing prefix length: {cidr}")
        base, _, prefix = cidr.partition("/")
        if not prefix.isdigit():
            raise InvalidAddressBlock(f"Invalid prefix length: {cidr}")
        return cls(base=base, prefix_length=int(prefix))

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(f"{self.base}/{self.prefix_length}")

    @property
    def cidr(self) -> str:
        return f"{self.base}/{self.prefix_length}"

    @property
    def num_addresses(self) -> int:
        return 2 ** (32 - self.prefix_length)

    def overlaps(self, other: "AddressBlock") -> bool:
        return self.network.overlaps(other.network)

    def __str__(self):
        return self.cidr


@dataclass(frozen=True)
class Subnet:
    """A partition block allocated to a zone."""

    name: str
    zone: str
    block: AddressBlock
    index: int

    @property
    def cidr(self) -> str:
        return self.block.cidr

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "zone": self.zone, "cidr": self.cidr, "index": self.index}


@dataclass(frozen=True)
class ExternalEgress:
    """Explicitly declared egress from a tier to an address range."""

    cidr: str
    port: int
    protocol: str = "tcp"


@dataclass(frozen=True)
class Tier:
    """A logical service group such as ui, app-server, db or cache."""

    name: str
    port: int
    protocol: str = "tcp"
    external: bool = False
    calls: Tuple[str, ...] = ()
    egress: Tuple[ExternalEgress, ...] = ()
    app_protocol: Optional[str] = None
    zones: Tuple[str, ...] = ()


@dataclass(frozen=True, order=True)
class AccessEdge:
    """Permitted flow from ``source`` to ``destination`` on one port/protocol."""

    source: str
    destination: str
    port: int
    protocol: str = "tcp"

    def __str__(self):
        return f"{self.source} -> {self.destination} ({self.protocol}/{self.port})"


@dataclass(frozen=True)
class FirewallRule:
    """A single ingress or egress permission attached to a tier's security group."""

    tier: str
    direction: RuleDirection
    protocol: str
    from_port: int
    to_port: int
    peer: str
    peer_type: PeerType

    def sort_key(self) -> Tuple:
        return (self.tier, self.direction.value, self.from_port, self.protocol, self.peer_type.value, self.peer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier,
            "direction": self.direction.value,
            "protocol": self.protocol,
            "from_port": self.from_port,
            "to_port": self.to_port,
            "peer": self.peer,
            "peer_type": self.peer_type.value,
        }


@dataclass(frozen=True)
class ServiceNode:
    """A deployable tier instance registered under a discovery alias."""

    name: str
    tier: str
    discovery_alias: str
    replicas: int = 1
    depends_on: Tuple[str, ...] = ()
    cluster: Optional[str] = None
    port: Optional[int] = None


@dataclass(frozen=True)
class DependencyGraph:
    """Service nodes plus the dependency edges they declare."""

    nodes: Tuple[ServiceNode, ...]

    def __post_init__(self):
        seen = set()
        for node in self.nodes:
            if node.name in seen:
                raise DuplicateServiceNode(f"Service declared twice: {node.name}")
            seen.add(node.name)

    @property
    def edges(self) -> List[Tuple[str, str]]:
        """(dependent, dependency) pairs in declaration order."""
        return [(node.name, dep) for node in self.nodes for dep in node.depends_on]

    def get(self, name: str) -> Optional[ServiceNode]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None


@dataclass(frozen=True)
class TierAssignment:
    tier: str
    security_group: str
    subnets: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"tier": self.tier, "security_group": self.security_group, "subnets": list(self.subnets)}


@dataclass(frozen=True)
class ServiceLaunch:
    """One entry of the activation list."""

    position: int
    stage: int
    name: str
    tier: str
    discovery_alias: str
    fqdn: str
    port: int
    replicas: int
    depends_on: Tuple[str, ...]
    cluster: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "stage": self.stage,
            "name": self.name,
            "tier": self.tier,
            "discovery_alias": self.discovery_alias,
            "fqdn": self.fqdn,
            "port": self.port,
            "replicas": self.replicas,
            "depends_on": list(self.depends_on),
            "cluster": self.cluster,
        }


@dataclass(frozen=True)
class PublicEntrypoint:
    """Internet-facing listener in front of an externally reachable tier."""

    tier: str
    port: int
    protocol: str
    subnets: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"tier": self.tier, "port": self.port, "protocol": self.protocol, "subnets": list(self.subnets)}


@dataclass(frozen=True)
class DeploymentPlan:
    """Compiled topology handed read-only to the provisioning engine."""

    naming_prefix: str
    vpc_cidr: str
    region: str
    launch_type: str
    namespace: str
    subnets: Tuple[Subnet, ...]
    tiers: Tuple[TierAssignment, ...]
    rules: Tuple[FirewallRule, ...]
    services: Tuple[ServiceLaunch, ...]
    entrypoints: Tuple[PublicEntrypoint, ...] = field(default_factory=tuple)

    @property
    def launch_order(self) -> List[str]:
        return [service.name for service in self.services]

    def rules_for(self, tier: str) -> List[FirewallRule]:
        return [rule for rule in self.rules if rule.tier == tier]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "naming_prefix": self.naming_prefix,
            "vpc_cidr": self.vpc_cidr,
            "region": self.region,
            "launch_type": self.launch_type,
            "namespace": self.namespace,
            "subnets": [s.to_dict() for s in self.subnets],
            "tiers": [t.to_dict() for t in self.tiers],
            "rules": [r.to_dict() for r in self.rules],
            "services": [s.to_dict() for s in self.services],
            "entrypoints": [e.to_dict() for e in self.entrypoints],
        }

    def fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()

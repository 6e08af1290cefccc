"""
Compiler errors.

Every failure is detected by the component that produces it and propagated
unrecovered. ``kind`` is a stable identifier used for API payloads and
metric labels.
"""

from typing import List, Optional


class TopologyError(Exception):
    """Base class for all topology compilation failures."""

    kind = "topology_error"

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": str(self)}


class InvalidAddressBlock(TopologyError, ValueError):
    kind = "invalid_address_block"


class InvalidPartitionRequest(TopologyError, ValueError):
    kind = "invalid_partition_request"


class CapacityExceeded(TopologyError):
    """Requested subnets do not fit in the address space."""

    kind = "capacity_exceeded"


class UnknownTier(TopologyError):
    kind = "unknown_tier"

    def __init__(self, tier: str, referenced_by: Optional[str] = None):
        self.tier = tier
        self.referenced_by = referenced_by
        message = f"Unknown tier: {tier}"
        if referenced_by:
            message += f" (referenced by {referenced_by})"
        super().__init__(message)


class InvalidAccessEdge(TopologyError):
    kind = "invalid_access_edge"


class UnknownDependency(TopologyError):
    kind = "unknown_dependency"

    def __init__(self, service: str, dependency: str):
        self.service = service
        self.dependency = dependency
        super().__init__(f"Service {service} depends on undeclared service {dependency}")


class DuplicateServiceNode(TopologyError):
    kind = "duplicate_service_node"


class CyclicDependency(TopologyError):
    """No startup order exists. ``cycle`` holds the offending ServiceNodes in order."""

    kind = "cyclic_dependency"

    def __init__(self, cycle: List):
        self.cycle = list(cycle)
        names = [node.name for node in self.cycle]
        path = " -> ".join(names + names[:1])
        super().__init__(f"Cyclic dependency: {path}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["cycle"] = [node.name for node in self.cycle]
        return data


class InconsistentTopology(TopologyError):
    kind = "inconsistent_topology"

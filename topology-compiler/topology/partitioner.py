"""
Address Space Partitioner

Splits a VPC block into equally sized subnets, in the manner of
CloudFormation's Fn::Cidr, and hands the leading subnets to zones.
"""

import ipaddress
import string
from typing import List, Sequence

from .errors import CapacityExceeded, InvalidPartitionRequest
from .models import AddressBlock, Subnet


def partition(block: AddressBlock, subnet_host_bits: int, subnet_count: int) -> List[AddressBlock]:
    """
    Return ``subnet_count`` contiguous subnets of ``2**subnet_host_bits``
    addresses each, in ascending address order starting at the block base.
    """
    if not 0 <= subnet_host_bits <= 32:
        raise InvalidPartitionRequest(f"Subnet host bits must be between 0 and 32, got {subnet_host_bits}")
    if subnet_count < 1 or subnet_count & (subnet_count - 1):
        raise InvalidPartitionRequest(f"Subnet count must be a positive power of two, got {subnet_count}")

    subnet_prefix = 32 - subnet_host_bits
    if subnet_prefix < block.prefix_length:
        raise CapacityExceeded(
            f"/{subnet_prefix} subnets are larger than the {block.cidr} block"
        )

    available = 2 ** (subnet_prefix - block.prefix_length)
    if subnet_count > available:
        raise CapacityExceeded(
            f"{block.cidr} holds {available} /{subnet_prefix} subnets, {subnet_count} requested"
        )

    start = int(block.network.network_address)
    size = 2 ** subnet_host_bits
    return [
        AddressBlock(str(ipaddress.IPv4Address(start + i * size)), subnet_prefix)
        for i in range(subnet_count)
    ]


def _zone_letter(index: int) -> str:
    if index < len(string.ascii_lowercase):
        return string.ascii_lowercase[index]
    return str(index)


def allocate_zones(subnets: Sequence[AddressBlock], zones: Sequence[str], naming_prefix: str) -> List[Subnet]:
    """Assign the i-th subnet to the i-th zone. Remaining subnets stay reserved."""
    if len(zones) > len(subnets):
        raise CapacityExceeded(f"{len(zones)} zones declared but only {len(subnets)} subnets available")

    return [
        Subnet(
            name=f"{naming_prefix}-subnet-{_zone_letter(i)}",
            zone=zone,
            block=subnets[i],
            index=i,
        )
        for i, zone in enumerate(zones)
    ]

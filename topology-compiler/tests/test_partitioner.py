import pytest

from topology.errors import CapacityExceeded, InvalidAddressBlock, InvalidPartitionRequest
from topology.models import AddressBlock
from topology.partitioner import allocate_zones, partition


def test_first_subnets_of_default_vpc():
    subnets = partition(AddressBlock.from_cidr("10.0.0.0/16"), 8, 256)
    assert len(subnets) == 256
    assert subnets[0].cidr == "10.0.0.0/24"
    assert subnets[1].cidr == "10.0.1.0/24"
    assert subnets[-1].cidr == "10.0.255.0/24"


def test_partition_is_deterministic_ascending_and_disjoint():
    block = AddressBlock.from_cidr("172.16.0.0/20")
    first = partition(block, 6, 64)
    second = partition(block, 6, 64)
    assert first == second

    for previous, current in zip(first, first[1:]):
        assert not previous.overlaps(current)
        assert int(current.network.network_address) == int(previous.network.broadcast_address) + 1


def test_partition_may_leave_space_unused():
    subnets = partition(AddressBlock.from_cidr("10.0.0.0/16"), 8, 4)
    assert [s.cidr for s in subnets] == ["10.0.0.0/24", "10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"]


def test_single_subnet_covering_whole_block():
    assert partition(AddressBlock.from_cidr("10.0.0.0/24"), 8, 1) == [AddressBlock("10.0.0.0", 24)]


def test_too_many_subnets():
    with pytest.raises(CapacityExceeded):
        partition(AddressBlock.from_cidr("10.0.0.0/16"), 8, 512)


def test_subnet_larger_than_block():
    with pytest.raises(CapacityExceeded):
        partition(AddressBlock.from_cidr("10.0.0.0/24"), 9, 1)


@pytest.mark.parametrize("host_bits,count", [(8, 3), (8, 0), (-1, 2), (33, 1)])
def test_invalid_partition_requests(host_bits, count):
    with pytest.raises(InvalidPartitionRequest):
        partition(AddressBlock.from_cidr("10.0.0.0/16"), host_bits, count)


@pytest.mark.parametrize("cidr", ["10.0.0.1/16", "10.0.0.0/33", "10.0.0.0", "300.0.0.0/8"])
def test_invalid_address_blocks(cidr):
    with pytest.raises(InvalidAddressBlock):
        AddressBlock.from_cidr(cidr)


def test_allocate_zones_uses_leading_subnets():
    subnets = partition(AddressBlock.from_cidr("10.0.0.0/16"), 8, 256)
    allocated = allocate_zones(subnets, ["us-east-1a", "us-east-1b"], "app")

    assert [(s.name, s.zone, s.cidr, s.index) for s in allocated] == [
        ("app-subnet-a", "us-east-1a", "10.0.0.0/24", 0),
        ("app-subnet-b", "us-east-1b", "10.0.1.0/24", 1),
    ]


def test_allocate_more_zones_than_subnets():
    subnets = partition(AddressBlock.from_cidr("10.0.0.0/24"), 7, 2)
    with pytest.raises(CapacityExceeded):
        allocate_zones(subnets, ["a", "b", "c"], "app")

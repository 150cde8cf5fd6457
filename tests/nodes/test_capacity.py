"""Tests for node capacity arithmetic."""

from dataclasses import dataclass

import pytest

from panel.nodes import NodeUsage, effective_limit, has_capacity_for, is_viable


@dataclass
class Limits:
    memory: int = 1000
    memory_overallocate: int = 10
    disk: int = 10000
    disk_overallocate: int = 0


class TestIsViable:
    def test_fits_within_overallocated_memory(self):
        assert is_viable(Limits(), NodeUsage(memory=900, disk=0), 50, 100)

    def test_exceeds_overallocated_memory(self):
        assert not is_viable(Limits(), NodeUsage(memory=900, disk=0), 201, 100)

    def test_exact_limit_is_viable(self):
        assert is_viable(Limits(), NodeUsage(memory=900, disk=9000), 200, 1000)

    def test_disk_must_also_fit(self):
        assert not is_viable(Limits(), NodeUsage(memory=0, disk=9950), 10, 100)

    def test_negative_overallocate_shrinks_capacity(self):
        limits = Limits(memory=1000, memory_overallocate=-50)
        assert effective_limit(1000, -50) == 500
        assert not is_viable(limits, NodeUsage(), 600, 0)

    def test_empty_node(self):
        assert is_viable(Limits(), NodeUsage(), 1100, 10000)
        assert not is_viable(Limits(), NodeUsage(), 1101, 0)


class TestUnlimitedSentinel:
    """Compatibility checks for an overallocate of -1."""

    @pytest.fixture
    def unlimited(self):
        return Limits(memory=1000, memory_overallocate=-1, disk=1000, disk_overallocate=-1)

    def test_is_viable_applies_minus_one_literally(self, unlimited):
        assert is_viable(unlimited, NodeUsage(), 989, 989)
        assert not is_viable(unlimited, NodeUsage(), 991, 0)

    def test_has_capacity_for_treats_minus_one_as_unlimited(self, unlimited):
        assert has_capacity_for(unlimited, NodeUsage(memory=5000, disk=5000), 100000, 100000)

    def test_sentinel_is_per_dimension(self):
        limits = Limits(memory=1000, memory_overallocate=-1, disk=1000, disk_overallocate=0)
        assert has_capacity_for(limits, NodeUsage(), 50000, 1000)
        assert not has_capacity_for(limits, NodeUsage(), 50000, 1001)

    def test_has_capacity_for_matches_is_viable_otherwise(self):
        usage = NodeUsage(memory=900, disk=0)
        for memory in (50, 200, 1100):
            assert has_capacity_for(Limits(), usage, memory, 0) == is_viable(
                Limits(), usage, memory, 0
            )

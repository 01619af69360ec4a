"""
Tests for warehouse routing and state auto-assignment.
"""
from collections import Counter

import pytest

from orderhub.schemas.warehouse import RegionAssignment, WarehouseAssignment, WarehouseConfig
from orderhub.services.warehouse_router import (
    US_STATES,
    WarehouseRouter,
    auto_assign,
    move_state,
    normalize_state_code,
    proximity_score,
    region_of,
    unassign_state,
    unassigned_states,
)


@pytest.fixture
def advanced_config() -> WarehouseConfig:
    return WarehouseConfig(
        mode="advanced",
        primary_warehouse_id="W1",
        assignments=[
            WarehouseAssignment(warehouse_id="W1", priority=1, regions=[RegionAssignment(states=["CA", "NV"])]),
            WarehouseAssignment(warehouse_id="W2", priority=2, regions=[RegionAssignment(states=["NY"])]),
        ],
    )


def all_assigned_states(assignments: list[WarehouseAssignment]) -> list[str]:
    return [state for a in assignments for region in a.regions for state in region.states]


class TestStateHelpers:
    def test_normalize_state_code(self):
        assert normalize_state_code("California") == "CA"
        assert normalize_state_code(" ny ") == "NY"
        assert normalize_state_code("new york") == "NY"
        assert normalize_state_code("") is None
        assert normalize_state_code(None) is None

    def test_region_of(self):
        assert region_of("TX") == "South"
        assert region_of("Oregon") == "West"
        assert region_of("ON") is None

    def test_proximity_score(self):
        assert proximity_score("CA", "West") == 0
        assert proximity_score("IL", "West") == 1
        assert proximity_score("NY", "West") == 2


class TestWarehouseRouter:
    def test_region_match_wins(self, advanced_config: WarehouseConfig):
        router = WarehouseRouter(advanced_config)

        assert router.resolve("NY") == "W2"
        assert router.resolve("California") == "W1"

    def test_unmatched_state_falls_back_to_primary(self, advanced_config: WarehouseConfig):
        router = WarehouseRouter(advanced_config)

        assert router.resolve("TX") == "W1"

    def test_country_must_match_region(self, advanced_config: WarehouseConfig):
        router = WarehouseRouter(advanced_config)

        # Same code in another country does not hit the US region
        assert WarehouseRouter(
            advanced_config.model_copy(update={"primary_warehouse_id": None})
        ).resolve("NY", "CA") is None
        assert router.resolve("NY", "us") == "W2"

    def test_priority_order_decides_overlaps(self):
        config = WarehouseConfig(
            enable_region_routing=True,
            assignments=[
                WarehouseAssignment(warehouse_id="LOW", priority=5, regions=[RegionAssignment(states=["TX"])]),
                WarehouseAssignment(warehouse_id="HIGH", priority=1, regions=[RegionAssignment(states=["TX"])]),
            ],
        )

        assert WarehouseRouter(config).resolve("TX") == "HIGH"

    def test_inactive_assignment_is_skipped(self, advanced_config: WarehouseConfig):
        advanced_config.assignments[1].is_active = False

        assert WarehouseRouter(advanced_config).resolve("NY") == "W1"

    def test_simple_mode_ignores_assignments(self, advanced_config: WarehouseConfig):
        config = advanced_config.model_copy(update={"mode": "simple"})

        assert WarehouseRouter(config).resolve("NY") == "W1"

    def test_inactive_primary_uses_fallback(self):
        config = WarehouseConfig(primary_warehouse_id="W1", fallback_warehouse_id="W2")

        assert WarehouseRouter(config, active_warehouse_ids={"W2"}).resolve("CA") == "W2"
        assert WarehouseRouter(config, active_warehouse_ids=set()).resolve("CA") is None

    def test_assign_returns_copy(self, advanced_config: WarehouseConfig, sample_order: dict):
        router = WarehouseRouter(advanced_config.to_storage())

        routed = router.assign(sample_order)

        assert routed["warehouse_id"] == "W2"
        assert "warehouse_id" not in sample_order


class TestAutoAssign:
    def test_covers_all_states_exactly_once(self):
        assignments = [
            WarehouseAssignment(id="a1", warehouse_id="W1"),
            WarehouseAssignment(id="a2", warehouse_id="W2"),
        ]

        result = auto_assign(assignments, {"W1": "CA", "W2": "NY"})

        states = all_assigned_states(result)
        assert len(states) == 50
        assert Counter(states).most_common(1)[0][1] == 1
        assert set(states) == set(US_STATES)
        assert unassigned_states(result) == []

    def test_region_then_proximity(self):
        assignments = [
            WarehouseAssignment(id="a1", warehouse_id="W1"),
            WarehouseAssignment(id="a2", warehouse_id="W2"),
        ]

        by_id = {a.id: a for a in auto_assign(assignments, {"W1": "CA", "W2": "NY"})}

        west = set(all_assigned_states([by_id["a1"]]))
        east = set(all_assigned_states([by_id["a2"]]))
        assert {"CA", "OR", "WA"} <= west
        assert {"NY", "MA", "PA"} <= east
        # Midwest is adjacent to both; the first assignment wins the tie
        assert "IL" in west
        # The South counts the West as adjacent but not the Northeast
        assert "TX" in west

    def test_single_assignment_takes_everything(self):
        result = auto_assign([WarehouseAssignment(warehouse_id="W1")], {"W1": "TX"})

        assert len(all_assigned_states(result)) == 50

    def test_unknown_warehouse_state_counts_as_west(self):
        result = auto_assign(
            [WarehouseAssignment(id="a1", warehouse_id="W9"), WarehouseAssignment(id="a2", warehouse_id="W2")],
            {"W2": "NY"},
        )

        assert "CA" in all_assigned_states([result[0]])

    def test_empty_input(self):
        assert auto_assign([], {}) == []

    def test_input_is_not_mutated(self):
        original = WarehouseAssignment(warehouse_id="W1")

        auto_assign([original], {"W1": "CA"})

        assert original.regions == []


class TestStateEditing:
    def test_move_state(self, advanced_config: WarehouseConfig):
        target = advanced_config.assignments[1].id

        result = move_state(advanced_config.assignments, "California", target)

        assert all_assigned_states([result[0]]) == ["NV"]
        assert "CA" in all_assigned_states([result[1]])

    def test_move_state_unknown_target(self, advanced_config: WarehouseConfig):
        with pytest.raises(ValueError):
            move_state(advanced_config.assignments, "CA", "missing")

    def test_unassign_state(self, advanced_config: WarehouseConfig):
        result = unassign_state(advanced_config.assignments, "NV")

        assert "NV" not in all_assigned_states(result)
        assert "NV" in unassigned_states(result)

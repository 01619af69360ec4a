"""
Warehouse routing.

Resolves the warehouse for an order from a store's WarehouseConfig:
- Simple mode: primary, then fallback, then unassigned (None)
- Region mode: first active assignment (by priority) covering the order's state
- Auto-assign: bulk-populates assignments by US region, then by proximity
"""
from collections.abc import Iterable
from typing import Any, Optional, Union

from orderhub.core.logging import get_logger
from orderhub.schemas.warehouse import RegionAssignment, WarehouseAssignment, WarehouseConfig

logger = get_logger(__name__)

WEST = "West"
MIDWEST = "Midwest"
SOUTH = "South"
NORTHEAST = "Northeast"

DEFAULT_REGION = WEST

# code -> (name, region)
US_STATES: dict[str, tuple[str, str]] = {
    "AL": ("Alabama", SOUTH),
    "AK": ("Alaska", WEST),
    "AZ": ("Arizona", WEST),
    "AR": ("Arkansas", SOUTH),
    "CA": ("California", WEST),
    "CO": ("Colorado", WEST),
    "CT": ("Connecticut", NORTHEAST),
    "DE": ("Delaware", NORTHEAST),
    "FL": ("Florida", SOUTH),
    "GA": ("Georgia", SOUTH),
    "HI": ("Hawaii", WEST),
    "ID": ("Idaho", WEST),
    "IL": ("Illinois", MIDWEST),
    "IN": ("Indiana", MIDWEST),
    "IA": ("Iowa", MIDWEST),
    "KS": ("Kansas", MIDWEST),
    "KY": ("Kentucky", SOUTH),
    "LA": ("Louisiana", SOUTH),
    "ME": ("Maine", NORTHEAST),
    "MD": ("Maryland", NORTHEAST),
    "MA": ("Massachusetts", NORTHEAST),
    "MI": ("Michigan", MIDWEST),
    "MN": ("Minnesota", MIDWEST),
    "MS": ("Mississippi", SOUTH),
    "MO": ("Missouri", MIDWEST),
    "MT": ("Montana", WEST),
    "NE": ("Nebraska", MIDWEST),
    "NV": ("Nevada", WEST),
    "NH": ("New Hampshire", NORTHEAST),
    "NJ": ("New Jersey", NORTHEAST),
    "NM": ("New Mexico", WEST),
    "NY": ("New York", NORTHEAST),
    "NC": ("North Carolina", SOUTH),
    "ND": ("North Dakota", MIDWEST),
    "OH": ("Ohio", MIDWEST),
    "OK": ("Oklahoma", SOUTH),
    "OR": ("Oregon", WEST),
    "PA": ("Pennsylvania", NORTHEAST),
    "RI": ("Rhode Island", NORTHEAST),
    "SC": ("South Carolina", SOUTH),
    "SD": ("South Dakota", MIDWEST),
    "TN": ("Tennessee", SOUTH),
    "TX": ("Texas", SOUTH),
    "UT": ("Utah", WEST),
    "VT": ("Vermont", NORTHEAST),
    "VA": ("Virginia", SOUTH),
    "WA": ("Washington", WEST),
    "WV": ("West Virginia", SOUTH),
    "WI": ("Wisconsin", MIDWEST),
    "WY": ("Wyoming", WEST),
}

STATE_NAME_TO_CODE = {name.lower(): code for code, (name, _) in US_STATES.items()}

REGION_ADJACENCY: dict[str, tuple[str, ...]] = {
    WEST: (MIDWEST,),
    MIDWEST: (WEST, SOUTH, NORTHEAST),
    SOUTH: (MIDWEST, WEST),
    NORTHEAST: (MIDWEST, SOUTH),
}


def normalize_state_code(value: Optional[str]) -> Optional[str]:
    """'California', 'ca', ' CA ' -> 'CA'; unknown values are upper-cased as-is."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    code = STATE_NAME_TO_CODE.get(text.lower())
    if code:
        return code
    return text.upper()


def region_of(state: Optional[str]) -> Optional[str]:
    code = normalize_state_code(state)
    entry = US_STATES.get(code) if code else None
    return entry[1] if entry else None


def states_in_region(region: str) -> list[str]:
    return [code for code, (_, state_region) in US_STATES.items() if state_region == region]


def proximity_score(state: str, warehouse_region: str) -> int:
    """0 same region, 1 adjacent region, 2 anything else."""
    state_region = region_of(state)
    if state_region == warehouse_region:
        return 0
    if state_region and warehouse_region in REGION_ADJACENCY.get(state_region, ()):
        return 1
    return 2


ConfigLike = Union[WarehouseConfig, dict[str, Any], None]


def load_config(config: ConfigLike) -> WarehouseConfig:
    if isinstance(config, WarehouseConfig):
        return config
    return WarehouseConfig.model_validate(config or {})


class WarehouseRouter:
    """Deterministic order -> warehouse resolution for one store."""

    def __init__(
        self,
        config: ConfigLike,
        active_warehouse_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self.config = load_config(config)
        self.active_warehouse_ids = set(active_warehouse_ids) if active_warehouse_ids is not None else None

    @property
    def region_routing_enabled(self) -> bool:
        wants_regions = self.config.mode == "advanced" or self.config.enable_region_routing
        return wants_regions and bool(self.config.assignments)

    def _usable(self, warehouse_id: Optional[str]) -> bool:
        if not warehouse_id:
            return False
        return self.active_warehouse_ids is None or warehouse_id in self.active_warehouse_ids

    def resolve_simple(self) -> Optional[str]:
        if self._usable(self.config.primary_warehouse_id):
            return self.config.primary_warehouse_id
        if self._usable(self.config.fallback_warehouse_id):
            return self.config.fallback_warehouse_id
        return None

    def resolve(self, province: Optional[str], country_code: Optional[str] = "US") -> Optional[str]:
        if self.region_routing_enabled:
            state = normalize_state_code(province)
            country = (country_code or "US").upper()
            if state:
                ordered = sorted(
                    (a for a in self.config.assignments if a.is_active),
                    key=lambda a: a.priority,
                )
                for assignment in ordered:
                    if not self._usable(assignment.warehouse_id):
                        continue
                    for region in assignment.regions:
                        if (region.country_code or "US").upper() != country:
                            continue
                        if state in {normalize_state_code(s) for s in region.states}:
                            return assignment.warehouse_id
        return self.resolve_simple()

    def assign(self, order: dict[str, Any]) -> dict[str, Any]:
        """Copy of the order with `warehouse_id` resolved from its shipping address."""
        warehouse_id = self.resolve(
            order.get("shipping_province"),
            order.get("shipping_country_code") or "US",
        )
        if warehouse_id is None:
            logger.debug("Order left unassigned", order_id=order.get("id"))
        return {**order, "warehouse_id": warehouse_id}


# ============================================
# ASSIGNMENT EDITING
# ============================================

def _us_region(assignment: WarehouseAssignment) -> RegionAssignment:
    for region in assignment.regions:
        if (region.country_code or "US").upper() == "US":
            return region
    region = RegionAssignment()
    assignment.regions.append(region)
    return region


def _copy(assignments: Iterable[WarehouseAssignment]) -> list[WarehouseAssignment]:
    return [a.model_copy(deep=True) for a in assignments]


def auto_assign(
    assignments: Iterable[WarehouseAssignment],
    warehouse_states: dict[str, Optional[str]],
) -> list[WarehouseAssignment]:
    """
    Distribute all 50 states across the given assignments.

    Pass 1 gives each assignment every state of its warehouse's region (the
    first assignment seen in a region owns it). Pass 2 gives each leftover
    state to the assignment with the lowest proximity score, first seen
    winning ties. Warehouses with an unknown state count as West.
    """
    result = _copy(assignments)
    if not result:
        return result

    warehouse_region = {
        a.id: region_of(warehouse_states.get(a.warehouse_id)) or DEFAULT_REGION
        for a in result
    }
    owner: dict[str, WarehouseAssignment] = {}

    # Pass 1: region membership
    claimed_regions: set[str] = set()
    for assignment in result:
        region = warehouse_region[assignment.id]
        if region in claimed_regions:
            continue
        claimed_regions.add(region)
        for code in states_in_region(region):
            owner[code] = assignment

    # Pass 2: proximity for states no warehouse region covers
    for code in US_STATES:
        if code in owner:
            continue
        best = result[0]
        best_score = proximity_score(code, warehouse_region[best.id])
        for candidate in result[1:]:
            score = proximity_score(code, warehouse_region[candidate.id])
            if score < best_score:
                best, best_score = candidate, score
        owner[code] = best

    for assignment in result:
        other_regions = [r for r in assignment.regions if (r.country_code or "US").upper() != "US"]
        states = [code for code in US_STATES if owner[code] is assignment]
        assignment.regions = other_regions + ([RegionAssignment(states=states)] if states else [])

    logger.info(
        "Auto-assigned states",
        assignments=len(result),
        regions=sorted(claimed_regions),
    )
    return result


def unassign_state(assignments: Iterable[WarehouseAssignment], state: str) -> list[WarehouseAssignment]:
    code = normalize_state_code(state)
    result = _copy(assignments)
    for assignment in result:
        for region in assignment.regions:
            region.states = [s for s in region.states if normalize_state_code(s) != code]
    return result


def move_state(
    assignments: Iterable[WarehouseAssignment],
    state: str,
    target_assignment_id: str,
) -> list[WarehouseAssignment]:
    """Remove the state from every assignment, then add it to the target."""
    code = normalize_state_code(state)
    result = unassign_state(assignments, state)
    target = next((a for a in result if a.id == target_assignment_id), None)
    if target is None:
        raise ValueError(f"Unknown assignment: {target_assignment_id}")
    _us_region(target).states.append(code)
    return result


def unassigned_states(assignments: Iterable[WarehouseAssignment]) -> list[str]:
    assigned = {
        normalize_state_code(state)
        for assignment in assignments
        for region in assignment.regions
        if (region.country_code or "US").upper() == "US"
        for state in region.states
    }
    return [code for code in US_STATES if code not in assigned]

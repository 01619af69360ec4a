"""
Merge engine - idempotent upsert of synced entities.

Two policies:
- OrderMerger: match by (external_id, store_id), incoming sync fields win,
  fields the platform does not send (warehouse override) survive.
- CustomizationPreservingMerger: products/boxes/presets; records the user
  customized are never overwritten by API data.
"""
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4

from orderhub.core.logging import get_logger
from orderhub.core.timeutils import utcnow
from orderhub.repositories.entity_store import EntityStore
from orderhub.services.warehouse_router import WarehouseRouter, normalize_state_code

logger = get_logger(__name__)


@dataclass
class MergeReport:
    created: int = 0
    updated: int = 0
    preserved: int = 0
    deleted: int = 0
    records: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.created + self.updated + self.preserved


# ============================================
# ORDERS
# ============================================

def _address_changed(before: dict[str, Any], after: dict[str, Any]) -> bool:
    return (
        normalize_state_code(before.get("shipping_province")) != normalize_state_code(after.get("shipping_province"))
        or (before.get("shipping_country_code") or "").upper() != (after.get("shipping_country_code") or "").upper()
    )


class OrderMerger:
    """Shallow merge of incoming orders over stored ones."""

    entity_type = "orders"

    async def merge(
        self,
        store: EntityStore,
        store_id: str,
        incoming: Sequence[dict[str, Any]],
        route: Optional[WarehouseRouter] = None,
    ) -> MergeReport:
        if not incoming:
            return MergeReport()

        external_ids = sorted({o["external_id"] for o in incoming if o.get("external_id")})
        by_external: dict[str, dict[str, Any]] = {}
        if external_ids:
            for existing in await store.list(self.entity_type, {"store_id": store_id, "external_id": external_ids}):
                by_external.setdefault(existing["external_id"], existing)

        ids = sorted({o["id"] for o in incoming if o.get("id")})
        by_id = {o["id"]: o for o in await store.list(self.entity_type, {"id": ids})} if ids else {}

        now = utcnow()
        batch: dict[str, dict[str, Any]] = {}

        for order in incoming:
            external_id = order.get("external_id")
            key = f"ext:{external_id}" if external_id else f"id:{order.get('id')}"

            current = batch.get(key)
            if current is None:
                current = by_external.get(external_id) if external_id else by_id.get(order.get("id"))

            if current is not None:
                merged = {
                    **current,
                    **order,
                    "id": current["id"],
                    "store_id": store_id,
                    "created_at": current.get("created_at") or now,
                    "updated_at": now,
                }
                if current.get("warehouse_override"):
                    merged["warehouse_id"] = current.get("warehouse_id")
                    merged["warehouse_override"] = True
                elif route is not None and (not merged.get("warehouse_id") or _address_changed(current, merged)):
                    merged = route.assign(merged)
            else:
                order_id = order.get("id")
                if not order_id or order_id in by_id:
                    # Same platform id already used by another store's order
                    order_id = str(uuid4())
                merged = {
                    **order,
                    "id": order_id,
                    "store_id": store_id,
                    "created_at": now,
                    "updated_at": now,
                }
                if route is not None and not merged.get("warehouse_id"):
                    merged = route.assign(merged)

            batch[key] = merged

        result = await store.upsert_many(self.entity_type, list(batch.values()))
        logger.info(
            "Orders merged",
            store_id=store_id,
            created=result.created,
            updated=result.updated,
            duplicates_collapsed=len(incoming) - len(batch),
        )
        return MergeReport(
            created=result.created,
            updated=result.updated,
            records=list(batch.values()),
        )


# ============================================
# PRODUCTS / BOXES / PRESETS
# ============================================

def _has_concrete_dimensions(record: dict[str, Any]) -> bool:
    dims = record.get("dimensions") or {}
    try:
        return all(float(dims.get(axis) or 0) > 0 for axis in ("length", "width", "height"))
    except (TypeError, ValueError):
        return False


def product_is_customized(record: dict[str, Any]) -> bool:
    return bool(record.get("is_customized")) or record.get("box_type") == "custom"


def box_is_customized(record: dict[str, Any]) -> bool:
    """
    Explicit flag, a custom box, or a variable carrier box ("Your Own Box")
    the user has given real dimensions.
    """
    if record.get("is_customized") or record.get("box_type") == "custom":
        return True
    is_variable = record.get("is_editable") or record.get("needs_dimensions")
    return bool(is_variable) and _has_concrete_dimensions(record)


class CustomizationPreservingMerger:
    """
    Merge API records into stored ones without touching customized records.

    Records match on `key_fields`. Customized records pass through; API-managed
    records take the API values (`api_fields` only, when given); unknown keys
    are inserted. With `prune_missing`, API-managed records the API no longer
    returns are deleted unless `keep_orphan` says otherwise; `prune_within`
    limits pruning to records whose value for that field occurs in the
    incoming batch (e.g. only the carriers being synced).
    """

    def __init__(
        self,
        entity_type: str,
        key_fields: Sequence[str],
        is_customized: Callable[[dict[str, Any]], bool],
        api_fields: Optional[Iterable[str]] = None,
        prune_missing: bool = False,
        keep_orphan: Optional[Callable[[dict[str, Any]], bool]] = None,
        prune_within: Optional[str] = None,
    ) -> None:
        self.entity_type = entity_type
        self.key_fields = tuple(key_fields)
        self.is_customized = is_customized
        self.api_fields = tuple(api_fields) if api_fields is not None else None
        self.prune_missing = prune_missing
        self.keep_orphan = keep_orphan
        self.prune_within = prune_within

    def key_of(self, record: dict[str, Any]) -> tuple:
        return tuple(record.get(name) for name in self.key_fields)

    def _api_values(self, record: dict[str, Any]) -> dict[str, Any]:
        if self.api_fields is None:
            return {k: v for k, v in record.items() if k not in ("id", "created_at")}
        return {k: record[k] for k in self.api_fields if k in record}

    async def merge(
        self,
        store: EntityStore,
        incoming: Sequence[dict[str, Any]],
        scope: Optional[dict[str, Any]] = None,
    ) -> MergeReport:
        scope = scope or {}
        existing = await store.list(self.entity_type, scope)

        index: dict[tuple, dict[str, Any]] = {}
        for record in existing:
            index.setdefault(self.key_of(record), record)

        # Platform ids can already be taken by another scope (store or warehouse)
        candidate_ids = sorted({r["id"] for r in incoming if r.get("id")})
        taken_ids = {r["id"] for r in await store.list(self.entity_type, {"id": candidate_ids})} if candidate_ids else set()

        now = utcnow()
        report = MergeReport()
        to_write: dict[tuple, dict[str, Any]] = {}
        incoming_keys: set[tuple] = set()
        preserved_keys: set[tuple] = set()

        for record in incoming:
            key = self.key_of(record)
            incoming_keys.add(key)
            if key in preserved_keys:
                continue
            current = to_write.get(key) or index.get(key)

            if current is None:
                new_record = {
                    **record,
                    **scope,
                    "id": record["id"] if record.get("id") and record["id"] not in taken_ids else str(uuid4()),
                    "created_at": now,
                    "updated_at": now,
                }
                to_write[key] = new_record
                report.created += 1
            elif key not in to_write and self.is_customized(current):
                preserved_keys.add(key)
                report.preserved += 1
                report.records.append(current)
            else:
                if key not in to_write:
                    report.updated += 1
                to_write[key] = {**current, **self._api_values(record), **scope, "updated_at": now}

        stale_ids: list[str] = []
        if self.prune_missing:
            groups = {r.get(self.prune_within) for r in incoming} if self.prune_within else None
            for record in existing:
                if groups is not None and record.get(self.prune_within) not in groups:
                    continue
                if self.key_of(record) in incoming_keys or self.is_customized(record):
                    continue
                if self.keep_orphan is not None and self.keep_orphan(record):
                    continue
                stale_ids.append(record["id"])

        await store.upsert_many(self.entity_type, list(to_write.values()))
        if stale_ids:
            await store.delete_many(self.entity_type, stale_ids)
        report.deleted = len(stale_ids)
        report.records.extend(to_write.values())

        logger.info(
            "Customization-preserving merge",
            entity_type=self.entity_type,
            created=report.created,
            updated=report.updated,
            preserved=report.preserved,
            deleted=report.deleted,
        )
        return report


BOX_API_FIELDS = (
    "name",
    "dimensions",
    "weight",
    "flat_rate",
    "flat_rate_price",
    "package_type",
    "is_editable",
    "needs_dimensions",
)


def product_merger() -> CustomizationPreservingMerger:
    return CustomizationPreservingMerger(
        entity_type="products",
        key_fields=("external_id",),
        is_customized=product_is_customized,
    )


def box_merger(entity_type: str = "boxes") -> CustomizationPreservingMerger:
    return CustomizationPreservingMerger(
        entity_type=entity_type,
        key_fields=("box_type", "carrier_code", "mail_class"),
        is_customized=box_is_customized,
        api_fields=BOX_API_FIELDS,
        prune_missing=True,
        keep_orphan=lambda record: bool(record.get("is_editable")),
        prune_within="box_type",
    )

"""
Generic entity store used by the merge engine.

Exposes a small collection-style interface (list / upsert_many / delete_many)
over the order, product and box tables so merge policies never depend on the
ORM directly.
"""
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.database import Base
from orderhub.core.exceptions import MergeFailure
from orderhub.core.logging import get_logger
from orderhub.models.order import Order
from orderhub.models.product import Product
from orderhub.models.shipping_box import ShippingBox

logger = get_logger(__name__)

# entity type -> (model, fixed column values scoping the collection)
ENTITY_TYPES: dict[str, tuple[type[Base], dict[str, Any]]] = {
    "orders": (Order, {}),
    "products": (Product, {}),
    "boxes": (ShippingBox, {"kind": "box"}),
    "presets": (ShippingBox, {"kind": "preset"}),
}


@dataclass
class UpsertResult:
    created: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated


class EntityStore:
    """Dict-in, dict-out storage for synced entities."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _resolve(entity_type: str) -> tuple[type[Base], dict[str, Any]]:
        try:
            return ENTITY_TYPES[entity_type]
        except KeyError:
            raise ValueError(f"Unknown entity type: {entity_type}") from None

    @staticmethod
    def _columns(model: type[Base]) -> set[str]:
        return {attr.key for attr in inspect(model).column_attrs}

    async def list(
        self,
        entity_type: str,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        Entities matching the filter.

        Scalar values compare by equality; list, tuple and set values become
        IN clauses.
        """
        model, scope = self._resolve(entity_type)
        columns = self._columns(model)

        stmt = select(model)
        for field, value in {**(filter or {}), **scope}.items():
            if field not in columns:
                raise ValueError(f"Unknown {entity_type} field: {field}")
            column = getattr(model, field)
            if isinstance(value, (list, tuple, set)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)

        result = await self.session.execute(stmt)
        return [obj.to_dict() for obj in result.scalars().all()]

    async def upsert_many(
        self,
        entity_type: str,
        entities: Sequence[dict[str, Any]],
    ) -> UpsertResult:
        """
        Insert or update entities by `id` in a single flush.

        Raises MergeFailure after rolling the session back if anything in the
        batch fails; nothing from the batch is kept.
        """
        model, scope = self._resolve(entity_type)
        columns = self._columns(model)
        outcome = UpsertResult()

        try:
            ids = [entity["id"] for entity in entities if entity.get("id")]
            existing: dict[str, Base] = {}
            if ids:
                result = await self.session.execute(select(model).where(model.id.in_(ids)))
                existing = {obj.id: obj for obj in result.scalars().all()}

            for entity in entities:
                values = {key: value for key, value in entity.items() if key in columns}
                values.update(scope)
                db_obj = existing.get(values.get("id"))
                if db_obj is not None:
                    for field, value in values.items():
                        setattr(db_obj, field, value)
                    outcome.updated += 1
                else:
                    db_obj = model(**values)
                    self.session.add(db_obj)
                    if db_obj.id is not None:
                        existing[db_obj.id] = db_obj
                    outcome.created += 1

            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Batch upsert failed",
                entity_type=entity_type,
                batch_size=len(entities),
                error=str(e),
            )
            raise MergeFailure(f"Failed to upsert {len(entities)} {entity_type}: {e}") from e

        logger.debug(
            "Batch upserted",
            entity_type=entity_type,
            created=outcome.created,
            updated=outcome.updated,
        )
        return outcome

    async def delete_many(self, entity_type: str, ids: Iterable[str]) -> None:
        model, scope = self._resolve(entity_type)
        id_list = list(ids)
        if not id_list:
            return

        stmt = delete(model).where(model.id.in_(id_list))
        for field, value in scope.items():
            stmt = stmt.where(getattr(model, field) == value)

        try:
            await self.session.execute(stmt)
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise MergeFailure(f"Failed to delete {len(id_list)} {entity_type}: {e}") from e

"""Bill of materials resolution for order items."""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import ValidationError
from stitchflow.core.section_keys import normalize_section_key
from stitchflow.models.bom import BOMLine
from stitchflow.models.order import OrderItem
from stitchflow.services.inventory_service import to_decimal


logger = logging.getLogger(__name__)


@dataclass
class BOMEntry:
    """One material line, already tied to a section key."""
    inventory_item_id: uuid.UUID
    quantity_per_unit: Decimal
    unit: str
    piece: str


class BOMService:
    """Resolves the material list an order item needs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, order_item: OrderItem) -> List[BOMEntry]:
        """
        Custom BOM embedded on the item wins (bespoke sizing); otherwise the
        standard BOM for product and size, falling back to size-agnostic lines.
        """
        if order_item.custom_bom:
            return [self._entry_from_custom(line) for line in order_item.custom_bom]

        lines = await self._standard_lines(order_item.product_id, order_item.size)
        if not lines and order_item.size is not None:
            lines = await self._standard_lines(order_item.product_id, None)
        return [
            BOMEntry(
                inventory_item_id=line.inventory_item_id,
                quantity_per_unit=to_decimal(line.quantity_per_unit),
                unit=line.unit,
                piece=normalize_section_key(line.piece),
            )
            for line in lines
        ]

    async def add_line(self, data: dict) -> BOMLine:
        line = BOMLine(**data)
        line.piece = normalize_section_key(line.piece)
        self.db.add(line)
        await self.db.flush()
        return line

    async def _standard_lines(self, product_id: str, size: Optional[str]) -> List[BOMLine]:
        query = select(BOMLine).where(BOMLine.product_id == product_id)
        if size is None:
            query = query.where(BOMLine.size.is_(None))
        else:
            query = query.where(BOMLine.size == size)
        result = await self.db.execute(query.order_by(BOMLine.piece))
        return list(result.scalars().all())

    @staticmethod
    def _entry_from_custom(line: dict) -> BOMEntry:
        item_id = line.get("inventory_item_id")
        if not item_id:
            raise ValidationError("Custom BOM line is missing inventory_item_id", details={"line": line})
        if not isinstance(item_id, uuid.UUID):
            try:
                item_id = uuid.UUID(str(item_id))
            except ValueError:
                raise ValidationError(
                    "Custom BOM line has an invalid inventory_item_id",
                    details={"inventory_item_id": str(item_id)},
                )
        return BOMEntry(
            inventory_item_id=item_id,
            quantity_per_unit=to_decimal(line.get("quantity_per_unit", line.get("quantity"))),
            unit=line.get("unit") or "Unit",
            piece=normalize_section_key(line.get("piece") or line.get("section")),
        )

"""Inventory ledger: current stock per material plus the movement log."""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.config import settings
from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.models.inventory import InventoryItem, StockMovement, StockMovementType


logger = logging.getLogger(__name__)

QTY_PLACES = Decimal("0.001")


def to_decimal(value) -> Decimal:
    """Coerce floats, ints, strings and None to a 3-place Decimal quantity."""
    if value is None:
        return Decimal("0")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(QTY_PLACES)


class InventoryService:
    """Service for raw material stock operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== ITEM METHODS ====================

    async def get_item(self, item_id: uuid.UUID) -> InventoryItem:
        item = await self.db.get(InventoryItem, item_id)
        if not item:
            raise NotFoundError(f"Inventory item {item_id} not found")
        return item

    async def list_items(self, search: Optional[str] = None) -> List[InventoryItem]:
        query = select(InventoryItem).order_by(InventoryItem.name)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(InventoryItem.name.ilike(pattern), InventoryItem.sku.ilike(pattern)))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_item(self, data: dict) -> InventoryItem:
        existing = await self.db.scalar(select(InventoryItem.id).where(InventoryItem.sku == data["sku"]))
        if existing:
            raise ValidationError(f"SKU {data['sku']} already exists")
        item = InventoryItem(**data)
        item.remaining_stock = to_decimal(data.get("remaining_stock"))
        self.db.add(item)
        await self.db.flush()
        return item

    async def get_stock(self, item_id: uuid.UUID) -> Decimal:
        stock = await self.db.scalar(
            select(InventoryItem.remaining_stock).where(InventoryItem.id == item_id)
        )
        if stock is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        return to_decimal(stock)

    async def lock_items(self, item_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, InventoryItem]:
        """
        Lock the inventory rows a section check is about to read and deduct.

        Rows are locked in id order so two concurrent checks touching the same
        materials cannot deadlock. The returned rows carry the current stock;
        the availability decision and the deduction both use them.
        """
        ids = sorted(set(item_ids), key=str)
        if not ids:
            return {}
        result = await self.db.execute(
            select(InventoryItem)
            .where(InventoryItem.id.in_(ids))
            .order_by(InventoryItem.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {item.id: item for item in result.scalars().all()}

    async def low_stock_items(self) -> List[InventoryItem]:
        threshold = Decimal(str(settings.LOW_STOCK_THRESHOLD))
        result = await self.db.execute(
            select(InventoryItem)
            .where(
                or_(
                    and_(
                        InventoryItem.min_stock_level.is_not(None),
                        InventoryItem.remaining_stock <= InventoryItem.min_stock_level,
                    ),
                    and_(
                        InventoryItem.min_stock_level.is_(None),
                        InventoryItem.remaining_stock <= threshold,
                    ),
                )
            )
            .order_by(InventoryItem.remaining_stock)
        )
        return list(result.scalars().all())

    # ==================== LEDGER METHODS ====================

    async def deduct(
        self,
        item: InventoryItem,
        quantity,
        order_id: Optional[uuid.UUID] = None,
        order_item_id: Optional[uuid.UUID] = None,
        section: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        """
        Reserve material for a section that passed its check.

        The caller must hold the row lock from ``lock_items``.
        """
        quantity = to_decimal(quantity)
        balance_before = to_decimal(item.remaining_stock)
        if quantity > balance_before:
            raise InvalidStateError(
                f"Insufficient stock for {item.sku}: need {quantity}, have {balance_before}",
                details={"inventory_item_id": str(item.id), "required": float(quantity),
                         "available": float(balance_before)},
            )
        item.remaining_stock = balance_before - quantity
        return await self._create_movement(
            item=item,
            movement_type=StockMovementType.ORDER_RESERVATION,
            quantity=-quantity,
            balance_before=balance_before,
            reference_type="order_item_section",
            order_id=order_id,
            order_item_id=order_item_id,
            section=section,
            notes=notes,
            created_by=created_by,
        )

    async def restock(
        self,
        item_id: uuid.UUID,
        quantity,
        order_id: Optional[uuid.UUID] = None,
        order_item_id: Optional[uuid.UUID] = None,
        section: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        """Return previously reserved material to stock."""
        locked = await self.lock_items([item_id])
        item = locked.get(item_id)
        if not item:
            raise NotFoundError(f"Inventory item {item_id} not found")
        quantity = to_decimal(quantity)
        balance_before = to_decimal(item.remaining_stock)
        item.remaining_stock = balance_before + quantity
        return await self._create_movement(
            item=item,
            movement_type=StockMovementType.RESERVATION_RELEASE,
            quantity=quantity,
            balance_before=balance_before,
            reference_type="order_item_section",
            order_id=order_id,
            order_item_id=order_item_id,
            section=section,
            notes=notes,
            created_by=created_by,
        )

    async def stock_in(
        self,
        item_id: uuid.UUID,
        quantity,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Stock-in quantity must be positive")
        locked = await self.lock_items([item_id])
        item = locked.get(item_id)
        if not item:
            raise NotFoundError(f"Inventory item {item_id} not found")
        balance_before = to_decimal(item.remaining_stock)
        item.remaining_stock = balance_before + quantity
        logger.info("Stock in %s: +%s (balance %s)", item.sku, quantity, item.remaining_stock)
        return await self._create_movement(
            item=item,
            movement_type=StockMovementType.STOCK_IN,
            quantity=quantity,
            balance_before=balance_before,
            reference_type="manual",
            notes=notes,
            created_by=created_by,
        )

    async def stock_out(
        self,
        item_id: uuid.UUID,
        quantity,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Stock-out quantity must be positive")
        locked = await self.lock_items([item_id])
        item = locked.get(item_id)
        if not item:
            raise NotFoundError(f"Inventory item {item_id} not found")
        balance_before = to_decimal(item.remaining_stock)
        if quantity > balance_before:
            raise InvalidStateError(
                f"Insufficient stock for {item.sku}: requested {quantity}, available {balance_before}"
            )
        item.remaining_stock = balance_before - quantity
        return await self._create_movement(
            item=item,
            movement_type=StockMovementType.STOCK_OUT,
            quantity=-quantity,
            balance_before=balance_before,
            reference_type="manual",
            notes=notes,
            created_by=created_by,
        )

    async def list_movements(
        self,
        item_id: Optional[uuid.UUID] = None,
        order_item_id: Optional[uuid.UUID] = None,
    ) -> List[StockMovement]:
        query = select(StockMovement).order_by(StockMovement.created_at, StockMovement.movement_number)
        if item_id:
            query = query.where(StockMovement.inventory_item_id == item_id)
        if order_item_id:
            query = query.where(StockMovement.order_item_id == order_item_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _create_movement(
        self,
        item: InventoryItem,
        movement_type: StockMovementType,
        quantity: Decimal,
        balance_before: Decimal,
        reference_type: Optional[str] = None,
        order_id: Optional[uuid.UUID] = None,
        order_item_id: Optional[uuid.UUID] = None,
        section: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockMovement:
        movement = StockMovement(
            movement_number=await self._generate_movement_number(),
            movement_type=movement_type.value,
            inventory_item_id=item.id,
            quantity=quantity,
            balance_before=balance_before,
            balance_after=to_decimal(item.remaining_stock),
            reference_type=reference_type,
            order_id=order_id,
            order_item_id=order_item_id,
            section=section,
            notes=notes,
            created_by=created_by,
        )
        self.db.add(movement)
        await self.db.flush()
        return movement

    async def _generate_movement_number(self) -> str:
        """Generate unique movement number."""
        date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
        query = select(func.count()).select_from(StockMovement).where(
            StockMovement.movement_number.like(f"MOV-{date_part}%")
        )
        count = await self.db.scalar(query)
        return f"MOV-{date_part}-{(count or 0) + 1:04d}"

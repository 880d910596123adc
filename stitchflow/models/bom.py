"""Standard bill of materials lines per product and size."""
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from stitchflow.database import Base
from stitchflow.db_types import UUIDType, QuantityType


class BOMLine(Base):
    """
    One material line of a product's standard BOM.

    A NULL size applies to every size of the product.
    """
    __tablename__ = "bom_lines"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("inventory_items.id", ondelete="RESTRICT"),
        nullable=False
    )
    quantity_per_unit: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit: Mapped[str] = mapped_column(String(30), default="Unit", nullable=False)
    piece: Mapped[str] = mapped_column(String(100), nullable=False, comment="Section this material is for")

    def __repr__(self) -> str:
        return f"<BOMLine(product='{self.product_id}', piece='{self.piece}')>"

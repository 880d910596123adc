from stitchflow.models.order import (
    Order,
    OrderItem,
    OrderItemSection,
    OrderPayment,
    OrderStatus,
    OrderItemStatus,
    SectionStatus,
    PaymentStatus,
)
from stitchflow.models.inventory import InventoryItem, StockMovement, StockMovementType
from stitchflow.models.bom import BOMLine
from stitchflow.models.packet import Packet, PacketItem, PacketStatus
from stitchflow.models.procurement import ProcurementDemand, DemandStatus
from stitchflow.models.production import ProductionAssignment, ProductionTask, ProductionTaskStatus
from stitchflow.models.timeline import TimelineEntry

__all__ = [
    "Order",
    "OrderItem",
    "OrderItemSection",
    "OrderPayment",
    "OrderStatus",
    "OrderItemStatus",
    "SectionStatus",
    "PaymentStatus",
    "InventoryItem",
    "StockMovement",
    "StockMovementType",
    "BOMLine",
    "Packet",
    "PacketItem",
    "PacketStatus",
    "ProcurementDemand",
    "DemandStatus",
    "ProductionAssignment",
    "ProductionTask",
    "ProductionTaskStatus",
    "TimelineEntry",
]

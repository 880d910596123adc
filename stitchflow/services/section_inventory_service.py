"""
Section Inventory Check and Rerun engines.

Each section of an order item is checked on its own: a section that is short
of material never holds back a sibling that has everything it needs.

Flow (full check):
1. Delete the item's procurement demands (they are re-derived from scratch)
2. For every section still waiting on material:
   - lock the inventory rows its BOM touches
   - compute required/available/shortage per material
   - pass: deduct stock, section -> INVENTORY_PASSED
   - fail: one OPEN demand per short material, section -> AWAITING_MATERIAL
3. Put the passed sections' materials in the item's packet
4. Derive the order item status from its sections

The rerun only touches sections whose demands are no longer OPEN/ORDERED and
updates demands selectively instead of wiping them.
"""
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.models.inventory import InventoryItem
from stitchflow.models.order import (
    Order,
    OrderItem,
    OrderItemSection,
    OrderItemStatus,
    OrderStatus,
    SectionStatus,
)
from stitchflow.services.bom_service import BOMEntry, BOMService
from stitchflow.services.inventory_service import InventoryService, to_decimal
from stitchflow.services.packet_service import PacketService
from stitchflow.services.procurement_service import ProcurementService
from stitchflow.services.state_machine import (
    BLOCKED_SECTION_STATUSES,
    ITEM_IN_FLIGHT_STATUSES,
    refresh_order_item_status,
    transition_order,
    transition_section,
)
from stitchflow.services.timeline_service import TimelineService


logger = logging.getLogger(__name__)

REQUIREMENT_SUFFICIENT = "SUFFICIENT"
REQUIREMENT_SHORTAGE = "SHORTAGE"


@dataclass
class SectionEvaluation:
    """Outcome of checking one section against the ledger."""
    section: str
    requirements: List[dict]
    locked_items: Dict[uuid.UUID, InventoryItem]

    @property
    def passed(self) -> bool:
        return bool(self.requirements) and all(r["status"] == REQUIREMENT_SUFFICIENT for r in self.requirements)

    @property
    def shortages(self) -> List[dict]:
        return [r for r in self.requirements if r["status"] == REQUIREMENT_SHORTAGE]


@dataclass
class InventoryCheckResult:
    order_item_id: uuid.UUID
    status: str
    passed_sections: List[str] = field(default_factory=list)
    failed_sections: List[str] = field(default_factory=list)
    packet_id: Optional[uuid.UUID] = None
    demands_created: int = 0
    material_requirements: List[dict] = field(default_factory=list)


@dataclass
class RerunResult:
    order_item_id: uuid.UUID
    status: str
    passed_sections: List[str] = field(default_factory=list)
    failed_sections: List[str] = field(default_factory=list)
    skipped_sections: List[str] = field(default_factory=list)
    packet_id: Optional[uuid.UUID] = None


def requirement_to_json(req: dict) -> dict:
    """JSON-column friendly copy of a material requirement."""
    return {
        "inventory_item_id": str(req["inventory_item_id"]),
        "inventory_item_name": req.get("inventory_item_name"),
        "inventory_item_sku": req.get("inventory_item_sku"),
        "required_qty": float(req["required_qty"]),
        "available_qty": float(req["available_qty"]),
        "shortage_qty": float(req["shortage_qty"]),
        "unit": req.get("unit"),
        "piece": req.get("piece"),
        "status": req["status"],
    }


class SectionInventoryService:
    """Per-section material checks, reruns and stock release."""

    # Item statuses from which a full check may be (re)run
    CHECKABLE_ITEM_STATUSES = (
        OrderItemStatus.INVENTORY_CHECK.value,
        OrderItemStatus.AWAITING_MATERIAL.value,
        OrderItemStatus.PARTIAL_CREATE_PACKET.value,
        OrderItemStatus.CREATE_PACKET.value,
    )

    def __init__(self, db: AsyncSession):
        self.db = db
        self.inventory = InventoryService(db)
        self.bom = BOMService(db)
        self.procurement = ProcurementService(db)
        self.packets = PacketService(db)
        self.timeline = TimelineService(db)

    # ==================== FULL CHECK ====================

    async def run_inventory_check(
        self,
        order_item_id: uuid.UUID,
        performed_by: Optional[str] = None,
    ) -> InventoryCheckResult:
        """
        Check every section still waiting on material and deduct stock for
        the ones that pass. Sections already past the check are not touched,
        so repeating the call never deducts twice.
        """
        order_item = await self._get_order_item(order_item_id)
        in_scope = [s for s in order_item.sections if s.status in BLOCKED_SECTION_STATUSES]

        if order_item.status not in self.CHECKABLE_ITEM_STATUSES and not any(
            s.status == SectionStatus.PENDING_INVENTORY_CHECK.value for s in order_item.sections
        ):
            raise InvalidStateError(
                f"Inventory check not allowed for order item in {order_item.status} status",
                details={"current_status": order_item.status},
            )
        if order_item.status not in [s.value for s in ITEM_IN_FLIGHT_STATUSES]:
            raise InvalidStateError(
                f"Order item must be approved for inventory check (current: {order_item.status})",
                details={"current_status": order_item.status},
            )

        order = await self.db.get(Order, order_item.order_id)
        bom_entries = await self.bom.resolve(order_item)
        await self._validate_bom_items(bom_entries)

        deleted = await self.procurement.delete_for_order_items([order_item.id])
        if deleted:
            logger.debug("Deleted %d prior demands for item %s", deleted, order_item.id)

        result = InventoryCheckResult(order_item_id=order_item.id, status=order_item.status)
        passed_requirements: Dict[str, List[dict]] = OrderedDict()

        for section in in_scope:
            evaluation = await self._evaluate_section(order_item, section.section_key, bom_entries)
            self._record_check_result(section, evaluation)
            result.material_requirements.extend(requirement_to_json(r) for r in evaluation.requirements)

            if evaluation.passed:
                await self._deduct_section(order_item, section, evaluation, performed_by)
                transition_section(order_item, section, SectionStatus.INVENTORY_PASSED)
                passed_requirements[section.section_key] = evaluation.requirements
                result.passed_sections.append(section.section_key)
            else:
                for shortage in evaluation.shortages:
                    await self.procurement.create_demand(order_item, section.section_key, shortage)
                    result.demands_created += 1
                transition_section(order_item, section, SectionStatus.AWAITING_MATERIAL)
                result.failed_sections.append(section.section_key)
            logger.debug(
                "Item %s section %s: %s", order_item.id, section.section_key,
                "passed" if evaluation.passed else f"short on {len(evaluation.shortages)} materials",
            )

        if passed_requirements:
            packet = await self.packets.create_or_merge(
                order_item, passed_requirements, self._blocked_section_keys(order_item),
            )
            result.packet_id = packet.id
        else:
            result.packet_id = order_item.packet_id

        now = datetime.now(timezone.utc)
        self._merge_requirements(
            order_item, [s.section_key for s in in_scope], result.material_requirements,
        )
        order_item.last_inventory_check = now
        order_item.sections_inventory_checked = sorted(
            set(order_item.sections_inventory_checked or []) | {s.section_key for s in in_scope}
        )
        result.status = refresh_order_item_status(order_item)

        if order.status in (OrderStatus.RECEIVED.value, OrderStatus.INVENTORY_CHECK.value):
            transition_order(order, OrderStatus.IN_PROGRESS)

        await self.timeline.log(
            order.id, "INVENTORY_CHECK",
            self._summary("Inventory check", result.passed_sections, result.failed_sections),
            order_item_id=order_item.id, performed_by=performed_by,
            details={
                "passed_sections": result.passed_sections,
                "failed_sections": result.failed_sections,
                "demands_created": result.demands_created,
                "status": result.status,
            },
        )
        logger.info(
            "Inventory check for item %s: passed=%s failed=%s -> %s",
            order_item.id, result.passed_sections, result.failed_sections, result.status,
        )
        return result

    # ==================== RERUN ====================

    async def rerun_section_inventory_check(
        self,
        order_item_id: uuid.UUID,
        performed_by: Optional[str] = None,
    ) -> RerunResult:
        """
        Recheck only the sections whose procurement has cleared.

        A section with any OPEN or ORDERED demand is skipped without being
        recomputed. Passing sections are merged into the existing packet.
        """
        order_item = await self._get_order_item(order_item_id)
        if order_item.status not in [s.value for s in ITEM_IN_FLIGHT_STATUSES]:
            raise InvalidStateError(
                f"Cannot rerun inventory check for order item in {order_item.status} status",
                details={"current_status": order_item.status},
            )
        eligible = [s for s in order_item.sections if s.status in BLOCKED_SECTION_STATUSES]
        if not eligible:
            raise InvalidStateError(
                "No sections are awaiting material for this order item",
                details={"current_status": order_item.status},
            )

        order = await self.db.get(Order, order_item.order_id)
        bom_entries = await self.bom.resolve(order_item)
        await self._validate_bom_items(bom_entries)
        blocking = await self.procurement.blocking_demands_by_section(order_item.id)

        result = RerunResult(order_item_id=order_item.id, status=order_item.status)
        passed_requirements: Dict[str, List[dict]] = OrderedDict()
        rechecked_rows: List[dict] = []

        for section in eligible:
            if section.section_key in blocking:
                result.skipped_sections.append(section.section_key)
                logger.warning(
                    "Rerun skipped section %s of item %s: %d demands still open",
                    section.section_key, order_item.id, len(blocking[section.section_key]),
                )
                continue

            evaluation = await self._evaluate_section(order_item, section.section_key, bom_entries)
            self._record_check_result(section, evaluation)
            rechecked_rows.extend(requirement_to_json(r) for r in evaluation.requirements)

            if evaluation.passed:
                await self._deduct_section(order_item, section, evaluation, performed_by)
                await self.procurement.fulfill_section(order_item.id, section.section_key)
                transition_section(order_item, section, SectionStatus.INVENTORY_PASSED)
                passed_requirements[section.section_key] = evaluation.requirements
                result.passed_sections.append(section.section_key)
            else:
                await self.procurement.refresh_section_shortages(
                    order_item, section.section_key, evaluation.shortages,
                )
                transition_section(order_item, section, SectionStatus.AWAITING_MATERIAL)
                result.failed_sections.append(section.section_key)

        self._merge_requirements(
            order_item, result.passed_sections + result.failed_sections, rechecked_rows,
        )
        if passed_requirements:
            packet = await self.packets.create_or_merge(
                order_item, passed_requirements, self._blocked_section_keys(order_item),
            )
            result.packet_id = packet.id
            result.status = refresh_order_item_status(order_item)
            order_item.last_inventory_check = datetime.now(timezone.utc)
        else:
            result.packet_id = order_item.packet_id

        await self.timeline.log(
            order.id, "SECTION_RERUN",
            self._summary("Section rerun", result.passed_sections, result.failed_sections, result.skipped_sections),
            order_item_id=order_item.id, performed_by=performed_by,
            details={
                "passed_sections": result.passed_sections,
                "failed_sections": result.failed_sections,
                "skipped_sections": result.skipped_sections,
                "status": result.status,
            },
        )
        logger.info(
            "Rerun for item %s: passed=%s failed=%s skipped=%s -> %s",
            order_item.id, result.passed_sections, result.failed_sections,
            result.skipped_sections, result.status,
        )
        return result

    # ==================== STOCK RELEASE ====================

    async def release_section_stock(
        self,
        order_item: OrderItem,
        sections: List[str],
        reason: str,
        performed_by: Optional[str] = None,
    ) -> List[dict]:
        """
        Return the stock deducted for ``sections`` to the ledger.

        Each deduction is released at most once; released entries are flagged
        in ``stock_deductions``.
        """
        released: List[dict] = []
        updated: List[dict] = []
        for entry in order_item.stock_deductions or []:
            entry = dict(entry)
            if entry.get("section") in sections and not entry.get("released"):
                await self.inventory.restock(
                    uuid.UUID(entry["inventory_item_id"]),
                    entry["quantity"],
                    order_id=order_item.order_id,
                    order_item_id=order_item.id,
                    section=entry["section"],
                    notes=reason,
                    created_by=performed_by,
                )
                entry["released"] = True
                entry["released_at"] = datetime.now(timezone.utc).isoformat()
                released.append(entry)
            updated.append(entry)
        order_item.stock_deductions = updated
        if released:
            logger.info("Released %d deductions for item %s sections %s", len(released), order_item.id, sections)
        return released

    # ==================== INTERNALS ====================

    async def _get_order_item(self, order_item_id: uuid.UUID) -> OrderItem:
        order_item = await self.db.get(OrderItem, order_item_id)
        if not order_item:
            raise NotFoundError(f"Order item {order_item_id} not found")
        return order_item

    async def _validate_bom_items(self, bom_entries: List[BOMEntry]) -> None:
        ids = {e.inventory_item_id for e in bom_entries}
        if not ids:
            return
        result = await self.db.execute(select(InventoryItem.id).where(InventoryItem.id.in_(ids)))
        missing = ids - set(result.scalars().all())
        if missing:
            raise ValidationError(
                "BOM references unknown inventory items",
                details={"inventory_item_ids": sorted(str(i) for i in missing)},
            )

    async def _evaluate_section(
        self,
        order_item: OrderItem,
        section: str,
        bom_entries: List[BOMEntry],
    ) -> SectionEvaluation:
        """Consolidate the section's BOM lines and compare them to locked stock."""
        consolidated: Dict[uuid.UUID, dict] = OrderedDict()
        for entry in bom_entries:
            if entry.piece != section:
                continue
            line = consolidated.setdefault(entry.inventory_item_id, {"per_unit": Decimal("0"), "unit": entry.unit})
            line["per_unit"] += entry.quantity_per_unit

        locked = await self.inventory.lock_items(consolidated.keys())
        requirements = []
        for item_id, line in consolidated.items():
            item = locked[item_id]
            required = to_decimal(line["per_unit"] * order_item.quantity)
            available = to_decimal(item.remaining_stock)
            shortage = max(Decimal("0"), required - available)
            requirements.append({
                "inventory_item_id": item_id,
                "inventory_item_name": item.name,
                "inventory_item_sku": item.sku,
                "required_qty": required,
                "available_qty": available,
                "shortage_qty": to_decimal(shortage),
                "unit": line["unit"] or item.unit,
                "rack_location": item.rack_location,
                "piece": section,
                "status": REQUIREMENT_SUFFICIENT if available >= required else REQUIREMENT_SHORTAGE,
            })
        return SectionEvaluation(section=section, requirements=requirements, locked_items=locked)

    async def _deduct_section(
        self,
        order_item: OrderItem,
        section: OrderItemSection,
        evaluation: SectionEvaluation,
        performed_by: Optional[str],
    ) -> None:
        deductions = []
        for req in evaluation.requirements:
            movement = await self.inventory.deduct(
                evaluation.locked_items[req["inventory_item_id"]],
                req["required_qty"],
                order_id=order_item.order_id,
                order_item_id=order_item.id,
                section=section.section_key,
                notes=f"Reserved for {section.display_name}",
                created_by=performed_by,
            )
            deductions.append({
                "section": section.section_key,
                "inventory_item_id": str(req["inventory_item_id"]),
                "inventory_item_name": req.get("inventory_item_name"),
                "quantity": float(req["required_qty"]),
                "unit": req.get("unit"),
                "movement_number": movement.movement_number,
                "deducted_at": movement.created_at.isoformat(),
                "released": False,
            })
        order_item.stock_deductions = (order_item.stock_deductions or []) + deductions

    @staticmethod
    def _record_check_result(section: OrderItemSection, evaluation: SectionEvaluation) -> None:
        section.inventory_check_result = {
            "passed": evaluation.passed,
            "checked_at": datetime.now(timezone.utc).isoformat(),
            "materials": [requirement_to_json(r) for r in evaluation.requirements],
            "shortages": [requirement_to_json(r) for r in evaluation.shortages],
        }

    @staticmethod
    def _merge_requirements(order_item: OrderItem, sections: List[str], rows: List[dict]) -> None:
        """Replace the requirement rows of ``sections``; rows of other sections stay."""
        kept = [r for r in order_item.material_requirements or [] if r.get("piece") not in sections]
        order_item.material_requirements = kept + list(rows)

    @staticmethod
    def _blocked_section_keys(order_item: OrderItem) -> List[str]:
        return [s.section_key for s in order_item.sections if s.status in BLOCKED_SECTION_STATUSES]

    @staticmethod
    def _summary(label: str, passed: List[str], failed: List[str], skipped: Optional[List[str]] = None) -> str:
        parts = [f"{label}:"]
        parts.append(f"passed [{', '.join(passed) or 'none'}]")
        parts.append(f"awaiting material [{', '.join(failed) or 'none'}]")
        if skipped:
            parts.append(f"skipped [{', '.join(skipped)}]")
        return " ".join(parts)

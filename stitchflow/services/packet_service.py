"""Packet assembler: one material packet per order item, grown in rounds."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.config import settings
from stitchflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from stitchflow.models.order import OrderItem, SectionStatus
from stitchflow.models.packet import Packet, PacketItem, PacketStatus
from stitchflow.services.inventory_service import to_decimal
from stitchflow.services.state_machine import (
    PACKET_TRANSITIONS,
    refresh_order_item_status,
    transition_section,
    validate_simple_transition,
)
from stitchflow.services.timeline_service import TimelineService


logger = logging.getLogger(__name__)


class PacketService:
    """Service for packet creation, picking and verification."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.timeline = TimelineService(db)

    # ==================== QUERIES ====================

    async def get_packet(self, packet_id: uuid.UUID) -> Packet:
        packet = await self.db.get(Packet, packet_id)
        if not packet:
            raise NotFoundError(f"Packet {packet_id} not found")
        return packet

    async def get_packet_for_item(self, order_item_id: uuid.UUID) -> Optional[Packet]:
        result = await self.db.execute(select(Packet).where(Packet.order_item_id == order_item_id))
        return result.scalar_one_or_none()

    async def require_packet_for_item(self, order_item_id: uuid.UUID) -> Packet:
        packet = await self.get_packet_for_item(order_item_id)
        if not packet:
            raise NotFoundError(f"No packet found for order item {order_item_id}")
        return packet

    async def list_packets(
        self,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> List[Packet]:
        query = select(Packet).order_by(Packet.created_at.desc())
        if status:
            query = query.where(Packet.status == status)
        if assigned_to:
            query = query.where(Packet.assigned_to == assigned_to)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ==================== ASSEMBLY ====================

    async def create_or_merge(
        self,
        order_item: OrderItem,
        section_requirements: Dict[str, List[dict]],
        pending_sections: List[str],
    ) -> Packet:
        """
        Add the materials of newly passed sections to the item's packet.

        The first call creates the packet (partial when ``pending_sections`` is
        non-empty). Later calls append pick items in a new round; an order item
        never owns two packets.
        """
        packet = await self.get_packet_for_item(order_item.id)
        new_sections = list(section_requirements.keys())

        if packet is None:
            packet = Packet(
                packet_number=await self._generate_packet_number(),
                order_id=order_item.order_id,
                order_item_id=order_item.id,
                status=PacketStatus.PENDING.value,
                packet_round=1,
                is_partial=bool(pending_sections),
                sections_included=new_sections,
                sections_pending=list(pending_sections),
                current_round_sections=new_sections,
                invalidated_sections=[],
                items=[],
            )
            self.db.add(packet)
            self._append_items(packet, section_requirements, round_number=1)
            await self.db.flush()
            logger.info(
                "Packet %s created for item %s (sections %s, pending %s)",
                packet.packet_number, order_item.id, new_sections, pending_sections,
            )
        else:
            packet.packet_round += 1
            self._append_items(packet, section_requirements, round_number=packet.packet_round)
            packet.sections_included = packet.sections_included + [
                s for s in new_sections if s not in packet.sections_included
            ]
            packet.sections_pending = [s for s in pending_sections if s not in new_sections]
            packet.invalidated_sections = [s for s in packet.invalidated_sections if s not in new_sections]
            packet.current_round_sections = new_sections
            packet.is_partial = bool(packet.sections_pending)
            packet.status = validate_simple_transition(
                PACKET_TRANSITIONS, "Packet", packet.packet_number, packet.status, PacketStatus.PENDING,
            )
            await self.db.flush()
            logger.info(
                "Packet %s round %d: added %s, still pending %s",
                packet.packet_number, packet.packet_round, new_sections, packet.sections_pending,
            )

        order_item.packet_id = packet.id
        for key in new_sections:
            section = order_item.get_section(key)
            if section is not None:
                section.packet_pick_list = [
                    self._pick_list_entry(item) for item in packet.items if item.piece == key
                ]
        return packet

    @staticmethod
    def _pick_list_entry(item: PacketItem) -> dict:
        return {
            "pick_item_id": str(item.id),
            "inventory_item_id": str(item.inventory_item_id),
            "inventory_item_name": item.inventory_item_name,
            "inventory_item_sku": item.inventory_item_sku,
            "required_qty": float(item.required_qty),
            "unit": item.unit,
            "rack_location": item.rack_location,
            "added_in_round": item.added_in_round,
        }

    def _append_items(self, packet: Packet, section_requirements: Dict[str, List[dict]], round_number: int) -> None:
        position = len(packet.items)
        for section, requirements in section_requirements.items():
            for req in requirements:
                packet.items.append(PacketItem(
                    position=position,
                    inventory_item_id=req["inventory_item_id"],
                    inventory_item_name=req.get("inventory_item_name"),
                    inventory_item_sku=req.get("inventory_item_sku"),
                    required_qty=to_decimal(req["required_qty"]),
                    unit=req.get("unit") or "Unit",
                    rack_location=req.get("rack_location") or settings.DEFAULT_RACK_LOCATION,
                    piece=section,
                    added_in_round=round_number,
                ))
                position += 1

    async def remove_sections(self, order_item: OrderItem, sections: List[str], reason: str) -> Optional[Packet]:
        """
        Take sections back out of the packet after their material was returned.

        The packet is invalidated when no included section remains.
        """
        for key in sections:
            section = order_item.get_section(key)
            if section is not None:
                section.packet_pick_list = None
        packet = await self.get_packet_for_item(order_item.id)
        if packet is None:
            return None
        for item in [i for i in packet.items if i.piece in sections]:
            packet.items.remove(item)
        packet.sections_included = [s for s in packet.sections_included if s not in sections]
        packet.current_round_sections = [s for s in packet.current_round_sections if s not in sections]
        packet.sections_pending = packet.sections_pending + [s for s in sections if s not in packet.sections_pending]
        packet.invalidated_sections = packet.invalidated_sections + [
            s for s in sections if s not in packet.invalidated_sections
        ]
        packet.is_partial = bool(packet.sections_pending)
        if not packet.sections_included:
            packet.status = validate_simple_transition(
                PACKET_TRANSITIONS, "Packet", packet.packet_number, packet.status, PacketStatus.INVALIDATED,
            )
        packet.notes = reason
        await self.db.flush()
        return packet

    async def delete_for_item(self, order_item: OrderItem) -> bool:
        packet = await self.get_packet_for_item(order_item.id)
        order_item.packet_id = None
        if packet is None:
            return False
        await self.db.delete(packet)
        await self.db.flush()
        return True

    # ==================== PICKING WORKFLOW ====================

    async def assign(
        self,
        order_item: OrderItem,
        assigned_to: str,
        assigned_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Packet:
        packet = await self.require_packet_for_item(order_item.id)
        if packet.status not in (PacketStatus.PENDING.value, PacketStatus.ASSIGNED.value):
            raise InvalidStateError(
                f"Cannot assign packet in {packet.status} status",
                details={"current_status": packet.status},
            )
        packet.status = PacketStatus.ASSIGNED.value
        packet.assigned_to = assigned_to
        packet.assigned_by = assigned_by
        packet.assigned_at = datetime.now(timezone.utc)
        if notes:
            packet.notes = notes
        await self.timeline.log(
            order_item.order_id, "PACKET_ASSIGNED",
            f"Packet {packet.packet_number} assigned to {assigned_to}",
            order_item_id=order_item.id, performed_by=assigned_by,
        )
        return packet

    async def start(self, order_item: OrderItem, started_by: Optional[str] = None) -> Packet:
        packet = await self.require_packet_for_item(order_item.id)
        if packet.status != PacketStatus.ASSIGNED.value:
            raise InvalidStateError(
                f"Cannot start packet in {packet.status} status. Must be ASSIGNED.",
                details={"current_status": packet.status},
            )
        packet.status = PacketStatus.IN_PROGRESS.value
        packet.started_at = datetime.now(timezone.utc)
        await self.timeline.log(
            order_item.order_id, "PACKET_STARTED", f"Picking started for {packet.packet_number}",
            order_item_id=order_item.id, performed_by=started_by,
        )
        return packet

    async def pick_item(
        self,
        order_item: OrderItem,
        pick_item_id: uuid.UUID,
        picked_qty=None,
        notes: Optional[str] = None,
    ) -> Packet:
        packet = await self.require_packet_for_item(order_item.id)
        if packet.status != PacketStatus.IN_PROGRESS.value:
            raise InvalidStateError(
                f"Cannot pick items while packet is {packet.status}. Must be IN_PROGRESS.",
                details={"current_status": packet.status},
            )
        pick_item = next((i for i in packet.items if i.id == pick_item_id), None)
        if pick_item is None:
            raise NotFoundError(f"Pick list item {pick_item_id} not found")

        pick_item.is_picked = True
        pick_item.picked_qty = to_decimal(picked_qty) if picked_qty is not None else pick_item.required_qty
        pick_item.picked_at = datetime.now(timezone.utc)
        pick_item.notes = notes or ""
        await self.db.flush()
        return packet

    async def complete(
        self,
        order_item: OrderItem,
        completed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Packet:
        """All materials gathered; sections wait for verification."""
        packet = await self.require_packet_for_item(order_item.id)
        if packet.status != PacketStatus.IN_PROGRESS.value:
            raise InvalidStateError(
                f"Cannot complete packet in {packet.status} status. Must be IN_PROGRESS.",
                details={"current_status": packet.status},
            )
        unpicked = [i for i in packet.items if not i.is_picked]
        if unpicked:
            raise InvalidStateError(
                f"{len(unpicked)} items not yet picked. Please pick all items before completing.",
                details={"unpicked_items": [str(i.id) for i in unpicked]},
            )

        packet.status = PacketStatus.COMPLETED.value
        packet.completed_at = datetime.now(timezone.utc)
        if notes:
            packet.notes = notes

        for section in order_item.sections:
            if section.section_key in packet.sections_included and section.status == SectionStatus.INVENTORY_PASSED.value:
                transition_section(order_item, section, SectionStatus.PACKET_CREATED)
        refresh_order_item_status(order_item)

        await self.timeline.log(
            order_item.order_id, "PACKET_COMPLETED",
            f"All {packet.total_items} materials gathered. Ready for verification.",
            order_item_id=order_item.id, performed_by=completed_by,
        )
        return packet

    async def approve(
        self,
        order_item: OrderItem,
        checked_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Packet:
        """
        Verify the packet and release its sections to production.

        Sections that already moved past the packet stage (from an earlier
        round) are left alone.
        """
        packet = await self.require_packet_for_item(order_item.id)
        if packet.status != PacketStatus.COMPLETED.value:
            raise InvalidStateError(
                f"Cannot approve packet in {packet.status} status. Must be COMPLETED.",
                details={"current_status": packet.status},
            )
        now = datetime.now(timezone.utc)
        packet.status = PacketStatus.APPROVED.value
        packet.checked_by = checked_by
        packet.checked_at = now
        packet.check_result = "APPROVED"
        if notes:
            packet.notes = notes

        released = []
        for section in order_item.sections:
            if section.section_key in packet.sections_included and section.status == SectionStatus.PACKET_CREATED.value:
                transition_section(order_item, section, SectionStatus.PACKET_VERIFIED)
                transition_section(order_item, section, SectionStatus.READY_FOR_PRODUCTION)
                released.append(section.section_key)
        next_status = refresh_order_item_status(order_item)

        await self.timeline.log(
            order_item.order_id, "PACKET_APPROVED",
            f"Packet {packet.packet_number} approved. Next: {next_status}",
            order_item_id=order_item.id, performed_by=checked_by,
            details={"released_sections": released, "pending_sections": packet.sections_pending},
        )
        logger.info("Packet %s approved, released %s", packet.packet_number, released)
        return packet

    async def reject(
        self,
        order_item: OrderItem,
        reason: str,
        checked_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Packet:
        """Send the packet back for re-picking of the sections under verification."""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")
        packet = await self.require_packet_for_item(order_item.id)
        if packet.status != PacketStatus.COMPLETED.value:
            raise InvalidStateError(
                f"Cannot reject packet in {packet.status} status. Must be COMPLETED.",
                details={"current_status": packet.status},
            )

        rejected_sections = []
        for section in order_item.sections:
            if section.section_key in packet.sections_included and section.status == SectionStatus.PACKET_CREATED.value:
                transition_section(order_item, section, SectionStatus.INVENTORY_PASSED)
                rejected_sections.append(section.section_key)

        for item in packet.items:
            if item.piece in rejected_sections:
                item.is_picked = False
                item.picked_qty = to_decimal(0)
                item.picked_at = None

        packet.status = PacketStatus.ASSIGNED.value
        packet.checked_by = checked_by
        packet.checked_at = datetime.now(timezone.utc)
        packet.check_result = "REJECTED"
        packet.rejection_reason = reason
        packet.rejection_notes = notes
        packet.started_at = None
        packet.completed_at = None
        refresh_order_item_status(order_item)

        await self.timeline.log(
            order_item.order_id, "PACKET_REJECTED",
            f"Packet {packet.packet_number} rejected: {reason}",
            order_item_id=order_item.id, performed_by=checked_by,
            details={"sections": rejected_sections, "notes": notes},
        )
        logger.warning("Packet %s rejected: %s", packet.packet_number, reason)
        return packet

    async def _generate_packet_number(self) -> str:
        """Generate unique packet number: PKT-YYYYMMDD-XXXX"""
        date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
        prefix = f"PKT-{date_part}-"
        # Packets are deleted on reset, so continue from the highest number issued today
        last = await self.db.scalar(
            select(func.max(Packet.packet_number)).where(Packet.packet_number.like(f"{prefix}%"))
        )
        sequence = int(last.rsplit("-", 1)[1]) if last else 0
        return f"{prefix}{sequence + 1:04d}"

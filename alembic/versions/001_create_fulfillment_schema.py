"""Create fulfillment workflow schema

Revision ID: 001_fulfillment
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = '001_fulfillment'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)
        )
    return columns


def upgrade() -> None:
    """Create order, section, ledger, packet, procurement, production and timeline tables."""

    # ====================
    # INVENTORY LEDGER
    # ====================
    op.create_table(
        'inventory_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('sku', sa.String(100), unique=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('unit', sa.String(30), server_default='Unit', nullable=False),
        sa.Column('remaining_stock', sa.Numeric(12, 3), server_default='0', nullable=False),
        sa.Column('min_stock_level', sa.Numeric(12, 3), nullable=True),
        sa.Column('rack_location', sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_inventory_items_sku', 'inventory_items', ['sku'])

    op.create_table(
        'stock_movements',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('movement_number', sa.String(50), unique=True, nullable=False),
        sa.Column('movement_type', sa.String(50), nullable=False,
                  comment='STOCK_IN, STOCK_OUT, ORDER_RESERVATION, RESERVATION_RELEASE'),
        sa.Column('inventory_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('inventory_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False, comment='Signed: negative for outflow'),
        sa.Column('balance_before', sa.Numeric(12, 3), server_default='0'),
        sa.Column('balance_after', sa.Numeric(12, 3), server_default='0'),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('order_id', UUID(as_uuid=True), nullable=True),
        sa.Column('order_item_id', UUID(as_uuid=True), nullable=True),
        sa.Column('section', sa.String(100), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_stock_movements_movement_number', 'stock_movements', ['movement_number'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_inventory_item_id', 'stock_movements', ['inventory_item_id'])
    op.create_index('ix_stock_movements_order_id', 'stock_movements', ['order_id'])
    op.create_index('ix_stock_movements_order_item_id', 'stock_movements', ['order_item_id'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])

    op.create_table(
        'bom_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('product_id', sa.String(100), nullable=False),
        sa.Column('size', sa.String(50), nullable=True),
        sa.Column('inventory_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('inventory_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity_per_unit', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(30), server_default='Unit', nullable=False),
        sa.Column('piece', sa.String(100), nullable=False, comment='Section this material is for'),
    )
    op.create_index('ix_bom_lines_product_id', 'bom_lines', ['product_id'])

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(30), unique=True, nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('currency', sa.String(10), server_default='PKR', nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('status', sa.String(50), server_default='RECEIVED', nullable=False),
        sa.Column('payment_status', sa.String(50), server_default='PENDING', nullable=False),
        sa.Column('sent_to_client_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('client_approval_data', JSONB, nullable=True),
        sa.Column('cancellation_data', JSONB, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('receipt_ref', sa.String(500), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_order_payments_order_id', 'order_payments', ['order_id'])

    op.create_table(
        'order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(100), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=True),
        sa.Column('product_sku', sa.String(100), nullable=True),
        sa.Column('size', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('custom_bom', JSONB, nullable=True),
        sa.Column('included_items', JSONB, server_default='[]', nullable=False),
        sa.Column('selected_add_ons', JSONB, server_default='[]', nullable=False),
        sa.Column('status', sa.String(50), server_default='RECEIVED', nullable=False),
        sa.Column('form_approved', sa.Boolean, server_default='false', nullable=False),
        sa.Column('form_approved_by', sa.String(100), nullable=True),
        sa.Column('form_approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('material_requirements', JSONB, nullable=True),
        sa.Column('stock_deductions', JSONB, nullable=True),
        sa.Column('last_inventory_check', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sections_inventory_checked', JSONB, nullable=True),
        sa.Column('packet_id', UUID(as_uuid=True), nullable=True),
        sa.Column('video_data', JSONB, nullable=True),
        sa.Column('archived_video_data', JSONB, nullable=True),
        sa.Column('re_video_request', JSONB, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])
    op.create_index('ix_order_items_status', 'order_items', ['status'])

    op.create_table(
        'order_item_sections',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_key', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('position', sa.Integer, server_default='0', nullable=False),
        sa.Column('status', sa.String(50), server_default='PENDING_INVENTORY_CHECK', nullable=False),
        sa.Column('status_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('inventory_check_result', JSONB, nullable=True),
        sa.Column('packet_pick_list', JSONB, nullable=True),
        sa.Column('production_task_id', UUID(as_uuid=True), nullable=True),
        sa.Column('qa_status', sa.String(50), nullable=True),
        sa.Column('qa_data', JSONB, nullable=True),
        sa.Column('archived_qa_data', JSONB, nullable=True),
        sa.Column('is_alteration', sa.Boolean, server_default='false', nullable=False),
        sa.Column('alteration_notes', sa.Text, nullable=True),
        sa.Column('alteration_requested_by', sa.String(100), nullable=True),
        sa.Column('alteration_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dyeing_round', sa.Integer, server_default='1', nullable=False),
        sa.Column('dyeing_rejection_reason', sa.Text, nullable=True),
        sa.Column('dyeing_rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_to_client_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('client_approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('order_item_id', 'section_key', name='uq_order_item_section_key'),
    )
    op.create_index('ix_order_item_sections_order_item_id', 'order_item_sections', ['order_item_id'])
    op.create_index('ix_order_item_sections_status', 'order_item_sections', ['status'])

    # ====================
    # PACKETS
    # ====================
    op.create_table(
        'packets',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('packet_number', sa.String(30), unique=True, nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('order_items.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('status', sa.String(50), server_default='PENDING', nullable=False),
        sa.Column('is_partial', sa.Boolean, server_default='false', nullable=False),
        sa.Column('packet_round', sa.Integer, server_default='1', nullable=False),
        sa.Column('sections_included', JSONB, server_default='[]', nullable=False),
        sa.Column('sections_pending', JSONB, server_default='[]', nullable=False),
        sa.Column('current_round_sections', JSONB, server_default='[]', nullable=False),
        sa.Column('invalidated_sections', JSONB, server_default='[]', nullable=False),
        sa.Column('assigned_to', sa.String(100), nullable=True),
        sa.Column('assigned_by', sa.String(100), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('checked_by', sa.String(100), nullable=True),
        sa.Column('checked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('check_result', sa.String(50), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('rejection_notes', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_packets_packet_number', 'packets', ['packet_number'])
    op.create_index('ix_packets_order_id', 'packets', ['order_id'])
    op.create_index('ix_packets_status', 'packets', ['status'])

    op.create_table(
        'packet_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('packet_id', UUID(as_uuid=True), sa.ForeignKey('packets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer, server_default='0', nullable=False),
        sa.Column('inventory_item_id', UUID(as_uuid=True), nullable=False),
        sa.Column('inventory_item_name', sa.String(255), nullable=True),
        sa.Column('inventory_item_sku', sa.String(100), nullable=True),
        sa.Column('required_qty', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(30), server_default='Unit', nullable=False),
        sa.Column('rack_location', sa.String(50), nullable=True),
        sa.Column('piece', sa.String(100), nullable=False, comment='Section key'),
        sa.Column('is_picked', sa.Boolean, server_default='false', nullable=False),
        sa.Column('picked_qty', sa.Numeric(12, 3), server_default='0', nullable=False),
        sa.Column('picked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('added_in_round', sa.Integer, server_default='1', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
    )
    op.create_index('ix_packet_items_packet_id', 'packet_items', ['packet_id'])

    # ====================
    # PROCUREMENT
    # ====================
    op.create_table(
        'procurement_demands',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('demand_number', sa.String(30), unique=True, nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inventory_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('inventory_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('inventory_item_name', sa.String(255), nullable=True),
        sa.Column('inventory_item_sku', sa.String(100), nullable=True),
        sa.Column('required_qty', sa.Numeric(12, 3), nullable=False),
        sa.Column('available_qty', sa.Numeric(12, 3), nullable=False),
        sa.Column('shortage_qty', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(30), server_default='Unit', nullable=False),
        sa.Column('affected_section', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), server_default='OPEN', nullable=False,
                  comment='OPEN, ORDERED, RECEIVED, FULFILLED, CANCELLED'),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.Column('fulfilled_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_procurement_demands_demand_number', 'procurement_demands', ['demand_number'])
    op.create_index('ix_procurement_demands_order_id', 'procurement_demands', ['order_id'])
    op.create_index('ix_procurement_demands_order_item_id', 'procurement_demands', ['order_item_id'])
    op.create_index('ix_procurement_demands_inventory_item_id', 'procurement_demands', ['inventory_item_id'])
    op.create_index('ix_procurement_demands_affected_section', 'procurement_demands', ['affected_section'])
    op.create_index('ix_procurement_demands_status', 'procurement_demands', ['status'])

    # ====================
    # PRODUCTION
    # ====================
    op.create_table(
        'production_assignments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_to', sa.String(100), nullable=False),
        sa.Column('assigned_by', sa.String(100), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_production_assignments_order_id', 'production_assignments', ['order_id'])
    op.create_index('ix_production_assignments_order_item_id', 'production_assignments', ['order_item_id'])

    op.create_table(
        'production_tasks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('assignment_id', UUID(as_uuid=True),
                  sa.ForeignKey('production_assignments.id', ondelete='CASCADE'), nullable=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_key', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), server_default='PENDING', nullable=False),
        sa.Column('worker', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_production_tasks_assignment_id', 'production_tasks', ['assignment_id'])
    op.create_index('ix_production_tasks_order_id', 'production_tasks', ['order_id'])
    op.create_index('ix_production_tasks_order_item_id', 'production_tasks', ['order_item_id'])

    # ====================
    # TIMELINE
    # ====================
    op.create_table(
        'timeline_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('performed_by', sa.String(100), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('details', JSONB, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_timeline_entries_order_id', 'timeline_entries', ['order_id'])
    op.create_index('ix_timeline_entries_order_item_id', 'timeline_entries', ['order_item_id'])
    op.create_index('ix_timeline_entries_action', 'timeline_entries', ['action'])
    op.create_index('ix_timeline_entries_created_at', 'timeline_entries', ['created_at'])


def downgrade() -> None:
    """Drop all fulfillment tables in reverse dependency order."""
    for table in (
        'timeline_entries',
        'production_tasks',
        'production_assignments',
        'procurement_demands',
        'packet_items',
        'packets',
        'order_item_sections',
        'order_items',
        'order_payments',
        'orders',
        'bom_lines',
        'stock_movements',
        'inventory_items',
    ):
        op.drop_table(table)

"""Create procurement core tables

Revision ID: 001_procurement_core
Revises:
Create Date: 2026-10-18

Tables:
- vendors, facilities, catalog_items (master data, read-only for this service)
- document_sequences, document_sequence_audit
- purchase_orders, purchase_order_items, po_approvals
- purchase_order_edits, purchase_order_edit_items
- sku_splits
- goods_receipt_notes, grn_lines, grn_batches, grn_photos
- inventory_ledger
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_procurement_core'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)
        )
    return columns


def upgrade():
    """Create procurement core tables"""

    # ====================
    # MASTER DATA
    # ====================
    op.create_table(
        'vendors',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('code', sa.String(30), unique=True, nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_vendors_code', 'vendors', ['code'])

    op.create_table(
        'facilities',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('code', sa.String(30), unique=True, nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_facilities_code', 'facilities', ['code'])

    op.create_table(
        'catalog_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('catalogue_code', sa.String(20), unique=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('hsn_code', sa.String(20), nullable=True),
        sa.Column('gst_rate', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('mrp', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('weight', sa.Numeric(10, 3), nullable=True),
        sa.Column('length', sa.Numeric(10, 2), nullable=True),
        sa.Column('width', sa.Numeric(10, 2), nullable=True),
        sa.Column('height', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_catalog_items_catalogue_code', 'catalog_items', ['catalogue_code'])

    # ====================
    # DOCUMENT SEQUENCES
    # ====================
    op.create_table(
        'document_sequences',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('company_code', sa.String(10), nullable=False),
        sa.Column('financial_year', sa.String(10), nullable=False),
        sa.Column('current_number', sa.Integer, server_default='0', nullable=False),
        sa.Column('padding_length', sa.Integer, server_default='5', nullable=False),
        sa.Column('separator', sa.String(5), server_default='/', nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('document_type', 'financial_year', name='uq_document_type_fy'),
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])

    op.create_table(
        'document_sequence_audit',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('financial_year', sa.String(10), nullable=False),
        sa.Column('old_number', sa.Integer, nullable=False),
        sa.Column('new_number', sa.Integer, nullable=False),
        sa.Column('document_number', sa.String(50), nullable=False),
        sa.Column('requested_by', sa.String(100), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_document_sequence_audit_document_type', 'document_sequence_audit', ['document_type'])

    # ====================
    # PURCHASE ORDERS
    # ====================
    op.create_table(
        'purchase_orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('po_number', sa.String(30), unique=True, nullable=False),
        sa.Column('status', sa.String(50), server_default='DRAFT', nullable=False),
        sa.Column('priority', sa.String(20), server_default='MEDIUM', nullable=False),
        sa.Column('is_edited', sa.Boolean, server_default='false', nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('facility_id', UUID(as_uuid=True), sa.ForeignKey('facilities.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('expected_delivery_date', sa.Date, nullable=True),
        sa.Column('pi_notes', sa.Text, nullable=True),
        sa.Column('pi_file_url', sa.String(500), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('updated_by', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_purchase_orders_po_number', 'purchase_orders', ['po_number'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_vendor_id', 'purchase_orders', ['vendor_id'])
    op.create_index('ix_purchase_orders_facility_id', 'purchase_orders', ['facility_id'])
    op.create_index('ix_po_vendor_status', 'purchase_orders', ['vendor_id', 'status'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('catalog_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('catalog_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('line_number', sa.Integer, server_default='1', nullable=False),
        sa.Column('catalogue_code', sa.String(20), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('hsn_code', sa.String(20), nullable=True),
        sa.Column('gst_rate', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('mrp', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('weight', sa.Numeric(10, 3), nullable=True),
        sa.Column('length', sa.Numeric(10, 2), nullable=True),
        sa.Column('width', sa.Numeric(10, 2), nullable=True),
        sa.Column('height', sa.Numeric(10, 2), nullable=True),
        sa.Column('quantity_ordered', sa.Integer, nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint('quantity_ordered > 0', name='chk_po_item_qty_positive'),
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])
    op.create_index('ix_po_item_po_catalogue', 'purchase_order_items', ['purchase_order_id', 'catalogue_code'])

    op.create_table(
        'po_approvals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(30), nullable=False),
        sa.Column('action', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('comments', sa.Text, nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('purchase_order_id', 'role', name='uq_po_approval_role'),
    )
    op.create_index('ix_po_approvals_purchase_order_id', 'po_approvals', ['purchase_order_id'])

    op.create_table(
        'purchase_order_edits',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('status_at_edit', sa.String(50), nullable=False),
        sa.Column('priority', sa.String(20), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('expected_delivery_date', sa.Date, nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('edited_by', sa.String(100), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        'purchase_order_edit_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('edit_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_order_edits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('catalog_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('catalog_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('catalogue_code', sa.String(20), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(14, 2), nullable=False),
    )
    op.create_index('ix_purchase_order_edit_items_edit_id', 'purchase_order_edit_items', ['edit_id'])

    # ====================
    # SKU SPLITS
    # ====================
    op.create_table(
        'sku_splits',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('catalog_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('catalog_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('catalogue_code', sa.String(20), nullable=False),
        sa.Column('unit_code', sa.String(20), unique=True, nullable=False),
        sa.Column('split_quantity', sa.Integer, nullable=False),
        sa.Column('ordered_quantity', sa.Integer, nullable=False),
        sa.Column('splitting_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('received_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('ready_for_receipt', sa.Boolean, server_default='true', nullable=False),
        sa.Column('receipt_completed', sa.Boolean, server_default='false', nullable=False),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('updated_by', JSONB, server_default='[]', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('split_quantity > 0', name='chk_split_qty_positive'),
        sa.CheckConstraint('received_quantity <= split_quantity', name='chk_split_received_le_split'),
    )
    op.create_index('ix_sku_splits_purchase_order_id', 'sku_splits', ['purchase_order_id'])
    op.create_index('ix_sku_splits_unit_code', 'sku_splits', ['unit_code'])
    op.create_index('ix_sku_split_po_catalogue', 'sku_splits', ['purchase_order_id', 'catalogue_code'])

    # ====================
    # GOODS RECEIPT
    # ====================
    op.create_table(
        'goods_receipt_notes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('grn_number', sa.String(30), unique=True, nullable=False),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='RESTRICT'), unique=True, nullable=False),
        sa.Column('facility_id', UUID(as_uuid=True),
                  sa.ForeignKey('facilities.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(20), server_default='partial', nullable=False),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_goods_receipt_notes_grn_number', 'goods_receipt_notes', ['grn_number'])

    op.create_table(
        'grn_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('grn_id', UUID(as_uuid=True),
                  sa.ForeignKey('goods_receipt_notes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sku_id', sa.String(20), nullable=False),
        sa.Column('catalog_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('catalog_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('catalogue_code', sa.String(20), nullable=False),
        sa.Column('ordered_quantity', sa.Integer, nullable=False),
        sa.Column('received_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('pending_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('rejected_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('qc_pass_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('qc_fail_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('held_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('rtv_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('line_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('putaway_status', sa.String(30), nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('grn_id', 'sku_id', name='uq_grn_line_sku'),
        sa.CheckConstraint('received_quantity <= ordered_quantity', name='chk_grn_received_le_ordered'),
        sa.CheckConstraint('qc_pass_quantity <= received_quantity', name='chk_grn_qc_pass_le_received'),
    )
    op.create_index('ix_grn_lines_grn_id', 'grn_lines', ['grn_id'])

    op.create_table(
        'grn_batches',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('grn_line_id', UUID(as_uuid=True),
                  sa.ForeignKey('grn_lines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('batch_no', sa.String(60), nullable=False),
        sa.Column('expiry_date', sa.Date, nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_grn_batches_grn_line_id', 'grn_batches', ['grn_line_id'])

    op.create_table(
        'grn_photos',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('grn_line_id', UUID(as_uuid=True),
                  sa.ForeignKey('grn_lines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.String(500), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_grn_photos_grn_line_id', 'grn_photos', ['grn_line_id'])

    # ====================
    # INVENTORY LEDGER
    # ====================
    op.create_table(
        'inventory_ledger',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('sku', sa.String(20), nullable=False),
        sa.Column('facility_id', UUID(as_uuid=True),
                  sa.ForeignKey('facilities.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('po_raise_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('po_approve_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('grn_done_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_available_quantity', sa.Integer, server_default='0', nullable=False),
        sa.Column('grn_done_by_unit', JSONB, server_default='{}', nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('sku', 'facility_id', name='uq_inventory_ledger_sku_facility'),
        sa.CheckConstraint('po_raise_quantity >= 0', name='chk_ledger_raise_non_negative'),
        sa.CheckConstraint('po_approve_quantity >= 0', name='chk_ledger_approve_non_negative'),
        sa.CheckConstraint('grn_done_quantity >= 0', name='chk_ledger_grn_non_negative'),
    )
    op.create_index('ix_inventory_ledger_sku', 'inventory_ledger', ['sku'])
    op.create_index('ix_inventory_ledger_facility_id', 'inventory_ledger', ['facility_id'])


def downgrade():
    """Drop procurement core tables"""
    op.drop_table('inventory_ledger')
    op.drop_table('grn_photos')
    op.drop_table('grn_batches')
    op.drop_table('grn_lines')
    op.drop_table('goods_receipt_notes')
    op.drop_table('sku_splits')
    op.drop_table('purchase_order_edit_items')
    op.drop_table('purchase_order_edits')
    op.drop_table('po_approvals')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('document_sequence_audit')
    op.drop_table('document_sequences')
    op.drop_table('catalog_items')
    op.drop_table('facilities')
    op.drop_table('vendors')

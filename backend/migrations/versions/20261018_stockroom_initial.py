"""Initial stockroom schema: tenancy, inventory, sales, forecasting, procurement

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. Businesses, branches and staff (tenant root and actors)
2. Categories, suppliers, per-branch product records and stock movements
3. Sales and sale lines (history read by the forecaster)
4. Lead time overrides and per-business forecasting policy
5. Document sequences and the procurement event ledger
6. Supplier requests, purchase orders, goods received notes
7. Expenses, supplier invoices and invoice lines
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated=True):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]
    if updated:
        cols.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)
        )
    return cols


def upgrade():
    # ==========================================================================
    # 1. TENANCY
    # ==========================================================================
    op.create_table('businesses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'name', name='uq_branches_business_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('branches', schema=None) as batch_op:
        batch_op.create_index('ix_branches_business_id', ['business_id'], unique=False)

    op.create_table('staff',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'email', name='uq_staff_business_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('staff', schema=None) as batch_op:
        batch_op.create_index('ix_staff_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_staff_branch_id', ['branch_id'], unique=False)

    # ==========================================================================
    # 2. CATALOG AND STOCK
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'name', name='uq_categories_business_name'),
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index('ix_categories_business_id', ['business_id'], unique=False)

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_name', sa.String(length=255), nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('contact_phone', sa.String(length=64), nullable=True),
        sa.Column('whatsapp_number', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('suppliers', schema=None) as batch_op:
        batch_op.create_index('ix_suppliers_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_suppliers_business_active', ['business_id', 'is_active'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('cost_price_cents', sa.Integer(), nullable=True),
        sa.Column('retail_price_cents', sa.Integer(), nullable=True),
        sa.Column('wholesale_price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'sku', name='uq_products_branch_sku'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_products_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_products_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_products_branch_name', ['branch_id', 'name'], unique=False)
        batch_op.create_index('ix_products_branch_active', ['branch_id', 'is_active'], unique=False)

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('performed_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['performed_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_stock_movements_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_stock_movements_source', ['source'], unique=False)
        batch_op.create_index('ix_stock_movements_product_time', ['product_id', 'occurred_at'], unique=False)
        batch_op.create_index('ix_stock_movements_reference', ['reference_type', 'reference_id'], unique=False)

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sale_number', sa.String(length=32), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'sale_number', name='uq_sales_business_number'),
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_sales_branch_time', ['branch_id', 'occurred_at'], unique=False)

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('sale_lines', schema=None) as batch_op:
        batch_op.create_index('ix_sale_lines_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_lines_product_id', ['product_id'], unique=False)

    # ==========================================================================
    # 4. FORECASTING
    # ==========================================================================
    op.create_table('lead_time_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('scope', sa.String(length=16), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('lead_time_days', sa.Integer(), nullable=False),
        sa.Column('updated_by_staff_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['updated_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'product_id', name='uq_lead_time_business_product'),
        sa.UniqueConstraint('business_id', 'supplier_id', name='uq_lead_time_business_supplier'),
        sa.CheckConstraint('lead_time_days > 0', name='ck_lead_time_positive'),
    )
    with op.batch_alter_table('lead_time_configs', schema=None) as batch_op:
        batch_op.create_index('ix_lead_time_configs_business_id', ['business_id'], unique=False)

    op.create_table('forecasting_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('default_sales_period_days', sa.Integer(), nullable=False),
        sa.Column('reorder_cycle_days', sa.Integer(), nullable=False),
        sa.Column('default_lead_time_days', sa.Integer(), nullable=False),
        sa.Column('reorder_soon_multiplier', sa.Float(), nullable=False),
        sa.Column('slow_moving_max_daily_sales', sa.Float(), nullable=False),
        sa.Column('slow_moving_min_stock', sa.Integer(), nullable=False),
        sa.Column('updated_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['updated_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id'),
    )

    # ==========================================================================
    # 5. DOCUMENT NUMBERING AND LEDGER
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'document_type', name='uq_doc_sequences_business_type'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_sequences', schema=None) as batch_op:
        batch_op.create_index('ix_document_sequences_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_document_sequences_document_type', ['document_type'], unique=False)

    op.create_table('procurement_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=True),
        sa.Column('actor_staff_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        *_timestamps(updated=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['actor_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('procurement_events', schema=None) as batch_op:
        batch_op.create_index('ix_procurement_events_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_procurement_events_event_type', ['event_type'], unique=False)
        batch_op.create_index('ix_procurement_events_actor_staff_id', ['actor_staff_id'], unique=False)
        batch_op.create_index('ix_procurement_events_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index('ix_procurement_events_business_occurred', ['business_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 6. SUPPLIER REQUESTS, PURCHASE ORDERS, GOODS RECEIVED
    # ==========================================================================
    op.create_table('supplier_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('communication_methods', sa.JSON(), nullable=False),
        sa.Column('custom_message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Sent'),
        sa.Column('sent_via', sa.JSON(), nullable=True),
        sa.Column('conversion_status', sa.String(length=16), nullable=False, server_default='Requested'),
        sa.Column('converted_to_po_id', sa.Integer(), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('converted_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_reason', sa.String(length=255), nullable=True),
        sa.Column('created_by_staff_id', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['converted_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['created_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('requested_quantity > 0', name='ck_supplier_requests_quantity_positive'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('supplier_requests', schema=None) as batch_op:
        batch_op.create_index('ix_supplier_requests_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_supplier_requests_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_supplier_requests_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_supplier_requests_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_supplier_requests_conversion_status', ['conversion_status'], unique=False)
        batch_op.create_index(
            'uq_supplier_requests_active_product',
            ['branch_id', 'product_id'],
            unique=True,
            sqlite_where=sa.text("conversion_status = 'Requested'"),
            postgresql_where=sa.text("conversion_status = 'Requested'"),
        )

    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Draft'),
        sa.Column('expected_delivery_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('source_request_id', sa.Integer(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_via', sa.JSON(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_reason', sa.String(length=255), nullable=True),
        sa.Column('created_by_staff_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['approved_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['created_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'po_number', name='uq_purchase_orders_business_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_orders', schema=None) as batch_op:
        batch_op.create_index('ix_purchase_orders_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_purchase_orders_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_purchase_orders_branch_status', ['branch_id', 'status'], unique=False)

    op.create_table('purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('total_cost_cents', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'product_id', name='uq_po_lines_order_product'),
        sa.CheckConstraint('requested_quantity > 0', name='ck_po_lines_quantity_positive'),
    )
    with op.batch_alter_table('purchase_order_lines', schema=None) as batch_op:
        batch_op.create_index('ix_purchase_order_lines_purchase_order_id', ['purchase_order_id'], unique=False)

    op.create_table('goods_received_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('grn_number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('received_by_staff_id', sa.Integer(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_by_staff_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['received_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['confirmed_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'grn_number', name='uq_grn_business_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('goods_received_notes', schema=None) as batch_op:
        batch_op.create_index('ix_goods_received_notes_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_goods_received_notes_purchase_order_id', ['purchase_order_id'], unique=False)
        batch_op.create_index('ix_grn_branch_status', ['branch_id', 'status'], unique=False)

    op.create_table('goods_received_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('grn_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('ordered_quantity', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['grn_id'], ['goods_received_notes.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'received_quantity >= 0 AND received_quantity <= ordered_quantity',
            name='ck_grn_lines_received_within_ordered',
        ),
    )
    with op.batch_alter_table('goods_received_lines', schema=None) as batch_op:
        batch_op.create_index('ix_goods_received_lines_grn_id', ['grn_id'], unique=False)

    # ==========================================================================
    # 7. EXPENSES AND SUPPLIER INVOICES
    # ==========================================================================
    op.create_table('expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('source_type', sa.String(length=32), nullable=True),
        sa.Column('source_reference_id', sa.Integer(), nullable=True),
        sa.Column('source_reference_number', sa.String(length=64), nullable=True),
        sa.Column('is_system_generated', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_by_staff_id', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['created_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_type', 'source_reference_id', name='uq_expenses_source'),
    )
    with op.batch_alter_table('expenses', schema=None) as batch_op:
        batch_op.create_index('ix_expenses_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_expenses_business_date', ['business_id', 'expense_date'], unique=False)

    op.create_table('supplier_invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('grn_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_staff_id', sa.Integer(), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('linked_expense_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['grn_id'], ['goods_received_notes.id'], ),
        sa.ForeignKeyConstraint(['created_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['approved_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['paid_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['linked_expense_id'], ['expenses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('grn_id', name='uq_supplier_invoices_grn'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('supplier_invoices', schema=None) as batch_op:
        batch_op.create_index('ix_supplier_invoices_business_id', ['business_id'], unique=False)
        batch_op.create_index('ix_supplier_invoices_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_supplier_invoices_business_status', ['business_id', 'status'], unique=False)

    op.create_table('supplier_invoice_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['invoice_id'], ['supplier_invoices.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_id', 'product_id', name='uq_invoice_lines_invoice_product'),
    )
    with op.batch_alter_table('supplier_invoice_lines', schema=None) as batch_op:
        batch_op.create_index('ix_supplier_invoice_lines_invoice_id', ['invoice_id'], unique=False)


def downgrade():
    for table in (
        'supplier_invoice_lines',
        'supplier_invoices',
        'expenses',
        'goods_received_lines',
        'goods_received_notes',
        'purchase_order_lines',
        'purchase_orders',
        'supplier_requests',
        'procurement_events',
        'document_sequences',
        'forecasting_configs',
        'lead_time_configs',
        'sale_lines',
        'sales',
        'stock_movements',
        'products',
        'suppliers',
        'categories',
        'staff',
        'branches',
        'businesses',
    ):
        op.drop_table(table)

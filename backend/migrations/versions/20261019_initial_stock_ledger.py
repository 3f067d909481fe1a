"""Initial schema: catalog, supplier pricing, stock movement ledger, settings

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Taxes, categories, suppliers
2. Products and product variants (version_id optimistic locking)
3. Stock movements (append-only ledger, one chain per product/variant target)
4. Supplier prices, supplier price history, variant supplier exclusions
5. Selling price history
6. Settings singleton
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None

MOVEMENT_TYPES = ('in', 'out', 'adjustment', 'transfer', 'return')


def upgrade():
    # ==========================================================================
    # 1. REFERENCE TABLES
    # ==========================================================================
    op.create_table('taxes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('rate', sa.Float(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('categories',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.String(length=64), nullable=True),
        sa.Column('color', sa.String(length=16), nullable=False, server_default='#6B7280'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_categories_parent_id'), ['parent_id'], unique=False)

    op.create_table('suppliers',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('postal_code', sa.String(length=32), nullable=True),
        sa.Column('country', sa.String(length=80), nullable=False, server_default='France'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # ==========================================================================
    # 2. PRODUCTS & VARIANTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.String(length=64), nullable=True),
        sa.Column('cost_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('margin_percent', sa.Float(), nullable=False, server_default='30'),
        sa.Column('tax_id', sa.String(length=64), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_min', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_max', sa.Integer(), nullable=True),
        sa.Column('unit', sa.String(length=24), nullable=False, server_default='unit'),
        sa.Column('supplier_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('stock_max IS NULL OR stock_max >= stock_min', name='ck_products_stock_thresholds'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['tax_id'], ['taxes.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_barcode'), ['barcode'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index('ix_products_active_name', ['is_active', 'name'], unique=False)

    op.create_table('product_variants',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('cost_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('margin_percent', sa.Float(), nullable=False, server_default='30'),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('tax_id', sa.String(length=64), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_min', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_max', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_variants_stock_non_negative'),
        sa.CheckConstraint('stock_max IS NULL OR stock_max >= stock_min', name='ck_variants_stock_thresholds'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tax_id'], ['taxes.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_variants_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 3. STOCK MOVEMENT LEDGER
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('variant_id', sa.String(length=64), nullable=True),
        sa.Column('type', sa.Enum(*MOVEMENT_TYPES, name='stock_movement_type', native_enum=False,
                                  create_constraint=True, length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Float(), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('supplier_id', sa.String(length=64), nullable=True),
        sa.Column('correlation_id', sa.String(length=64), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock_before >= 0 AND stock_after >= 0', name='ck_movements_non_negative'),
        sa.CheckConstraint('quantity <> 0', name='ck_movements_quantity_non_zero'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_movements_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_variant_id'), ['variant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_reference'), ['reference'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_correlation_id'), ['correlation_id'], unique=False)
        batch_op.create_index('ix_movements_target_sequence', ['product_id', 'variant_id', 'sequence'], unique=False)
        batch_op.create_index('ix_movements_created', ['created_at'], unique=False)

    # ==========================================================================
    # 4. SUPPLIER PRICING
    # ==========================================================================
    op.create_table('supplier_prices',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('supplier_id', sa.String(length=64), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('min_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('lead_time_days', sa.Integer(), nullable=True),
        sa.Column('supplier_sku', sa.String(length=64), nullable=True),
        sa.Column('purchase_url', sa.String(length=512), nullable=True),
        sa.Column('is_preferred', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('supplier_prices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_supplier_prices_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_supplier_prices_supplier_id'), ['supplier_id'], unique=False)

    op.create_table('supplier_price_history',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('supplier_price_id', sa.String(length=64), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['supplier_price_id'], ['supplier_prices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('supplier_price_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_supplier_price_history_supplier_price_id'), ['supplier_price_id'], unique=False)

    op.create_table('variant_supplier_exclusions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('variant_id', sa.String(length=64), nullable=False),
        sa.Column('supplier_price_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['supplier_price_id'], ['supplier_prices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('variant_id', 'supplier_price_id', name='uq_variant_supplier_exclusion'),
    )
    with op.batch_alter_table('variant_supplier_exclusions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_variant_supplier_exclusions_variant_id'), ['variant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_variant_supplier_exclusions_supplier_price_id'), ['supplier_price_id'], unique=False)

    # ==========================================================================
    # 5. SELLING PRICE HISTORY
    # ==========================================================================
    op.create_table('selling_price_history',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('variant_id', sa.String(length=64), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('selling_price_history', schema=None) as batch_op:
        batch_op.create_index('ix_selling_price_history_target', ['product_id', 'variant_id', 'created_at'], unique=False)

    # ==========================================================================
    # 6. SETTINGS
    # ==========================================================================
    op.create_table('settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_name', sa.String(length=160), nullable=False, server_default='OpenStock Inc.'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('default_margin', sa.Float(), nullable=False, server_default='30'),
        sa.Column('low_stock_alert', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('out_of_stock_alert', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('email_daily_report', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('settings')
    with op.batch_alter_table('selling_price_history', schema=None) as batch_op:
        batch_op.drop_index('ix_selling_price_history_target')
    op.drop_table('selling_price_history')
    op.drop_table('variant_supplier_exclusions')
    op.drop_table('supplier_price_history')
    op.drop_table('supplier_prices')
    op.drop_table('stock_movements')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('suppliers')
    op.drop_table('categories')
    op.drop_table('taxes')

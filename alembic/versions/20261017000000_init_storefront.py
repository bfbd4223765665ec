from alembic import op
import sqlalchemy as sa

revision = "20261017000000"
down_revision = None

ORDER_STATUS = sa.Enum("PENDING", "CONFIRMED", "SHIPPED", "DELIVERED", "CANCELLED", name="orderstatus")
DISCOUNT_TYPE = sa.Enum("PERCENTAGE", "FIXED_AMOUNT", name="discounttype")

def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=240), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('status', ORDER_STATUS, nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('discount_code', sa.String(length=64), nullable=True),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.String(length=36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('product_name', sa.String(length=240), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
    )
    op.create_table(
        'coupons',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('discount_type', DISCOUNT_TYPE, nullable=False),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=True),
        sa.Column('used_by', sa.String(length=64), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

def downgrade():
    op.drop_index('ix_coupons_code', table_name='coupons')
    op.drop_table('coupons')
    op.drop_table('order_items')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_table('products')
    DISCOUNT_TYPE.drop(op.get_bind(), checkfirst=True)
    ORDER_STATUS.drop(op.get_bind(), checkfirst=True)

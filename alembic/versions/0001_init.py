from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'inventory',
        sa.Column('product_id', sa.String(100), primary_key=True),
        sa.Column('available_quantity', sa.Integer, nullable=False, server_default='0', index=True),
        sa.Column('reserved_quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('warehouse_location', sa.String(100), nullable=False, index=True),
        sa.Column('last_updated_timestamp', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.CheckConstraint('available_quantity >= 0', name='ck_inventory_available_non_negative'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_inventory_reserved_non_negative'),
        sa.CheckConstraint('total_quantity >= 0', name='ck_inventory_total_non_negative'),
    )

def downgrade():
    op.drop_table('inventory')

from alembic import op
import sqlalchemy as sa

revision = '0002_reservations'
down_revision = '0001_init'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'reservations',
        sa.Column('reservation_id', sa.String(100), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'reservation_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('reservation_id', sa.String(100), sa.ForeignKey('reservations.reservation_id'), nullable=False, index=True),
        sa.Column('position', sa.Integer, nullable=False),
        sa.Column('product_id', sa.String(100), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('committed', sa.Boolean, nullable=False, server_default=sa.false()),
    )

def downgrade():
    op.drop_table('reservation_items')
    op.drop_table('reservations')

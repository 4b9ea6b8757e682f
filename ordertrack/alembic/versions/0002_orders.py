from alembic import op
import sqlalchemy as sa

revision = '0002_orders'
down_revision = '0001_master_data'
branch_labels = None
depends_on = None

NOW = sa.text('CURRENT_TIMESTAMP')

ORDER_STATUSES = ('NEW', 'IN_PROGRESS', 'READY', 'DELIVERED', 'CANCELLED')


def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.String(20), primary_key=True),
        sa.Column('order_number', sa.String(9), nullable=False, unique=True),
        sa.Column('customer_id', sa.String(20), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('product_type_id', sa.String(40), sa.ForeignKey('product_types.id'), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer, nullable=True),
        sa.Column(
            'status',
            sa.Enum(*ORDER_STATUSES, native_enum=False, create_constraint=True,
                    length=20, name='order_status'),
            nullable=False,
            server_default='NEW',
        ),
        sa.Column('process_stage', sa.String(200), nullable=False, server_default=''),
        sa.Column('current_vendor_id', sa.String(20), sa.ForeignKey('vendors.id'), nullable=True),
        sa.Column('received_date', sa.DateTime, nullable=False),
        sa.Column('promised_date', sa.DateTime, nullable=False),
        sa.Column('internal_due_date', sa.DateTime, nullable=True),
        sa.Column('delivered_at', sa.DateTime, nullable=True),
        sa.Column('notes', sa.Text, nullable=False, server_default=''),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_test', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=NOW),
    )


def downgrade():
    op.drop_table('orders')

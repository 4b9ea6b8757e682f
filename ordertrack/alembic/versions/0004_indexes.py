from alembic import op

revision = '0004_indexes'
down_revision = '0003_order_ledger'
branch_labels = None
depends_on = None

# Filters, control-tower sorting and ledger timelines
INDEXES = (
    ('idx_orders_status', 'orders', ['status']),
    ('idx_orders_promised_date', 'orders', ['promised_date']),
    ('idx_orders_current_vendor_id', 'orders', ['current_vendor_id']),
    ('idx_orders_product_type_id', 'orders', ['product_type_id']),
    ('idx_orders_customer_id', 'orders', ['customer_id']),
    ('idx_orders_updated_at', 'orders', ['updated_at']),
    ('idx_ledger_order_occurred', 'order_ledger_entries', ['order_id', 'occurred_at']),
)


def upgrade():
    for name, table, columns in INDEXES:
        op.create_index(name, table, columns)


def downgrade():
    for name, table, _ in reversed(INDEXES):
        op.drop_index(name, table_name=table)

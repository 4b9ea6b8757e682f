from alembic import op
import sqlalchemy as sa

revision = '0003_order_ledger'
down_revision = '0002_orders'
branch_labels = None
depends_on = None

LEDGER_EVENT_TYPES = (
    'ORDER_CREATED', 'ORDER_UPDATED', 'STATUS_CHANGED', 'VENDOR_CHANGED',
    'DELIVERED_MARKED', 'CANCELLED_MARKED', 'SOFT_DELETED', 'RESTORED',
)

SQLITE_TRIGGERS = (
    """
    CREATE TRIGGER ledger_no_update
    BEFORE UPDATE ON order_ledger_entries
    BEGIN
      SELECT RAISE(ABORT, 'order_ledger_entries rows are immutable: updates not allowed');
    END
    """,
    """
    CREATE TRIGGER ledger_no_delete
    BEFORE DELETE ON order_ledger_entries
    BEGIN
      SELECT RAISE(ABORT, 'order_ledger_entries rows are immutable: deletes not allowed');
    END
    """,
)

POSTGRES_TRIGGERS = (
    """
    CREATE OR REPLACE FUNCTION order_ledger_entries_immutable() RETURNS trigger AS $$
    BEGIN
      RAISE EXCEPTION 'order_ledger_entries rows are immutable: updates and deletes not allowed';
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE TRIGGER ledger_no_update_or_delete
    BEFORE UPDATE OR DELETE ON order_ledger_entries
    FOR EACH ROW EXECUTE FUNCTION order_ledger_entries_immutable()
    """,
)


def upgrade():
    op.create_table(
        'order_ledger_entries',
        sa.Column('id', sa.String(20), primary_key=True),
        sa.Column('order_id', sa.String(20), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('actor_user_id', sa.String(20), sa.ForeignKey('users.id'), nullable=False),
        sa.Column(
            'event_type',
            sa.Enum(*LEDGER_EVENT_TYPES, native_enum=False, create_constraint=True,
                    length=30, name='ledger_event_type'),
            nullable=False,
        ),
        sa.Column('occurred_at', sa.DateTime, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('summary', sa.Text, nullable=False, server_default=''),
        sa.Column('payload', sa.JSON, nullable=False),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_test', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('order_id', 'version', name='uq_ledger_order_version'),
    )

    dialect = op.get_bind().dialect.name
    if dialect == 'sqlite':
        statements = SQLITE_TRIGGERS
    elif dialect == 'postgresql':
        statements = POSTGRES_TRIGGERS
    else:
        statements = ()
    for statement in statements:
        op.execute(statement)


def downgrade():
    dialect = op.get_bind().dialect.name
    if dialect == 'sqlite':
        op.execute('DROP TRIGGER IF EXISTS ledger_no_update')
        op.execute('DROP TRIGGER IF EXISTS ledger_no_delete')
    elif dialect == 'postgresql':
        op.execute('DROP TRIGGER IF EXISTS ledger_no_update_or_delete ON order_ledger_entries')
        op.execute('DROP FUNCTION IF EXISTS order_ledger_entries_immutable()')
    op.drop_table('order_ledger_entries')

from alembic import op
import sqlalchemy as sa

revision = '0001_master_data'
down_revision = None
branch_labels = None
depends_on = None

NOW = sa.text('CURRENT_TIMESTAMP')


def upgrade():
    op.create_table(
        'customers',
        sa.Column('id', sa.String(20), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(50), nullable=False, server_default=''),
        sa.Column('notes', sa.Text, nullable=False, server_default=''),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_test', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=NOW),
    )
    op.create_table(
        'vendors',
        sa.Column('id', sa.String(20), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('service_type', sa.String(100), nullable=False, server_default=''),
        sa.Column('phone', sa.String(50), nullable=False, server_default=''),
        sa.Column('notes', sa.Text, nullable=False, server_default=''),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_test', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=NOW),
    )
    op.create_table(
        'product_types',
        sa.Column('id', sa.String(40), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('properties', sa.JSON, nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_test', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=NOW),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.String(20), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column(
            'role',
            sa.Enum('OWNER', 'EMPLOYEE', native_enum=False, create_constraint=True,
                    length=20, name='user_role'),
            nullable=False,
            server_default='EMPLOYEE',
        ),
        sa.Column('phone', sa.String(50), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('token_revoked_before', sa.DateTime, nullable=True),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_test', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=NOW),
        sa.Column('last_login_at', sa.DateTime, nullable=True),
    )


def downgrade():
    op.drop_table('users')
    op.drop_table('product_types')
    op.drop_table('vendors')
    op.drop_table('customers')

from datetime import datetime, timezone

from alembic import op
import sqlalchemy as sa

revision = '0005_seed_product_types'
down_revision = '0004_indexes'
branch_labels = None
depends_on = None

SEED = (
    ('PT-cartons', 'Cartons'),
    ('PT-labels', 'Labels'),
    ('PT-leaflets', 'Leaflets'),
)


def upgrade():
    product_types = sa.table(
        'product_types',
        sa.column('id', sa.String),
        sa.column('name', sa.String),
        sa.column('properties', sa.JSON),
        sa.column('created_at', sa.DateTime),
        sa.column('updated_at', sa.DateTime),
    )
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    op.bulk_insert(product_types, [
        {'id': pid, 'name': name, 'properties': {}, 'created_at': now, 'updated_at': now}
        for pid, name in SEED
    ])


def downgrade():
    op.execute(
        "DELETE FROM product_types WHERE id IN ('PT-cartons', 'PT-labels', 'PT-leaflets')"
    )

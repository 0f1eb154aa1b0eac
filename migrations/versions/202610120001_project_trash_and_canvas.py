"""Add soft delete and canvas columns to projects."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "202610120001"
down_revision = "202610050001"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("projects") as batch_op:
        batch_op.add_column(sa.Column("canvas_data", sa.Text(), nullable=True))
        batch_op.add_column(sa.Column("deleted_at", sa.DateTime(), nullable=True))
        batch_op.create_index("ix_projects_deleted_at", ["deleted_at"])


def downgrade():
    with op.batch_alter_table("projects") as batch_op:
        batch_op.drop_index("ix_projects_deleted_at")
        batch_op.drop_column("deleted_at")
        batch_op.drop_column("canvas_data")

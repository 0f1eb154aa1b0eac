"""Introduce project membership and give every owner an OWNER row."""
from __future__ import annotations

import secrets
from datetime import datetime

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "202610050001"
down_revision = "202610010001"
branch_labels = None
depends_on = None


project_members_table = sa.Table(
    "project_members",
    sa.MetaData(),
    sa.Column("id", sa.String(length=64), primary_key=True),
    sa.Column("project_id", sa.String(length=64), nullable=False),
    sa.Column("user_id", sa.String(length=64), nullable=False),
    sa.Column("role", sa.String(length=20), nullable=False),
    sa.Column("joined_at", sa.DateTime, nullable=False),
    sa.Column("added_by", sa.String(length=64)),
)


def upgrade():
    op.create_table(
        "project_members",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="MEMBER"),
        sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("added_by", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(
            ["project_id"], ["projects.id"], name="fk_project_members_project_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_project_members_user_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["added_by"], ["users.id"], name="fk_project_members_added_by", ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )
    op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    connection = op.get_bind()
    projects_table = sa.Table(
        "projects",
        sa.MetaData(),
        sa.Column("id", sa.String(length=64)),
        sa.Column("owner_id", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime),
    )
    rows = connection.execute(
        sa.select(projects_table.c.id, projects_table.c.owner_id, projects_table.c.created_at)
    ).fetchall()
    if rows:
        now = datetime.utcnow()
        op.bulk_insert(
            project_members_table,
            [
                {
                    "id": f"member_{secrets.token_hex(8)}",
                    "project_id": project_id,
                    "user_id": owner_id,
                    "role": "OWNER",
                    "joined_at": created_at or now,
                    "added_by": None,
                }
                for project_id, owner_id, created_at in rows
                if owner_id
            ],
        )


def downgrade():
    op.drop_index("ix_project_members_user_id", table_name="project_members")
    op.drop_index("ix_project_members_project_id", table_name="project_members")
    op.drop_table("project_members")

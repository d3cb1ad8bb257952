"""Initial workflow schema

Revision ID: 001
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "workflow_instances" in existing_tables:
        # Tables already exist, skip migration
        return

    # Create workflow instances table
    op.create_table(
        "workflow_instances",
        sa.Column("instance_id", sa.Text, primary_key=True),
        sa.Column("uid", sa.Text, nullable=False),
        sa.Column("face_keys", sa.JSON, nullable=False),
        sa.Column("office_keys", sa.JSON, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("output", sa.JSON),
        sa.Column("error", sa.Text),
        sa.Column("cancel_requested", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_instances_status", "workflow_instances", ["status"])

    # Create committed steps table
    op.create_table(
        "workflow_steps",
        sa.Column("step_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "instance_id",
            sa.Text,
            sa.ForeignKey("workflow_instances.instance_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_name", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("result", sa.Text),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("committed_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("instance_id", "step_name", name="uq_steps_instance_step"),
    )


def downgrade() -> None:
    op.drop_table("workflow_steps")
    op.drop_index("idx_instances_status", table_name="workflow_instances")
    op.drop_table("workflow_instances")

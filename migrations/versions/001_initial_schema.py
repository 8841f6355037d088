"""Create automations and automation_runs tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Timestamps are ISO 8601 UTC text. claimed_due_at keeps the due instant of
the latest claim after next_run_at has been cleared.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "automations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("action_type", sa.Text(), nullable=False),
        sa.Column("schedule_kind", sa.Text(), nullable=False),
        sa.Column("schedule_expr", sa.Text(), nullable=False),
        sa.Column("timezone", sa.Text(), nullable=False, server_default="UTC"),
        sa.Column("payload", sa.Text(), nullable=False, server_default="{}"),  # JSON
        sa.Column("enabled", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("next_run_at", sa.Text(), nullable=True),
        sa.Column("claimed_due_at", sa.Text(), nullable=True),
        sa.Column("last_run_at", sa.Text(), nullable=True),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
    )
    op.create_index(
        "ix_automations_due",
        "automations",
        ["next_run_at"],
        sqlite_where=sa.text("enabled = 1 AND next_run_at IS NOT NULL"),
    )

    op.create_table(
        "automation_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "automation_id",
            sa.Integer(),
            sa.ForeignKey("automations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scheduled_at", sa.Text(), nullable=False),
        sa.Column("started_at", sa.Text(), nullable=False),
        sa.Column("finished_at", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("output", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_automation_runs_automation",
        "automation_runs",
        ["automation_id", "started_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_automation_runs_automation", table_name="automation_runs")
    op.drop_table("automation_runs")
    op.drop_index("ix_automations_due", table_name="automations")
    op.drop_table("automations")

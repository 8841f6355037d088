"""SQLAlchemy table definitions.

Timestamps are stored as ISO 8601 UTC text with microsecond precision so that
lexical order matches chronological order in SQL comparisons.
"""

from sqlalchemy import ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""


class Automation(Base):
    """Automation definition: one row per automation."""

    __tablename__ = "automations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    action_type: Mapped[str] = mapped_column(Text, nullable=False)
    schedule_kind: Mapped[str] = mapped_column(Text, nullable=False)
    schedule_expr: Mapped[str] = mapped_column(Text, nullable=False)
    timezone: Mapped[str] = mapped_column(Text, nullable=False, server_default="UTC")
    payload: Mapped[str] = mapped_column(Text, nullable=False, server_default="{}")
    enabled: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    next_run_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Due instant of the most recent claim, kept after next_run_at is cleared
    claimed_due_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_run_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index(
            "ix_automations_due",
            "next_run_at",
            sqlite_where=text("enabled = 1 AND next_run_at IS NOT NULL"),
        ),
    )


class AutomationRun(Base):
    """Append-only execution history."""

    __tablename__ = "automation_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    automation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("automations.id", ondelete="CASCADE"),
        nullable=False,
    )
    scheduled_at: Mapped[str] = mapped_column(Text, nullable=False)
    started_at: Mapped[str] = mapped_column(Text, nullable=False)
    finished_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    output: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_automation_runs_automation", "automation_id", "started_at"),
    )

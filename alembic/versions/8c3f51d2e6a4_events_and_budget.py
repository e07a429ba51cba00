"""events, registrations, budget and annual report inventory

Revision ID: 8c3f51d2e6a4
Revises: 4a1e7c2d9b30
Create Date: 2026-10-19 14:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


revision = "8c3f51d2e6a4"
down_revision = "4a1e7c2d9b30"
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.DateTime(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_events_event_date", "events", ["event_date"])

    op.create_table(
        "event_registrations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "member_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("registered_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "event_id", "member_id", name="uq_event_registrations_event_member"
        ),
    )

    op.create_table(
        "budget",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(length=11), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("budgeted_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("realized_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_budget_fiscal_year", "budget", ["fiscal_year"])

    op.create_table(
        "annual_report_inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=14), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_inventory_fiscal_year", "annual_report_inventory", ["fiscal_year"]
    )


def downgrade() -> None:
    op.drop_index("ix_inventory_fiscal_year", table_name="annual_report_inventory")
    op.drop_table("annual_report_inventory")
    op.drop_index("ix_budget_fiscal_year", table_name="budget")
    op.drop_table("budget")
    op.drop_table("event_registrations")
    op.drop_index("ix_events_event_date", table_name="events")
    op.drop_table("events")

"""create stall allocation tables

Revision ID: 001_create_allocation_tables
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "001_create_allocation_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "stalls",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("stall_no", sa.String(length=50), nullable=False),
        sa.Column("rental_price", sa.Numeric(12, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("allocation_mode", sa.String(length=20), server_default=sa.text("'fixed_price'"), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'active'"), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("current_session_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("allocation_mode IN ('fixed_price','raffle','auction')", name="ck_stalls_allocation_mode"),
    )

    op.create_table(
        "applicants",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("contact_number", sa.String(length=50), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("birthdate", sa.Date(), nullable=True),
        sa.Column("civil_status", sa.String(length=30), nullable=True),
        sa.Column("educational_attainment", sa.String(length=100), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_applicants_created_at", "applicants", ["created_at"])

    op.create_table(
        "business_information",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("applicant_id", sa.Uuid(), sa.ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("nature_of_business", sa.String(length=255), nullable=True),
        sa.Column("capitalization", sa.String(length=100), nullable=True),
        sa.Column("source_of_capital", sa.String(length=255), nullable=True),
        sa.Column("previous_business_experience", sa.Text(), nullable=True),
        sa.Column("relative_stall_owner", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("applicant_id", name="uq_business_information_applicant"),
    )

    op.create_table(
        "spouses",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("applicant_id", sa.Uuid(), sa.ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("birthdate", sa.Date(), nullable=True),
        sa.Column("educational_attainment", sa.String(length=100), nullable=True),
        sa.Column("contact_number", sa.String(length=50), nullable=True),
        sa.Column("occupation", sa.String(length=100), nullable=True),
        sa.UniqueConstraint("applicant_id", name="uq_spouses_applicant"),
    )

    op.create_table(
        "other_information",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("applicant_id", sa.Uuid(), sa.ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email_address", sa.String(length=255), nullable=False),
        sa.Column("signature_ref", sa.String(length=255), nullable=True),
        sa.Column("house_sketch_ref", sa.String(length=255), nullable=True),
        sa.Column("valid_id_ref", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("applicant_id", name="uq_other_information_applicant"),
    )
    # Not unique: the newest applicant for an email is authoritative.
    op.create_index("ix_other_information_email_address", "other_information", ["email_address"])

    op.create_table(
        "applications",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("applicant_id", sa.Uuid(), sa.ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stall_id", sa.Integer(), sa.ForeignKey("stalls.id"), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("source", sa.String(length=20), server_default=sa.text("'intake'"), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending','approved','declined')", name="ck_applications_status"),
    )
    op.create_index("ix_applications_applicant_id", "applications", ["applicant_id"])
    op.create_index("ix_applications_stall_id", "applications", ["stall_id"])
    op.create_index("ix_applications_created_at", "applications", ["created_at"])

    op.create_table(
        "allocation_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("stall_id", sa.Integer(), sa.ForeignKey("stalls.id"), nullable=False),
        sa.Column("mode", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'open'"), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("extension_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("minimum_bid", sa.Numeric(12, 2), nullable=True),
        sa.Column("winner_applicant_id", sa.Uuid(), nullable=True),
        sa.Column("winning_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("winner_application_id", sa.Uuid(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("close_reason", sa.String(length=50), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("mode IN ('raffle','auction')", name="ck_allocation_sessions_mode"),
        sa.CheckConstraint(
            "status IN ('open','extended','closed_won','cancelled')",
            name="ck_allocation_sessions_status",
        ),
    )
    op.create_index("ix_allocation_sessions_stall_id", "allocation_sessions", ["stall_id"])
    op.create_index("ix_allocation_sessions_status", "allocation_sessions", ["status"])
    op.create_index("ix_allocation_sessions_deadline", "allocation_sessions", ["deadline"])

    op.create_table(
        "raffle_participants",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("allocation_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("applicant_id", sa.Uuid(), sa.ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stall_id", sa.Integer(), sa.ForeignKey("stalls.id"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("session_id", "applicant_id", name="uq_raffle_participants_session_applicant"),
    )

    op.create_table(
        "auction_bids",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("allocation_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("applicant_id", sa.Uuid(), sa.ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stall_id", sa.Integer(), sa.ForeignKey("stalls.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("placed_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("session_id", "applicant_id", name="uq_auction_bids_session_applicant"),
        sa.CheckConstraint("amount > 0", name="ck_auction_bids_amount_positive"),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("change_summary", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(length=100), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_table("auction_bids")
    op.drop_table("raffle_participants")
    op.drop_index("ix_allocation_sessions_deadline", table_name="allocation_sessions")
    op.drop_index("ix_allocation_sessions_status", table_name="allocation_sessions")
    op.drop_index("ix_allocation_sessions_stall_id", table_name="allocation_sessions")
    op.drop_table("allocation_sessions")
    op.drop_index("ix_applications_created_at", table_name="applications")
    op.drop_index("ix_applications_stall_id", table_name="applications")
    op.drop_index("ix_applications_applicant_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_other_information_email_address", table_name="other_information")
    op.drop_table("other_information")
    op.drop_table("spouses")
    op.drop_table("business_information")
    op.drop_index("ix_applicants_created_at", table_name="applicants")
    op.drop_table("applicants")
    op.drop_table("stalls")

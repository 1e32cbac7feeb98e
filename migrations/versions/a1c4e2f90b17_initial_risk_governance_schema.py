"""initial_risk_governance_schema

Creates the governance tables:
  - users                   — actors and their tenancy scope
  - records                 — Risk Assessment / BIA records
  - record_fields           — named field values (one row per field)
  - field_comments          — append-only review comments on a field
  - notifications           — in-app inbox
  - notification_intents    — notification outbox
  - email_logs              — outbound email audit trail
  - submission_counters     — champion submissions per (company, module)
  - header_comment_threads  — scope-level column header threads
  - header_comments         — comments on those threads

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1c4e2f90b17
Revises:
Create Date: 2026-10-19 09:12:44.318205
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c4e2f90b17'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.Column("company", sa.String(length=150), nullable=False),
            sa.Column("department", sa.String(length=150), nullable=False),
            sa.Column("module", sa.String(length=150), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_role", "users", ["role"])
        op.create_index("ix_users_company", "users", ["company"])
        op.create_index("ix_users_scope_role", "users", ["company", "department", "module", "role"])

    # ── Records ───────────────────────────────────────────────────────────
    if "records" not in existing:
        op.create_table(
            "records",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("data_id", sa.String(length=8), nullable=False),
            sa.Column("record_type", sa.String(length=40), nullable=False),
            sa.Column("company", sa.String(length=150), nullable=False),
            sa.Column("department", sa.String(length=150), nullable=False),
            sa.Column("module", sa.String(length=150), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column(
                "created_by", sa.String(length=200), nullable=False,
                comment="Free-text creator identifier",
            ),
            sa.Column("current_status", sa.String(length=40), nullable=False),
            sa.Column("approved_by", sa.String(length=200), nullable=True),
            sa.Column("final_approved_by", sa.String(length=200), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column(
                "last_edited_by", sa.JSON(), nullable=True,
                comment="{email, date, time} of the last editor",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_records_data_id", "records", ["data_id"])
        op.create_index("ix_records_record_type", "records", ["record_type"])
        op.create_index("ix_records_owner_id", "records", ["owner_id"])
        op.create_index("ix_records_current_status", "records", ["current_status"])
        op.create_index("ix_records_created_at", "records", ["created_at"])
        op.create_index("ix_records_scope", "records", ["company", "department", "module"])

    if "record_fields" not in existing:
        op.create_table(
            "record_fields",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("record_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["record_id"], ["records.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("record_id", "name", name="uq_record_fields_record_name"),
        )
        op.create_index("ix_record_fields_record_id", "record_fields", ["record_id"])

    if "field_comments" not in existing:
        op.create_table(
            "field_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("field_id", sa.Integer(), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["field_id"], ["record_fields.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_field_comments_field_id", "field_comments", ["field_id"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=False),
            sa.Column("sender_id", sa.Integer(), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column(
                "for_role", sa.String(length=20), nullable=False,
                comment="Role of the recipient at send time",
            ),
            sa.Column(
                "event", sa.String(length=20), nullable=True,
                comment="submitted/approved/rejected/edited",
            ),
            sa.Column("company", sa.String(length=150), nullable=True),
            sa.Column("department", sa.String(length=150), nullable=True),
            sa.Column("module", sa.String(length=150), nullable=True),
            sa.Column("record_id", sa.Integer(), nullable=True),
            sa.Column("record_type", sa.String(length=40), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["record_id"], ["records.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    if "notification_intents" not in existing:
        op.create_table(
            "notification_intents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event", sa.String(length=20), nullable=False),
            sa.Column("record_id", sa.Integer(), nullable=True),
            sa.Column(
                "actor_id", sa.Integer(), nullable=True,
                comment="Actor whose action triggered the intent",
            ),
            sa.Column("company", sa.String(length=150), nullable=False),
            sa.Column("department", sa.String(length=150), nullable=False),
            sa.Column("module", sa.String(length=150), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("attempts", sa.Integer(), nullable=False),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["record_id"], ["records.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notification_intents_status", "notification_intents", ["status"])

    if "email_logs" not in existing:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=200), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("template_name", sa.String(length=100), nullable=True,
                      comment="Email template used"),
            sa.Column("status", sa.String(length=20), nullable=True,
                      comment="queued, sent, failed"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("notification_id", sa.Integer(), nullable=True,
                      comment="Related notification ID if applicable"),
            sa.Column("intent_id", sa.Integer(), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])
        op.create_index("ix_email_logs_intent_id", "email_logs", ["intent_id"])

    if "submission_counters" not in existing:
        op.create_table(
            "submission_counters",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("company", sa.String(length=150), nullable=False),
            sa.Column("module", sa.String(length=150), nullable=False),
            sa.Column("total", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("company", "module", name="uq_submission_counters_company_module"),
        )

    # ── Header comments ───────────────────────────────────────────────────
    if "header_comment_threads" not in existing:
        op.create_table(
            "header_comment_threads",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("field_name", sa.String(length=120), nullable=False),
            sa.Column("company", sa.String(length=150), nullable=False),
            sa.Column("department", sa.String(length=150), nullable=False),
            sa.Column("module", sa.String(length=150), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "field_name", "company", "department", "module",
                name="uq_header_comment_threads_scope_field",
            ),
        )

    if "header_comments" not in existing:
        op.create_table(
            "header_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("thread_id", sa.Integer(), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["thread_id"], ["header_comment_threads.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_header_comments_thread_id", "header_comments", ["thread_id"])


def downgrade():
    for table in (
        "header_comments",
        "header_comment_threads",
        "submission_counters",
        "email_logs",
        "notification_intents",
        "notifications",
        "field_comments",
        "record_fields",
        "records",
        "users",
    ):
        op.drop_table(table)

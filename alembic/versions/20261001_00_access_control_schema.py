"""Access-control schema: patients, records, grants, requests and the audit log.

Revision ID: 20261001_00
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "20261001_00"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

IDENTITY = sa.String(64)


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("owner", IDENTITY, primary_key=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("emergency_contact", IDENTITY, nullable=True),
        sa.Column("record_count", sa.BigInteger(), nullable=False),
        sa.Column("access_grant_count", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "medical_records",
        sa.Column("patient_owner", IDENTITY, sa.ForeignKey("patients.owner"), primary_key=True),
        sa.Column("record_id", sa.String(64), primary_key=True),
        sa.Column("created_by", IDENTITY, nullable=False),
        sa.Column("record_type", sa.String(32), nullable=False),
        sa.Column("data_hash", sa.String(64), nullable=False),
        sa.Column("storage_locator", sa.String(100), nullable=True),
        sa.Column("metadata", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("access_count", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_accessed", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_medical_records_created_by", "medical_records", ["created_by"])
    op.create_index("ix_medical_records_record_type", "medical_records", ["record_type"])

    op.create_table(
        "access_grants",
        sa.Column("patient_owner", IDENTITY, sa.ForeignKey("patients.owner"), primary_key=True),
        sa.Column("provider", IDENTITY, primary_key=True),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("allowed_record_types", sa.String(255), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("can_create", sa.Boolean(), nullable=False),
        sa.Column("can_modify", sa.Boolean(), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.String(100), nullable=True),
        sa.Column("revoked_by", IDENTITY, nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_access_grants_provider", "access_grants", ["provider"])

    op.create_table(
        "access_requests",
        sa.Column("patient_owner", IDENTITY, sa.ForeignKey("patients.owner"), primary_key=True),
        sa.Column("requester", IDENTITY, primary_key=True),
        sa.Column("requester_role", sa.String(32), nullable=False),
        sa.Column("reason", sa.String(200), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("responded_by", IDENTITY, nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("denial_reason", sa.String(200), nullable=True),
    )
    op.create_index("ix_access_requests_requester", "access_requests", ["requester"])
    op.create_index("ix_access_requests_status", "access_requests", ["status"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("patient_owner", IDENTITY, sa.ForeignKey("patients.owner"), nullable=False),
        sa.Column("record_id", sa.String(64), nullable=True),
        sa.Column("accessor", IDENTITY, nullable=False),
        sa.Column("accessor_role", sa.String(32), nullable=True),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("record_type", sa.String(32), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.String(100), nullable=True),
        sa.Column("is_emergency", sa.Boolean(), nullable=False),
        sa.Column("emergency_justification", sa.String(200), nullable=True),
        sa.Column("client_info", sa.String(50), nullable=True),
        sa.Column("metadata", sa.String(100), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "patient_owner",
            "record_id",
            "accessor",
            "action",
            "sequence",
            name="uq_audit_log_key",
        ),
    )
    op.create_index("ix_audit_log_patient_owner", "audit_log", ["patient_owner"])
    op.create_index("ix_audit_log_accessor", "audit_log", ["accessor"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_timestamp", "audit_log", ["timestamp"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("access_requests")
    op.drop_table("access_grants")
    op.drop_table("medical_records")
    op.drop_table("patients")

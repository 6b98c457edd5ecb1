"""Initial schema with all core tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

Creates all tables for Proof Pack Core:
- sme_profiles (companies)
- proof_packs, documents, gaps (packs and Pack Health)
- qa_reviews, findings (QA review)
- share_grants, nda_acceptances, access_log_entries (disclosure)
- introduction_requests (buyer directory)
- audit_events (audit trail)
- jobs (background processing)

Enum columns store the Python enum member names.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUM_TYPES: dict[str, tuple[str, ...]] = {
    "pack_status": ("DRAFT", "SUBMITTED", "APPROVED", "REJECTED"),
    "document_category": (
        "CERTIFICATIONS",
        "FINANCIAL",
        "PAST_PERFORMANCE",
        "TECHNICAL",
        "QUALITY",
        "SAFETY",
        "SECURITY",
        "OTHER",
    ),
    "gap_category": ("COMPLETENESS", "EXPIRATION", "QUALITY", "REMEDIATION"),
    "gap_severity": ("LOW", "MEDIUM", "HIGH", "CRITICAL"),
    "gap_status": ("OPEN", "RESOLVED"),
    "review_status": ("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED"),
    "review_decision": ("APPROVED", "REJECTED"),
    "finding_severity": ("MINOR", "MAJOR", "CRITICAL"),
    "finding_status": ("OPEN", "RESOLVED"),
    "access_action": ("INFO_VIEWED", "NDA_ACCEPTED", "PACK_VIEWED", "DOCUMENT_DOWNLOADED"),
    "introduction_status": ("PENDING", "ACCEPTED", "DECLINED"),
    "job_status": ("PENDING", "RUNNING", "COMPLETED", "FAILED", "CANCELLED"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
    )


def upgrade() -> None:
    """Apply migration: Initial schema with all core tables."""
    bind = op.get_bind()
    for name in ENUM_TYPES:
        _enum(name).create(bind, checkfirst=True)

    # =========================================================================
    # Companies and packs
    # =========================================================================
    op.create_table(
        "sme_profiles",
        _uuid_pk("sme_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("owner_user_id", sa.String(255), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("industry", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("certifications", postgresql.ARRAY(sa.String(100)), nullable=False),
        sa.Column("capabilities", postgresql.ARRAY(sa.String(100)), nullable=False),
        sa.PrimaryKeyConstraint("sme_id", name=op.f("pk_sme_profiles")),
    )
    op.create_index("ix_sme_profiles_owner_user_id", "sme_profiles", ["owner_user_id"])
    op.create_index("ix_sme_profiles_industry", "sme_profiles", ["industry"])

    op.create_table(
        "proof_packs",
        _uuid_pk("proof_pack_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("sme_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_user_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", _enum("pack_status"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("completeness_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("expiration_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("quality_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("remediation_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("overall_score", sa.Integer(), nullable=False),
        _timestamp("health_computed_at", nullable=True),
        sa.Column("sub_scores_overridden", sa.Boolean(), nullable=False),
        _timestamp("submitted_at", nullable=True),
        _timestamp("reviewed_at", nullable=True),
        sa.ForeignKeyConstraint(
            ["sme_id"],
            ["sme_profiles.sme_id"],
            name=op.f("fk_proof_packs_sme_id_sme_profiles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("proof_pack_id", name=op.f("pk_proof_packs")),
    )
    op.create_index("ix_proof_packs_sme_id", "proof_packs", ["sme_id"])
    op.create_index("ix_proof_packs_owner_user_id", "proof_packs", ["owner_user_id"])
    op.create_index("ix_proof_packs_status_score", "proof_packs", ["status", "overall_score"])
    op.create_index("ix_proof_packs_submitted_at", "proof_packs", ["submitted_at"])

    op.create_table(
        "documents",
        _uuid_pk("document_id"),
        _timestamp("uploaded_at"),
        _timestamp("updated_at"),
        sa.Column("proof_pack_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("category", _enum("document_category"), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("document_type", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["proof_pack_id"],
            ["proof_packs.proof_pack_id"],
            name=op.f("fk_documents_proof_pack_id_proof_packs"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("document_id", name=op.f("pk_documents")),
    )
    op.create_index("ix_documents_pack_position", "documents", ["proof_pack_id", "position"])
    op.create_index("ix_documents_expiration_date", "documents", ["expiration_date"])

    op.create_table(
        "gaps",
        _uuid_pk("gap_id"),
        _timestamp("created_at"),
        sa.Column("proof_pack_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("gap_key", sa.String(200), nullable=False),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("category", _enum("gap_category"), nullable=False),
        sa.Column("severity", _enum("gap_severity"), nullable=False),
        sa.Column("recommendation", sa.Text(), nullable=False),
        sa.Column("status", _enum("gap_status"), nullable=False),
        _timestamp("resolved_at", nullable=True),
        sa.ForeignKeyConstraint(
            ["proof_pack_id"],
            ["proof_packs.proof_pack_id"],
            name=op.f("fk_gaps_proof_pack_id_proof_packs"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("gap_id", name=op.f("pk_gaps")),
    )
    op.create_index("ix_gaps_pack_key", "gaps", ["proof_pack_id", "gap_key"], unique=True)

    # =========================================================================
    # QA review
    # =========================================================================
    op.create_table(
        "qa_reviews",
        _uuid_pk("review_id"),
        _timestamp("created_at"),
        sa.Column("proof_pack_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reviewer_id", sa.String(255), nullable=True),
        sa.Column("status", _enum("review_status"), nullable=False),
        sa.Column("decision", _enum("review_decision"), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        _timestamp("claimed_at", nullable=True),
        _timestamp("completed_at", nullable=True),
        _timestamp("cancelled_at", nullable=True),
        sa.Column("cancelled_by", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(
            ["proof_pack_id"],
            ["proof_packs.proof_pack_id"],
            name=op.f("fk_qa_reviews_proof_pack_id_proof_packs"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("review_id", name=op.f("pk_qa_reviews")),
    )
    op.create_index("ix_qa_reviews_pack_id", "qa_reviews", ["proof_pack_id"])
    op.create_index("ix_qa_reviews_status", "qa_reviews", ["status"])

    op.create_table(
        "findings",
        _uuid_pk("finding_id"),
        _timestamp("created_at"),
        sa.Column("review_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("severity", _enum("finding_severity"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", _enum("finding_status"), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        _timestamp("resolved_at", nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(
            ["review_id"],
            ["qa_reviews.review_id"],
            name=op.f("fk_findings_review_id_qa_reviews"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("finding_id", name=op.f("pk_findings")),
    )
    op.create_index("ix_findings_review_id", "findings", ["review_id"])

    # =========================================================================
    # Disclosure
    # =========================================================================
    op.create_table(
        "share_grants",
        _uuid_pk("share_grant_id"),
        _timestamp("created_at"),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("proof_pack_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        _timestamp("expires_at", nullable=True),
        sa.Column("revoked", sa.Boolean(), nullable=False),
        _timestamp("revoked_at", nullable=True),
        sa.Column("revoked_by", sa.String(255), nullable=True),
        sa.Column("nda_version", sa.String(50), nullable=False),
        sa.ForeignKeyConstraint(
            ["proof_pack_id"],
            ["proof_packs.proof_pack_id"],
            name=op.f("fk_share_grants_proof_pack_id_proof_packs"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("share_grant_id", name=op.f("pk_share_grants")),
    )
    op.create_index("ix_share_grants_token_hash", "share_grants", ["token_hash"], unique=True)
    op.create_index("ix_share_grants_proof_pack_id", "share_grants", ["proof_pack_id"])

    op.create_table(
        "nda_acceptances",
        _uuid_pk("acceptance_id"),
        sa.Column("share_grant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("nda_version", sa.String(50), nullable=False),
        _timestamp("accepted_at"),
        sa.Column("ip_hash", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.ForeignKeyConstraint(
            ["share_grant_id"],
            ["share_grants.share_grant_id"],
            name=op.f("fk_nda_acceptances_share_grant_id_share_grants"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("acceptance_id", name=op.f("pk_nda_acceptances")),
    )
    op.create_index(
        "ix_nda_acceptances_grant_user",
        "nda_acceptances",
        ["share_grant_id", "user_id"],
        unique=True,
    )

    op.create_table(
        "access_log_entries",
        sa.Column("entry_id", sa.BigInteger(), sa.Identity(always=True), nullable=False),
        _timestamp("created_at"),
        sa.Column("share_grant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("proof_pack_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", _enum("access_action"), nullable=False),
        sa.Column("ip_hash", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.ForeignKeyConstraint(
            ["share_grant_id"],
            ["share_grants.share_grant_id"],
            name=op.f("fk_access_log_entries_share_grant_id_share_grants"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("entry_id", name=op.f("pk_access_log_entries")),
    )
    op.create_index(
        "ix_access_log_entries_pack_entry", "access_log_entries", ["proof_pack_id", "entry_id"]
    )
    op.create_index(
        "ix_access_log_entries_share_grant_id", "access_log_entries", ["share_grant_id"]
    )

    # =========================================================================
    # Buyer directory
    # =========================================================================
    op.create_table(
        "introduction_requests",
        _uuid_pk("introduction_id"),
        _timestamp("created_at"),
        sa.Column("buyer_user_id", sa.String(255), nullable=False),
        sa.Column("proof_pack_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sme_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_description", sa.Text(), nullable=False),
        sa.Column("timeline", sa.String(100), nullable=True),
        sa.Column("budget_range", sa.String(100), nullable=True),
        sa.Column("preferred_contact_method", sa.String(50), nullable=False),
        sa.Column("score_at_request", sa.Integer(), nullable=False),
        sa.Column("status", _enum("introduction_status"), nullable=False),
        sa.ForeignKeyConstraint(
            ["proof_pack_id"],
            ["proof_packs.proof_pack_id"],
            name=op.f("fk_introduction_requests_proof_pack_id_proof_packs"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["sme_id"],
            ["sme_profiles.sme_id"],
            name=op.f("fk_introduction_requests_sme_id_sme_profiles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("introduction_id", name=op.f("pk_introduction_requests")),
    )
    op.create_index("ix_introduction_requests_sme_id", "introduction_requests", ["sme_id"])
    op.create_index(
        "ix_introduction_requests_buyer", "introduction_requests", ["buyer_user_id"]
    )

    # =========================================================================
    # Audit and jobs
    # =========================================================================
    op.create_table(
        "audit_events",
        _uuid_pk("event_id"),
        _timestamp("created_at"),
        sa.Column("seq_no", sa.BigInteger(), nullable=False),
        sa.Column("record_hash", sa.String(64), nullable=False),
        sa.Column("prev_record_hash", sa.String(64), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=True),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("event_id", name=op.f("pk_audit_events")),
    )
    op.create_index("ix_audit_events_seq_no", "audit_events", ["seq_no"], unique=True)
    op.create_index("ix_audit_events_resource", "audit_events", ["resource_type", "resource_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])

    op.create_table(
        "jobs",
        _uuid_pk("job_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("job_type", sa.String(100), nullable=False),
        sa.Column("status", _enum("job_status"), nullable=False),
        sa.Column("queue", sa.String(100), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("locked_at", nullable=True),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("base_backoff_seconds", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("payload_json", postgresql.JSONB(), nullable=True),
        sa.Column("result_json", postgresql.JSONB(), nullable=True),
        _timestamp("started_at", nullable=True),
        _timestamp("completed_at", nullable=True),
        sa.Column("correlation_id", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("job_id", name=op.f("pk_jobs")),
    )
    op.create_index("ix_jobs_queue_pending", "jobs", ["queue", "status", "run_at", "priority"])
    op.create_index("ix_jobs_job_type", "jobs", ["job_type"])
    op.create_index("ix_jobs_completed_at", "jobs", ["completed_at"])


def downgrade() -> None:
    """Revert migration: Initial schema with all core tables."""
    op.drop_table("jobs")
    op.drop_table("audit_events")
    op.drop_table("introduction_requests")
    op.drop_table("access_log_entries")
    op.drop_table("nda_acceptances")
    op.drop_table("share_grants")
    op.drop_table("findings")
    op.drop_table("qa_reviews")
    op.drop_table("gaps")
    op.drop_table("documents")
    op.drop_table("proof_packs")
    op.drop_table("sme_profiles")

    for name in reversed(list(ENUM_TYPES)):
        op.execute(f"DROP TYPE IF EXISTS {name}")

"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("domain_primary", sa.String(), nullable=True),
        sa.Column("attributes_json", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "name", name="uq_organizations_tenant_name"),
    )
    op.create_index("ix_organizations_tenant_id", "organizations", ["tenant_id"])

    op.create_table(
        "developers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("primary_email", sa.String(), nullable=True),
        sa.Column(
            "org_id",
            sa.String(),
            sa.ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("consent_analytics", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "primary_email", name="uq_developers_tenant_email"),
    )
    op.create_index("ix_developers_tenant_id", "developers", ["tenant_id"])
    op.create_index("ix_developers_tenant_org", "developers", ["tenant_id", "org_id"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        # Null until the account is resolved to a developer.
        sa.Column(
            "developer_id",
            sa.String(),
            sa.ForeignKey("developers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("external_user_id", sa.String(), nullable=False),
        sa.Column("handle", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("profile_url", sa.String(), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("first_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("0.8")),
        sa.Column("attributes_json", postgresql.JSONB(), nullable=True),
        sa.Column("dedup_key", sa.String(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "tenant_id", "provider", "external_user_id", name="uq_accounts_tenant_provider_user"
        ),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_accounts_confidence"),
    )
    op.create_index("ix_accounts_tenant_developer", "accounts", ["tenant_id", "developer_id"])
    op.create_index("ix_accounts_tenant_email", "accounts", ["tenant_id", "email"])

    op.create_table(
        "developer_identifiers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column(
            "developer_id",
            sa.String(),
            sa.ForeignKey("developers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("value_normalized", sa.String(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("attributes_json", postgresql.JSONB(), nullable=True),
        sa.Column("first_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "tenant_id", "kind", "value_normalized", name="uq_developer_identifiers_kind_value"
        ),
        sa.CheckConstraint(
            "kind IN ('email', 'domain', 'phone', 'mlid', 'click_id', 'key_fp')",
            name="ck_developer_identifiers_kind",
        ),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1", name="ck_developer_identifiers_confidence"
        ),
    )
    op.create_index(
        "ix_developer_identifiers_tenant_developer",
        "developer_identifiers",
        ["tenant_id", "developer_id"],
    )

    op.create_table(
        "developer_merge_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        # Plain columns: the source developer is deleted by the merge this row records.
        sa.Column("into_developer_id", sa.String(), nullable=False),
        sa.Column("from_developer_id", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("evidence_json", postgresql.JSONB(), nullable=True),
        sa.Column("merged_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("merged_by", sa.String(), nullable=True),
    )
    op.create_index(
        "ix_developer_merge_logs_into_developer_id", "developer_merge_logs", ["into_developer_id"]
    )
    op.create_index(
        "ix_developer_merge_logs_from_developer_id", "developer_merge_logs", ["from_developer_id"]
    )
    op.create_index(
        "ix_developer_merge_logs_tenant_merged_at", "developer_merge_logs", ["tenant_id", "merged_at"]
    )

    op.create_table(
        "activities",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column(
            "developer_id",
            sa.String(),
            sa.ForeignKey("developers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "account_id",
            sa.String(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("anon_id", sa.String(), nullable=True),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("source_ref", sa.String(), nullable=True),
        sa.Column("metadata_json", postgresql.JSONB(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("1.0")),
        sa.Column("value", sa.Numeric(18, 4), nullable=True),
        sa.Column("dedup_key", sa.String(), nullable=True, unique=True),
    )
    op.create_index("ix_activities_tenant_occurred", "activities", ["tenant_id", "occurred_at"])
    op.create_index(
        "ix_activities_tenant_developer_occurred",
        "activities",
        ["tenant_id", "developer_id", "occurred_at"],
    )
    op.create_index(
        "ix_activities_tenant_action_occurred",
        "activities",
        ["tenant_id", "action", "occurred_at"],
    )

    funnel_stages = op.create_table(
        "funnel_stages",
        sa.Column("stage_key", sa.String(), primary_key=True),
        sa.Column("order_no", sa.Integer(), nullable=False, unique=True),
        sa.Column("title", sa.String(), nullable=False),
    )
    # Stage order is fixed; tenants only choose which actions land in each stage.
    op.bulk_insert(
        funnel_stages,
        [
            {"stage_key": "awareness", "order_no": 1, "title": "Awareness"},
            {"stage_key": "engagement", "order_no": 2, "title": "Engagement"},
            {"stage_key": "adoption", "order_no": 3, "title": "Adoption"},
            {"stage_key": "advocacy", "order_no": 4, "title": "Advocacy"},
        ],
    )

    op.create_table(
        "activity_funnel_map",
        sa.Column("tenant_id", sa.String(), primary_key=True),
        sa.Column("action", sa.String(), primary_key=True),
        sa.Column(
            "stage_key",
            sa.String(),
            sa.ForeignKey("funnel_stages.stage_key"),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("activity_funnel_map")
    op.drop_table("funnel_stages")
    op.drop_index("ix_activities_tenant_action_occurred", table_name="activities")
    op.drop_index("ix_activities_tenant_developer_occurred", table_name="activities")
    op.drop_index("ix_activities_tenant_occurred", table_name="activities")
    op.drop_table("activities")
    op.drop_index("ix_developer_merge_logs_tenant_merged_at", table_name="developer_merge_logs")
    op.drop_index("ix_developer_merge_logs_from_developer_id", table_name="developer_merge_logs")
    op.drop_index("ix_developer_merge_logs_into_developer_id", table_name="developer_merge_logs")
    op.drop_table("developer_merge_logs")
    op.drop_index("ix_developer_identifiers_tenant_developer", table_name="developer_identifiers")
    op.drop_table("developer_identifiers")
    op.drop_index("ix_accounts_tenant_email", table_name="accounts")
    op.drop_index("ix_accounts_tenant_developer", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_developers_tenant_org", table_name="developers")
    op.drop_index("ix_developers_tenant_id", table_name="developers")
    op.drop_table("developers")
    op.drop_index("ix_organizations_tenant_id", table_name="organizations")
    op.drop_table("organizations")

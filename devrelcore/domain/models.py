from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere so tests can run against SQLite.
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_organizations_tenant_name"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    domain_primary: Mapped[str | None] = mapped_column(String, nullable=True)
    attributes_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Developer(Base):
    __tablename__ = "developers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "primary_email", name="uq_developers_tenant_email"),
        Index("ix_developers_tenant_org", "tenant_id", "org_id"),
    )

    # Canonical identity container that accounts and identifiers resolve to.
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Stored case-folded so identifier lookups can compare exactly.
    primary_email: Mapped[str | None] = mapped_column(String, nullable=True)
    org_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    consent_analytics: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "provider", "external_user_id", name="uq_accounts_tenant_provider_user"
        ),
        Index("ix_accounts_tenant_developer", "tenant_id", "developer_id"),
        Index("ix_accounts_tenant_email", "tenant_id", "email"),
    )

    # Binding of one external service identity; developer_id stays null until resolved.
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String)
    developer_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("developers.id", ondelete="SET NULL"), nullable=True
    )
    provider: Mapped[str] = mapped_column(String)
    external_user_id: Mapped[str] = mapped_column(String)
    handle: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    profile_url: Mapped[str | None] = mapped_column(String, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    first_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)
    attributes_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DeveloperIdentifier(Base):
    __tablename__ = "developer_identifiers"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "kind", "value_normalized", name="uq_developer_identifiers_kind_value"
        ),
        Index("ix_developer_identifiers_tenant_developer", "tenant_id", "developer_id"),
    )

    # Secondary evidence; the unique constraint stops two developers claiming one value.
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String)
    developer_id: Mapped[str] = mapped_column(
        String, ForeignKey("developers.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String)
    value_normalized: Mapped[str] = mapped_column(String)
    confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    attributes_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    first_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DeveloperMergeLog(Base):
    __tablename__ = "developer_merge_logs"
    __table_args__ = (
        Index("ix_developer_merge_logs_tenant_merged_at", "tenant_id", "merged_at"),
    )

    # Developer ids are plain columns so the log outlives the deleted source row.
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String)
    into_developer_id: Mapped[str] = mapped_column(String, index=True)
    from_developer_id: Mapped[str] = mapped_column(String, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    merged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Null for automatic merges.
    merged_by: Mapped[str | None] = mapped_column(String, nullable=True)


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        Index("ix_activities_tenant_occurred", "tenant_id", "occurred_at"),
        Index("ix_activities_tenant_developer_occurred", "tenant_id", "developer_id", "occurred_at"),
        Index("ix_activities_tenant_action_occurred", "tenant_id", "action", "occurred_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String)
    developer_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("developers.id", ondelete="SET NULL"), nullable=True
    )
    account_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    anon_id: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    action: Mapped[str] = mapped_column(String)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    source: Mapped[str] = mapped_column(String)
    source_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)


class FunnelStage(Base):
    __tablename__ = "funnel_stages"

    # Global dictionary; rows are seeded by the initial migration.
    stage_key: Mapped[str] = mapped_column(String, primary_key=True)
    order_no: Mapped[int] = mapped_column(Integer, unique=True)
    title: Mapped[str] = mapped_column(String)


class ActivityFunnelMap(Base):
    __tablename__ = "activity_funnel_map"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True)
    action: Mapped[str] = mapped_column(String, primary_key=True)
    stage_key: Mapped[str] = mapped_column(String, ForeignKey("funnel_stages.stage_key"))

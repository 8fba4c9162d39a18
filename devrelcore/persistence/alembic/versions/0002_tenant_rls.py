"""tenant row level security

Revision ID: 0002_tenant_rls
Revises: 0001_init
Create Date: 2026-10-19 09:30:00.000000
"""
from __future__ import annotations

from alembic import op

from devrelcore.core.config import get_settings
from devrelcore.persistence.tenant_context import validate_setting_name

# revision identifiers, used by Alembic.
revision = "0002_tenant_rls"
down_revision = "0001_init"
branch_labels = None
depends_on = None

# funnel_stages is a global dictionary and carries no tenant_id.
TENANT_TABLES = (
    "organizations",
    "developers",
    "accounts",
    "developer_identifiers",
    "developer_merge_logs",
    "activities",
    "activity_funnel_map",
)

POLICY_NAME = "tenant_isolation_policy"


def tenant_match(setting_name: str) -> str:
    # missing_ok=true makes an unset marker read as NULL, which matches no row.
    name = validate_setting_name(setting_name)
    return f"tenant_id = current_setting('{name}', true)::text"


def policy_statements(setting_name: str) -> list[str]:
    match = tenant_match(setting_name)
    statements: list[str] = []
    for table in TENANT_TABLES:
        statements.append(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        # FORCE applies the policy to the table owner too, which is the usual app role.
        statements.append(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        statements.append(
            f"CREATE POLICY {POLICY_NAME} ON {table} USING ({match}) WITH CHECK ({match})"
        )
    return statements


def drop_statements() -> list[str]:
    statements: list[str] = []
    for table in reversed(TENANT_TABLES):
        statements.append(f"DROP POLICY IF EXISTS {POLICY_NAME} ON {table}")
        statements.append(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        statements.append(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
    return statements


def upgrade() -> None:
    # Policies read the same variable the executor sets; changing the setting needs a re-run.
    for statement in policy_statements(get_settings().tenant_setting_name):
        op.execute(statement)


def downgrade() -> None:
    for statement in drop_statements():
        op.execute(statement)

"""Initial IMS schema: users/roles/audit plus policy, procedure and risk assessment families.

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# (category table, record table, version table, review table, record columns, version columns, record indexes)
FAMILIES = (
    (
        "policy_categories",
        "policies",
        "policy_versions",
        "policy_reviews",
        lambda: [
            sa.Column("issue_date", sa.Date(), nullable=True),
            sa.Column("location", sa.String(128), nullable=False, server_default="IMS"),
        ],
        lambda: [sa.Column("issue_date", sa.Date(), nullable=True)],
        [("idx_policies_category_order", ["category_id", "order"])],
    ),
    (
        "procedure_categories",
        "procedures",
        "procedure_versions",
        "procedure_reviews",
        lambda: [
            sa.Column("issue_date", sa.Date(), nullable=True),
            sa.Column("content", sa.Text(), nullable=False, server_default=""),
        ],
        lambda: [sa.Column("issue_date", sa.Date(), nullable=True)],
        [("idx_procedures_category_order", ["category_id", "order"])],
    ),
    (
        "risk_assessment_categories",
        "risk_assessments",
        "risk_assessment_versions",
        "risk_assessment_reviews",
        lambda: [
            sa.Column("review_date", sa.Date(), nullable=True),
            sa.Column("next_review_date", sa.Date(), nullable=True),
            sa.Column("department", sa.String(128), nullable=True),
            sa.Column("content", sa.Text(), nullable=False, server_default=""),
        ],
        lambda: [sa.Column("review_date", sa.Date(), nullable=True)],
        [
            ("idx_risk_assessments_category_order", ["category_id", "order"]),
            ("idx_risk_assessments_next_review", ["next_review_date"]),
        ],
    ),
)


def _create_family(category_table, record_table, version_table, review_table, record_cols, version_cols, indexes) -> None:
    op.create_table(
        category_table,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("highlighted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        record_table,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey(f"{category_table}.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("version", sa.String(32), nullable=False, server_default="1"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("highlighted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("document_key", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *record_cols(),
    )
    op.create_index(f"ix_{record_table}_category_id", record_table, ["category_id"])
    for name, cols in indexes:
        op.create_index(name, record_table, cols)

    op.create_table(
        version_table,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "record_id",
            sa.Integer(),
            sa.ForeignKey(f"{record_table}.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version_number", sa.String(32), nullable=False),
        sa.Column("snapshot_json", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("document_key", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *version_cols(),
    )
    op.create_index(f"ix_{version_table}_record_id", version_table, ["record_id"])

    op.create_table(
        review_table,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "record_id",
            sa.Integer(),
            sa.ForeignKey(f"{record_table}.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reviewer_name", sa.String(255), nullable=False),
        sa.Column("review_date", sa.Date(), nullable=False),
        sa.Column("next_review_date", sa.Date(), nullable=True),
        sa.Column("details", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("reviewed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index(f"ix_{review_table}_record_id", review_table, ["record_id"])


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    op.create_index("idx_audit_events_action", "audit_events", ["action"])

    for family in FAMILIES:
        _create_family(*family)


def downgrade() -> None:
    for category_table, record_table, version_table, review_table, _r, _v, _i in reversed(FAMILIES):
        op.drop_table(review_table)
        op.drop_table(version_table)
        op.drop_table(record_table)
        op.drop_table(category_table)
    op.drop_index("idx_audit_events_action", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("users")

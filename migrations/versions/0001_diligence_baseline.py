"""diligence_baseline

Creates the diligence tracking schema:
  - deals, profiles                 — reference tables read by the tracker
  - diligence_categories / _subcategories / _templates
  - diligence_requests              — one row per tracked item
  - diligence_comments              — one-level threaded comments
  - diligence_request_views         — per-user last-viewed timestamps
  - diligence_notifications         — in-app notification inbox

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 0001_diligence_baseline
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '0001_diligence_baseline'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    if "deals" not in existing:
        op.create_table(
            "deals",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("company_name", sa.String(length=300), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active",
                      comment="active | archived | draft"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_deals_status", "deals", ["status"])

    if "profiles" not in existing:
        op.create_table(
            "profiles",
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
            sa.PrimaryKeyConstraint("user_id"),
        )

    # ── Taxonomy ──────────────────────────────────────────────────────────
    if "diligence_categories" not in existing:
        op.create_table(
            "diligence_categories",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("icon", sa.String(length=50), nullable=False, server_default="folder"),
            sa.Column("color", sa.String(length=20), nullable=False, server_default="#6B7280"),
            sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "diligence_subcategories" not in existing:
        op.create_table(
            "diligence_subcategories",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("category_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["category_id"], ["diligence_categories.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_diligence_subcategories_category_id",
                        "diligence_subcategories", ["category_id"])

    if "diligence_templates" not in existing:
        op.create_table(
            "diligence_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("industry", sa.String(length=100), nullable=True),
            sa.Column("deal_type", sa.String(length=100), nullable=True),
            sa.Column("template_data", sa.JSON(), nullable=False),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Requests ──────────────────────────────────────────────────────────
    if "diligence_requests" not in existing:
        op.create_table(
            "diligence_requests",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("deal_id", sa.String(length=36), nullable=False,
                      comment="FK → deals (external)"),
            sa.Column("category_id", sa.String(length=36), nullable=False),
            sa.Column("subcategory_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium",
                      comment="high | medium | low"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="open",
                      comment="open | in_progress | completed | blocked"),
            sa.Column("assignee_ids", sa.JSON(), nullable=False),
            sa.Column("reviewer_ids", sa.JSON(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("completion_date", sa.Date(), nullable=True),
            sa.Column("document_ids", sa.JSON(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("risk_score", sa.Float(), nullable=True),
            sa.Column("stage", sa.String(length=20), nullable=True,
                      comment="early | due_diligence | final_review | closed"),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_by", sa.String(length=36), nullable=True),
            sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["category_id"], ["diligence_categories.id"]),
            sa.ForeignKeyConstraint(["subcategory_id"], ["diligence_subcategories.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_diligence_requests_deal_id", "diligence_requests", ["deal_id"])
        op.create_index("ix_diligence_requests_category_id", "diligence_requests", ["category_id"])
        op.create_index("ix_diligence_requests_status", "diligence_requests", ["status"])

    # ── Comments & read tracking ──────────────────────────────────────────
    if "diligence_comments" not in existing:
        op.create_table(
            "diligence_comments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("request_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("comment_type", sa.String(length=20), nullable=False,
                      server_default="internal", comment="internal | approved"),
            sa.Column("parent_comment_id", sa.String(length=36), nullable=True),
            sa.Column("approved_by", sa.String(length=36), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["request_id"], ["diligence_requests.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_comment_id"], ["diligence_comments.id"],
                                    ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_diligence_comments_request_id", "diligence_comments", ["request_id"])
        op.create_index("ix_diligence_comments_parent_comment_id",
                        "diligence_comments", ["parent_comment_id"])

    if "diligence_request_views" not in existing:
        op.create_table(
            "diligence_request_views",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("request_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("last_viewed_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["request_id"], ["diligence_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id", "user_id", name="uq_request_view_user"),
        )
        op.create_index("ix_diligence_request_views_request_id",
                        "diligence_request_views", ["request_id"])
        op.create_index("ix_diligence_request_views_user_id",
                        "diligence_request_views", ["user_id"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "diligence_notifications" not in existing:
        op.create_table(
            "diligence_notifications",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False, comment="Recipient"),
            sa.Column("request_id", sa.String(length=36), nullable=True),
            sa.Column("deal_id", sa.String(length=36), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False,
                      comment="assignment | status_change | comment | approved_answer"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=False, server_default=""),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_diligence_notifications_user_id",
                        "diligence_notifications", ["user_id"])
        op.create_index("ix_diligence_notifications_request_id",
                        "diligence_notifications", ["request_id"])
        op.create_index("ix_diligence_notifications_deal_id",
                        "diligence_notifications", ["deal_id"])


def downgrade():
    for table in (
        "diligence_notifications",
        "diligence_request_views",
        "diligence_comments",
        "diligence_requests",
        "diligence_templates",
        "diligence_subcategories",
        "diligence_categories",
        "profiles",
        "deals",
    ):
        op.drop_table(table)

"""member requests

Revision ID: 0002_member_requests
Revises: 0001_family_registry
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0002_member_requests"
down_revision = "0001_family_registry"
branch_labels = None
depends_on = None


approval_status_enum = postgresql.ENUM("pending", "approved", "rejected", name="approvalstatusenum", create_type=False)


def upgrade() -> None:
    op.create_table(
        "member_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "requested_by_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id"), nullable=False),
        sa.Column("relationship_to_owner", sa.String(length=50), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("middle_name", sa.String(length=50), nullable=True),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("mobile", sa.String(length=20), nullable=True),
        sa.Column("create_login_account", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("login_password_hash", sa.String(length=255), nullable=True),
        sa.Column("request_reason", sa.String(length=500), nullable=True),
        sa.Column("status", approval_status_enum, nullable=False, server_default="pending"),
        sa.Column("reviewed_by_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.Column(
            "member_record_id",
            sa.Integer(),
            sa.ForeignKey("member_records.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_member_requests_requester_status", "member_requests", ["requested_by_id", "status"])
    op.create_index("ix_member_requests_status_created", "member_requests", ["status", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_member_requests_status_created", table_name="member_requests")
    op.drop_index("ix_member_requests_requester_status", table_name="member_requests")
    op.drop_table("member_requests")

"""family registry schema

Revision ID: 0001_family_registry
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_family_registry"
down_revision = None
branch_labels = None
depends_on = None


account_status_enum = postgresql.ENUM(
    "pending", "approved", "rejected", "deceased", name="accountstatusenum", create_type=False
)
approval_status_enum = postgresql.ENUM("pending", "approved", "rejected", name="approvalstatusenum", create_type=False)
delete_type_enum = postgresql.ENUM("soft", "hard", name="deletetypeenum", create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    account_status_enum.create(bind, checkfirst=True)
    approval_status_enum.create(bind, checkfirst=True)
    delete_type_enum.create(bind, checkfirst=True)

    op.create_table(
        "families",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("family_number", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("family_number", name="uq_families_family_number"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("key", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("is_system_role", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
        sa.UniqueConstraint("key", name="uq_roles_key"),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("mobile", sa.String(length=20), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id"), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id"), nullable=True),
        sa.Column("status", account_status_enum, nullable=False, server_default="pending"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("linked_member_record_id", sa.Integer(), nullable=True),
        sa.Column("transfer_history", sa.JSON(), nullable=False),
        sa.Column("transferred_from_id", sa.Integer(), nullable=True),
        sa.Column("transferred_at", sa.DateTime(), nullable=True),
        sa.Column("transferred_by_id", sa.Integer(), nullable=True),
        sa.Column("transfer_reason", sa.String(length=500), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by_id", sa.Integer(), nullable=True),
        sa.Column("delete_type", delete_type_enum, nullable=True),
        sa.Column("deletion_reason", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_accounts_family_primary", "accounts", ["family_id", "is_primary"])
    op.create_index("ix_accounts_email", "accounts", ["email"])
    op.create_index("ix_accounts_mobile", "accounts", ["mobile"])
    op.create_index("ix_accounts_role", "accounts", ["role_id"])
    op.create_foreign_key(
        "fk_roles_created_by_id", "roles", "accounts", ["created_by_id"], ["id"], ondelete="SET NULL"
    )

    op.create_table(
        "member_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id"), nullable=False),
        sa.Column("relationship_to_owner", sa.String(length=50), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("middle_name", sa.String(length=50), nullable=True),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("mobile", sa.String(length=20), nullable=True),
        sa.Column("approval_status", approval_status_enum, nullable=False, server_default="approved"),
        sa.Column("needs_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "linked_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by_id", sa.Integer(), nullable=True),
        sa.Column("delete_type", delete_type_enum, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_member_records_family_status", "member_records", ["family_id", "approval_status"])
    op.create_index("ix_member_records_owner", "member_records", ["owner_account_id"])
    op.create_foreign_key(
        "fk_accounts_linked_member_record_id",
        "accounts",
        "member_records",
        ["linked_member_record_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_account_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("target_account_id", sa.Integer(), nullable=True),
        sa.Column("target_member_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_target_account", "audit_logs", ["target_account_id", "action"])
    op.create_index("ix_audit_action_created", "audit_logs", ["action", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_action_created", table_name="audit_logs")
    op.drop_index("ix_audit_target_account", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_constraint("fk_accounts_linked_member_record_id", "accounts", type_="foreignkey")
    op.drop_index("ix_member_records_owner", table_name="member_records")
    op.drop_index("ix_member_records_family_status", table_name="member_records")
    op.drop_table("member_records")

    op.drop_constraint("fk_roles_created_by_id", "roles", type_="foreignkey")
    op.drop_index("ix_accounts_role", table_name="accounts")
    op.drop_index("ix_accounts_mobile", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_index("ix_accounts_family_primary", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("roles")
    op.drop_table("families")

    bind = op.get_bind()
    delete_type_enum.drop(bind, checkfirst=True)
    approval_status_enum.drop(bind, checkfirst=True)
    account_status_enum.drop(bind, checkfirst=True)

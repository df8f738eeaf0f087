"""Expense desk initial schema: users, roles, org, expenses, receipts, invites.

Revision ID: 3f9c2a7d1e10
Revises:
Create Date: 2026-02-24
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f9c2a7d1e10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PAYMENT_METHODS = ("work_card", "personal_card")
EXPENSE_STATUSES = ("draft", "submitted", "received")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    # --- users / roles ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("api_key_hash", sa.String(64), nullable=False),
        sa.Column("role", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_api_key_hash", "users", ["api_key_hash"])

    op.create_table(
        "role_assignment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("scope_department_id", sa.Uuid(), nullable=True),
        sa.Column("scope_project_id", sa.Uuid(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("user_id", "role", name="uq_role_assignment_user_role"),
    )
    op.create_index("ix_role_assignment_user_id", "role_assignment", ["user_id"])

    # --- organization ---
    op.create_table(
        "department",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(80), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_table(
        "project",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "department_id", sa.Uuid(), sa.ForeignKey("department.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_project_department_id", "project", ["department_id"])

    # --- expenses ---
    op.create_table(
        "expense",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("public_id", sa.String(32), nullable=False, unique=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("department_id", sa.Uuid(), sa.ForeignKey("department.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("project.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("amount_minor", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("payment_method", sa.Enum(*PAYMENT_METHODS, name="payment_method"), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*EXPENSE_STATUSES, name="expense_status"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount_minor > 0", name="ck_expense_amount_positive"),
    )
    op.create_index("expense_status_submitted_at_idx", "expense", ["status", "submitted_at"])
    op.create_index("expense_member_created_at_idx", "expense", ["member_id", "created_at"])
    op.create_index("expense_project_created_at_idx", "expense", ["project_id", "created_at"])

    op.create_table(
        "expense_attachment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "expense_id",
            sa.Uuid(),
            sa.ForeignKey("expense.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("storage_bucket", sa.Text(), nullable=False),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.String(128), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        _created_at(),
    )

    # --- invites ---
    op.create_table(
        "invite",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_by_user_id", sa.Uuid(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )


def downgrade() -> None:
    op.drop_table("invite")
    op.drop_table("expense_attachment")
    op.drop_index("expense_project_created_at_idx", table_name="expense")
    op.drop_index("expense_member_created_at_idx", table_name="expense")
    op.drop_index("expense_status_submitted_at_idx", table_name="expense")
    op.drop_table("expense")
    op.drop_index("ix_project_department_id", table_name="project")
    op.drop_table("project")
    op.drop_table("department")
    op.drop_index("ix_role_assignment_user_id", table_name="role_assignment")
    op.drop_table("role_assignment")
    op.drop_index("ix_users_api_key_hash", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    sa.Enum(name="expense_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="payment_method").drop(op.get_bind(), checkfirst=True)

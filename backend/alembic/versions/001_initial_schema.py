"""Initial schema: users, items, tickets, registrations, payment proofs.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users: local mirror of identity-provider subjects
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_subject", "users", ["subject"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])

    # Items: the capacity ledger lives on this row
    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("gated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("unit_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("available_count", sa.Integer(), nullable=False),
        sa.Column("reviewer_emails", sa.JSON(), nullable=False),
        sa.Column("scanner_emails", sa.JSON(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("available_count >= 0", name="check_available_count_non_negative"),
        sa.CheckConstraint("max_capacity > 0", name="check_max_capacity_positive"),
        sa.CheckConstraint("available_count <= max_capacity", name="check_available_lte_max"),
        sa.CheckConstraint("unit_price >= 0", name="check_unit_price_non_negative"),
        sa.CheckConstraint("kind IN ('workshop', 'concert', 'competition', 'pass')", name="check_item_kind"),
    )
    op.create_index("ix_items_id", "items", ["id"])
    # Catalogue listing filters by kind and sorts by start time
    op.create_index("ix_items_kind_starts_at", "items", ["kind", "starts_at"])

    # Tickets
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'unpaid'")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_ticket_quantity_positive"),
        sa.CheckConstraint("total_price >= 0", name="check_ticket_total_non_negative"),
        sa.CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_ticket_status"),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'paid', 'refunded')", name="check_ticket_payment_status"
        ),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_item_id", "tickets", ["item_id"])
    # Stats and archive checks sum confirmed quantities per item
    op.create_index("ix_tickets_item_status", "tickets", ["item_id", "status"])

    # Registrations for gated items
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_proof_ref", sa.String(64), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("denial_reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(255), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("credential", sa.String(64), nullable=True),
        sa.Column("scanned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scanned_by", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("credential", name="uq_registrations_credential"),
        sa.CheckConstraint("status IN ('pending', 'approved', 'denied')", name="check_registration_status"),
        sa.CheckConstraint(
            "status = 'approved' OR credential IS NULL", name="check_credential_only_when_approved"
        ),
        sa.CheckConstraint(
            "status <> 'denied' OR denial_reason IS NOT NULL", name="check_denial_has_reason"
        ),
    )
    op.create_index("ix_registrations_id", "registrations", ["id"])
    op.create_index("ix_registrations_user_id", "registrations", ["user_id"])
    op.create_index("ix_registrations_item_id", "registrations", ["item_id"])
    op.create_index("ix_registrations_item_status", "registrations", ["item_id", "status"])
    # One pending-or-approved registration per (user, item); denied rows do
    # not count, so a denied user can submit again.
    op.create_index(
        "uq_registration_active_user_item",
        "registrations",
        ["user_id", "item_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
    )

    # Payment proof blobs
    op.create_table(
        "payment_proofs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ref", sa.String(64), nullable=False),
        sa.Column("content_type", sa.String(100), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_payment_proofs_ref", "payment_proofs", ["ref"], unique=True)


def downgrade() -> None:
    op.drop_table("payment_proofs")
    op.drop_table("registrations")
    op.drop_table("tickets")
    op.drop_table("items")
    op.drop_table("users")

"""Create admission tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2025-01-10 09:00:00.000000

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "date_capacity",
        sa.Column("date", sa.Date(), primary_key=True),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("total_bookings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.CheckConstraint("max_capacity >= 0", name="ck_date_capacity_max_non_negative"),
        sa.CheckConstraint("total_bookings >= 0", name="ck_date_capacity_bookings_non_negative"),
        sa.CheckConstraint(
            "total_bookings <= max_capacity", name="ck_date_capacity_bookings_lte_max"
        ),
    )

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_date", sa.Date(), sa.ForeignKey("date_capacity.date"), nullable=False
        ),
        sa.Column("primary_user_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("can_transfer", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index("ix_reservations_reservation_date", "reservations", ["reservation_date"])
    op.create_index("ix_reservations_primary_user_id", "reservations", ["primary_user_id"])

    op.create_table(
        "reservation_occupants",
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column(
            "added_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_reservation_occupants_user_id", "reservation_occupants", ["user_id"]
    )

    op.create_table(
        "transfer_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("initiator_id", sa.String(64), nullable=False),
        sa.Column("target_user_id", sa.String(64), nullable=False),
        sa.Column("slot_user_id", sa.String(64), nullable=False),
        sa.Column("state", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_transfer_requests_reservation_id", "transfer_requests", ["reservation_id"])
    op.create_index("ix_transfer_requests_initiator_id", "transfer_requests", ["initiator_id"])
    op.create_index("ix_transfer_requests_target_user_id", "transfer_requests", ["target_user_id"])

    # At most one PENDING transfer per (reservation, target user)
    op.create_index(
        "uq_transfer_requests_pending_target",
        "transfer_requests",
        ["reservation_id", "target_user_id"],
        unique=True,
        postgresql_where=sa.text("state = 'PENDING'"),
        sqlite_where=sa.text("state = 'PENDING'"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_transfer_requests_pending_target", table_name="transfer_requests")
    op.drop_table("transfer_requests")
    op.drop_table("reservation_occupants")
    op.drop_table("reservations")
    op.drop_table("date_capacity")

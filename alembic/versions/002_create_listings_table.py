"""create listings table

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    listingtype = sa.Enum("BUY", "SELL", name="listingtype")
    listingtype.create(op.get_bind(), checkfirst=True)

    listingstatus = sa.Enum(
        "ACTIVE", "PENDING", "COMPLETED", "CANCELED",
        name="listingstatus",
    )
    listingstatus.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", ENUM(name="listingtype", create_type=False), nullable=False),
        sa.Column("currency_from", sa.String(3), nullable=False),
        sa.Column("currency_to", sa.String(3), nullable=False),
        sa.Column("amount_from", sa.Numeric(18, 2), nullable=False),
        sa.Column("amount_to", sa.Numeric(18, 2), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(12, 6), nullable=True),
        sa.Column("payment_method", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(100), nullable=False),
        sa.Column(
            "status", ENUM(name="listingstatus", create_type=False),
            server_default="ACTIVE", nullable=False,
        ),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount_from > 0", name="ck_listings_amount_from_positive"),
        sa.CheckConstraint("amount_to > 0", name="ck_listings_amount_to_positive"),
    )
    op.create_index("ix_listings_uuid", "listings", ["uuid"], unique=True)
    op.create_index("ix_listings_user_id", "listings", ["user_id"])
    op.create_index("ix_listings_status", "listings", ["status"])
    # Candidate discovery filters on pair + direction among ACTIVE rows
    op.create_index(
        "ix_listings_candidates", "listings",
        ["status", "currency_from", "currency_to", "type"],
    )


def downgrade() -> None:
    op.drop_index("ix_listings_candidates", table_name="listings")
    op.drop_index("ix_listings_status", table_name="listings")
    op.drop_index("ix_listings_user_id", table_name="listings")
    op.drop_index("ix_listings_uuid", table_name="listings")
    op.drop_table("listings")
    sa.Enum(name="listingstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="listingtype").drop(op.get_bind(), checkfirst=True)

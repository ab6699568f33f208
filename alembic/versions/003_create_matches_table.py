"""create matches table

Revision ID: 003
Revises: 002
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM

revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    matchstatus = sa.Enum(
        "PENDING", "ACCEPTED", "REJECTED", "CANCELED", "COMPLETED", "DISPUTED",
        name="matchstatus",
    )
    matchstatus.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.Uuid(), nullable=False),
        sa.Column("initiator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "initiator_listing_id", sa.Integer(),
            sa.ForeignKey("listings.id"), nullable=False,
        ),
        sa.Column(
            "matched_listing_id", sa.Integer(),
            sa.ForeignKey("listings.id"), nullable=False,
        ),
        sa.Column(
            "status", ENUM(name="matchstatus", create_type=False),
            server_default="PENDING", nullable=False,
        ),
        sa.Column(
            "initiator_confirmed_completion", sa.Boolean(),
            server_default=sa.false(), nullable=False,
        ),
        sa.Column(
            "matched_confirmed_completion", sa.Boolean(),
            server_default=sa.false(), nullable=False,
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
    )
    op.create_index("ix_matches_uuid", "matches", ["uuid"], unique=True)
    op.create_index("ix_matches_initiator_id", "matches", ["initiator_id"])
    op.create_index("ix_matches_initiator_listing_id", "matches", ["initiator_listing_id"])
    op.create_index("ix_matches_matched_listing_id", "matches", ["matched_listing_id"])
    op.create_index("ix_matches_status", "matches", ["status"])


def downgrade() -> None:
    op.drop_index("ix_matches_status", table_name="matches")
    op.drop_index("ix_matches_matched_listing_id", table_name="matches")
    op.drop_index("ix_matches_initiator_listing_id", table_name="matches")
    op.drop_index("ix_matches_initiator_id", table_name="matches")
    op.drop_index("ix_matches_uuid", table_name="matches")
    op.drop_table("matches")
    sa.Enum(name="matchstatus").drop(op.get_bind(), checkfirst=True)

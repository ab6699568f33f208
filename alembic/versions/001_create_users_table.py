"""create users table

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("country_of_origin", sa.String(100), nullable=False),
        sa.Column("country_of_residence", sa.String(100), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_index("ix_users_uuid", "users", ["uuid"], unique=True)
    # Corridor lookups from the matching engine
    op.create_index(
        "ix_users_corridor", "users", ["country_of_residence", "country_of_origin"],
    )


def downgrade() -> None:
    op.drop_index("ix_users_corridor", table_name="users")
    op.drop_index("ix_users_uuid", table_name="users")
    op.drop_table("users")

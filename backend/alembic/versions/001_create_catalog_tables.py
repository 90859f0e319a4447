"""Create accounts and catalog tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Creates `accounts`, `categories`, `insects` and `insect_images`.
How:   Portable column types only, so the same revision runs on PostgreSQL
       and on SQLite for local work.

Rollback: downgrade() drops all four tables (all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("login", sa.String(80), nullable=True),
        sa.Column(
            "password_hash",
            sa.String(255),
            nullable=False,
            comment="bcrypt hash; the plaintext is never stored",
        ),
        sa.Column("profile_photo", sa.Text(), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("login"),
        sa.CheckConstraint("role IN ('admin', 'user')", name="ck_accounts_role"),
        sa.CheckConstraint("status IN ('pending', 'active')", name="ck_accounts_status"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "insects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("common_name", sa.String(150), nullable=False),
        sa.Column("scientific_name", sa.String(150), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("habitat", sa.Text(), nullable=True),
        sa.Column("behavior", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_insects_category_id", "insects", ["category_id"])

    op.create_table(
        "insect_images",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("insect_id", sa.Integer(), nullable=False),
        sa.Column(
            "image_url",
            sa.String(255),
            nullable=False,
            comment="Storage locator: /uploads/<name>",
        ),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("image_url"),
        sa.ForeignKeyConstraint(["insect_id"], ["insects.id"], ondelete="CASCADE"),
    )
    # The attach path counts images per insect on every upload
    op.create_index("idx_insect_images_insect_id", "insect_images", ["insect_id"])


def downgrade() -> None:
    op.drop_index("idx_insect_images_insect_id", table_name="insect_images")
    op.drop_table("insect_images")
    op.drop_index("idx_insects_category_id", table_name="insects")
    op.drop_table("insects")
    op.drop_table("categories")
    op.drop_table("accounts")

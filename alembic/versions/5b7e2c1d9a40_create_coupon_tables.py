"""create_coupon_tables

Revision ID: 5b7e2c1d9a40
Revises:
Create Date: 2026-10-17 09:12:31.204118

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5b7e2c1d9a40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "books",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("max_codes_per_user", sa.Integer(), nullable=False),
        sa.Column("max_redeem_count_per_user", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_books_owner_id", "books", ["owner_id"])

    op.create_table(
        "codes",
        sa.Column("code", sa.String(length=128), nullable=False),
        sa.Column("book_id", sa.String(length=32), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("expiration", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_to", sa.String(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_redeemed_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("code", "book_id"),
    )
    op.create_index("ix_codes_assigned_to", "codes", ["assigned_to"])
    op.create_index("ix_codes_locked_until", "codes", ["locked_until"])

    op.create_table(
        "redeem_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=128), nullable=False),
        sa.Column("book_id", sa.String(length=32), nullable=False),
        sa.Column("redeemed_on", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redeemed_by", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(
            ["code", "book_id"],
            ["codes.code", "codes.book_id"],
        ),
    )
    op.create_index("ix_redeem_logs_id", "redeem_logs", ["id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_redeem_logs_id", table_name="redeem_logs")
    op.drop_table("redeem_logs")
    op.drop_index("ix_codes_locked_until", table_name="codes")
    op.drop_index("ix_codes_assigned_to", table_name="codes")
    op.drop_table("codes")
    op.drop_index("ix_books_owner_id", table_name="books")
    op.drop_table("books")

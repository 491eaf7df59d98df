"""create book catalog and library tables

Revision ID: 3f1d2c8a7b60
Revises:
Create Date: 2026-10-17 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = "3f1d2c8a7b60"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "book",
        sa.Column("id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("title", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("authors", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("subtitle", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("isbn", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("isbn_10", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("isbn_13", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("google_id", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("amazon_asin", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("open_library_key", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("thumbnail", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("publisher", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("published_date", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("page_count", sa.Integer(), nullable=True),
        sa.Column("language", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("categories", sa.JSON(), nullable=True),
        sa.Column("maturity_rating", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("amazon_rating", sa.Float(), nullable=True),
        sa.Column("amazon_rating_count", sa.Integer(), nullable=True),
        sa.Column(
            "info_quality",
            sa.Enum("basic", "complete", name="infoquality"),
            server_default="basic",
            nullable=False,
        ),
        sa.Column("enriched_at", sa.DateTime(), nullable=True),
        sa.Column(
            "asin_status",
            sa.Enum("pending", "processing", "completed", "failed", name="asinstatus"),
            server_default="pending",
            nullable=False,
        ),
        sa.Column("asin_processed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("book", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_book_isbn"), ["isbn"], unique=True)
        batch_op.create_index(batch_op.f("ix_book_google_id"), ["google_id"], unique=True)
        batch_op.create_index(batch_op.f("ix_book_amazon_asin"), ["amazon_asin"], unique=True)

    op.create_table(
        "userbook",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("book_id", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False),
        sa.Column(
            "reading_status",
            sa.Enum(
                "want_to_read",
                "reading",
                "read",
                "abandoned",
                "on_hold",
                "re_reading",
                name="readingstatus",
            ),
            server_default="want_to_read",
            nullable=False,
        ),
        sa.Column("added_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("read_at", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["book_id"], ["book.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "book_id", name="uq_userbook_user_book"),
    )
    with op.batch_alter_table("userbook", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_userbook_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_userbook_book_id"), ["book_id"], unique=False)


def downgrade() -> None:
    with op.batch_alter_table("userbook", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_userbook_book_id"))
        batch_op.drop_index(batch_op.f("ix_userbook_user_id"))
    op.drop_table("userbook")

    with op.batch_alter_table("book", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_book_amazon_asin"))
        batch_op.drop_index(batch_op.f("ix_book_google_id"))
        batch_op.drop_index(batch_op.f("ix_book_isbn"))
    op.drop_table("book")

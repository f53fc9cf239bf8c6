"""init bookmark tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _ordered_columns() -> list[sa.Column]:
    return [
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _create_ordered_indexes(table: str) -> None:
    for col in ("owner_id", "order_index", "created_at", "updated_at"):
        op.create_index(f"ix_{table}_{col}", table, [col], unique=False)


def _drop_ordered_indexes(table: str) -> None:
    for col in ("updated_at", "created_at", "order_index", "owner_id"):
        op.drop_index(f"ix_{table}_{col}", table_name=table)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("api_token", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("api_token", name="uq_users_api_token"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_is_active", "users", ["is_active"], unique=False)
    op.create_index("ix_users_created_at", "users", ["created_at"], unique=False)

    op.create_table(
        "bookmark_collections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "description", sa.String(length=2000), nullable=False, server_default=sa.text("''")
        ),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("slug", sa.String(length=100), nullable=True),
        sa.Column("cover_url", sa.String(length=2048), nullable=True),
        *_ordered_columns(),
        sa.UniqueConstraint("owner_id", "slug", name="uq_bookmark_collections_owner_id_slug"),
    )
    _create_ordered_indexes("bookmark_collections")
    op.create_index(
        "ix_bookmark_collections_is_public", "bookmark_collections", ["is_public"], unique=False
    )
    op.create_index("ix_bookmark_collections_slug", "bookmark_collections", ["slug"], unique=False)

    op.create_table(
        "bookmark_categories",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "collection_id",
            sa.String(length=36),
            sa.ForeignKey("bookmark_collections.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "description", sa.String(length=2000), nullable=False, server_default=sa.text("''")
        ),
        *_ordered_columns(),
    )
    _create_ordered_indexes("bookmark_categories")
    op.create_index(
        "ix_bookmark_categories_collection_id",
        "bookmark_categories",
        ["collection_id"],
        unique=False,
    )

    op.create_table(
        "bookmark_subcategories",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "category_id",
            sa.String(length=36),
            sa.ForeignKey("bookmark_categories.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "description", sa.String(length=2000), nullable=False, server_default=sa.text("''")
        ),
        *_ordered_columns(),
    )
    _create_ordered_indexes("bookmark_subcategories")
    op.create_index(
        "ix_bookmark_subcategories_category_id",
        "bookmark_subcategories",
        ["category_id"],
        unique=False,
    )

    op.create_table(
        "bookmark_items",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "subcategory_id",
            sa.String(length=36),
            sa.ForeignKey("bookmark_subcategories.id"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column(
            "description", sa.String(length=2000), nullable=False, server_default=sa.text("''")
        ),
        sa.Column("icon_url", sa.String(length=2048), nullable=True),
        *_ordered_columns(),
    )
    _create_ordered_indexes("bookmark_items")
    op.create_index(
        "ix_bookmark_items_subcategory_id", "bookmark_items", ["subcategory_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_bookmark_items_subcategory_id", table_name="bookmark_items")
    _drop_ordered_indexes("bookmark_items")
    op.drop_table("bookmark_items")

    op.drop_index("ix_bookmark_subcategories_category_id", table_name="bookmark_subcategories")
    _drop_ordered_indexes("bookmark_subcategories")
    op.drop_table("bookmark_subcategories")

    op.drop_index("ix_bookmark_categories_collection_id", table_name="bookmark_categories")
    _drop_ordered_indexes("bookmark_categories")
    op.drop_table("bookmark_categories")

    op.drop_index("ix_bookmark_collections_slug", table_name="bookmark_collections")
    op.drop_index("ix_bookmark_collections_is_public", table_name="bookmark_collections")
    _drop_ordered_indexes("bookmark_collections")
    op.drop_table("bookmark_collections")

    op.drop_index("ix_users_created_at", table_name="users")
    op.drop_index("ix_users_is_active", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")

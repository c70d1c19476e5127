"""Create vaults and vault items tables.

Revision ID: 0001_create_vaults_and_vault_items
Revises:
Create Date: 2026-10-19 00:00:01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_create_vaults_and_vault_items"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


vault_item_type_enum = sa.Enum(
    "key_value",
    "secure_note",
    name="vault_item_type",
)


def upgrade() -> None:
    op.create_table(
        "vaults",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False, server_default="Untitled Vault"),
        sa.Column("category", sa.String(length=255), nullable=False, server_default="General"),
        sa.Column("color_value", sa.String(length=50), nullable=False, server_default="#3B82F6"),
        sa.Column("position_x", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("position_y", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("width", sa.Integer(), nullable=False, server_default=sa.text("400")),
        sa.Column("height", sa.Integer(), nullable=False, server_default=sa.text("300")),
        sa.Column("z_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("encryption_salt", sa.String(length=255), nullable=True),
        sa.Column("master_password_hash", sa.String(length=255), nullable=True),
        sa.Column("share_token", sa.String(length=255), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("shared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("share_token", name="uq_vaults_share_token"),
    )
    op.create_index("ix_vaults_owner_id", "vaults", ["owner_id"], unique=False)

    op.create_table(
        "vault_items",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("vault_id", sa.Uuid(), sa.ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_type", vault_item_type_enum, nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("encrypted_value", sa.Text(), nullable=False),
        sa.Column("iv", sa.String(length=255), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_vault_items_vault_id", "vault_items", ["vault_id"], unique=False)
    op.create_index("ix_vault_items_vault_order", "vault_items", ["vault_id", "order_index"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_vault_items_vault_order", table_name="vault_items")
    op.drop_index("ix_vault_items_vault_id", table_name="vault_items")
    op.drop_table("vault_items")
    op.drop_index("ix_vaults_owner_id", table_name="vaults")
    op.drop_table("vaults")

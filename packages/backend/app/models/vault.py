from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


DEFAULT_VAULT_TITLE = "Untitled Vault"
DEFAULT_VAULT_CATEGORY = "General"
DEFAULT_VAULT_COLOR = "#3B82F6"
DEFAULT_VAULT_WIDTH = 400
DEFAULT_VAULT_HEIGHT = 300


class Vault(Base):
    __tablename__ = "vaults"
    __table_args__ = (UniqueConstraint("share_token", name="uq_vaults_share_token"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default=DEFAULT_VAULT_TITLE)
    category: Mapped[str] = mapped_column(String(255), nullable=False, default=DEFAULT_VAULT_CATEGORY)
    color_value: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_VAULT_COLOR)
    position_x: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position_y: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    width: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_VAULT_WIDTH)
    height: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_VAULT_HEIGHT)
    z_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_locked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
    )
    encryption_salt: Mapped[str | None] = mapped_column(String(255), nullable=True)
    master_password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    share_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
    )
    shared_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

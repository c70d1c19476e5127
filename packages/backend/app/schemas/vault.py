from __future__ import annotations

import datetime
import uuid
from typing import Any

from pydantic import BaseModel, Field, field_validator


DECRYPTION_ERROR_SENTINEL = "[DECRYPTION_ERROR]"


def _enum_value(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


class CreateVaultRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=255)
    color_value: str | None = Field(default=None, max_length=50)
    position_x: float = Field(strict=True)
    position_y: float = Field(strict=True)
    width: int | None = None
    height: int | None = None
    z_index: int | None = None
    master_password: str | None = None


class UpdateVaultRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=255)
    color_value: str | None = Field(default=None, max_length=50)
    position_x: float | None = Field(default=None, strict=True)
    position_y: float | None = Field(default=None, strict=True)
    width: int | None = None
    height: int | None = None
    z_index: int | None = None


class UpdateVaultPositionRequest(BaseModel):
    position_x: float = Field(strict=True)
    position_y: float = Field(strict=True)


class CreateVaultItemRequest(BaseModel):
    item_type: str | None = None
    label: str | None = None
    value: str | None = None


class BulkVaultItemEntry(BaseModel):
    # Loosely typed: a malformed entry is skipped by the service, not rejected here.
    item_type: Any = "key_value"
    label: Any = None
    value: Any = None

    @field_validator("item_type", mode="before")
    @classmethod
    def _default_item_type(cls, value: Any) -> Any:
        return "key_value" if value is None else value


class BulkCreateVaultItemsRequest(BaseModel):
    items: list[BulkVaultItemEntry] = Field(default_factory=list)


class UpdateVaultItemRequest(BaseModel):
    label: str | None = None
    value: str | None = None


class ReorderVaultItemsRequest(BaseModel):
    item_ids: list[uuid.UUID]


class LockVaultRequest(BaseModel):
    master_password: str | None = None
    current_password: str | None = None


class UnlockVaultRequest(BaseModel):
    master_password: str | None = None


class VaultResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    category: str
    color_value: str
    position_x: float
    position_y: float
    width: int
    height: int
    z_index: int
    is_locked: bool
    share_token: str | None
    is_public: bool
    shared_at: datetime.datetime | None
    created_at: datetime.datetime
    updated_at: datetime.datetime
    item_count: int | None = None

    @classmethod
    def from_vault(cls, vault: Any, *, item_count: int | None = None) -> "VaultResponse":
        return cls(
            id=vault.id,
            owner_id=vault.owner_id,
            title=vault.title,
            category=vault.category,
            color_value=vault.color_value,
            position_x=vault.position_x,
            position_y=vault.position_y,
            width=vault.width,
            height=vault.height,
            z_index=vault.z_index,
            is_locked=vault.is_locked,
            share_token=vault.share_token,
            is_public=vault.is_public,
            shared_at=vault.shared_at,
            created_at=vault.created_at,
            updated_at=vault.updated_at,
            item_count=item_count,
        )


class VaultItemResponse(BaseModel):
    id: uuid.UUID
    vault_id: uuid.UUID
    item_type: str
    label: str
    value: str
    decryption_failed: bool = False
    order_index: int
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @classmethod
    def from_decrypted(cls, decrypted: Any) -> "VaultItemResponse":
        item = decrypted.item
        failed = decrypted.value.failed
        return cls(
            id=item.id,
            vault_id=item.vault_id,
            item_type=_enum_value(item.item_type),
            label=item.label,
            value=DECRYPTION_ERROR_SENTINEL if failed else decrypted.value.plaintext,
            decryption_failed=failed,
            order_index=item.order_index,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


class VaultDetailResponse(VaultResponse):
    encryption_salt: str | None = None
    items: list[VaultItemResponse] = Field(default_factory=list)
    requires_unlock: bool = False

    @classmethod
    def from_view(cls, view: Any) -> "VaultDetailResponse":
        item_count = None if view.requires_unlock else len(view.items)
        base = VaultResponse.from_vault(view.vault, item_count=item_count)
        reveal_salt = view.vault.is_locked and not view.requires_unlock
        return cls(
            **base.model_dump(),
            encryption_salt=view.vault.encryption_salt if reveal_salt else None,
            items=[VaultItemResponse.from_decrypted(item) for item in view.items],
            requires_unlock=view.requires_unlock,
        )


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "PaginationResponse":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit,
            has_next=page * limit < total,
            has_prev=page > 1,
        )


class VaultsPageResponse(BaseModel):
    vaults: list[VaultResponse]
    pagination: PaginationResponse


class BulkVaultItemsResponse(BaseModel):
    items: list[VaultItemResponse]
    count: int


class MessageResponse(BaseModel):
    message: str


class LockVaultResponse(BaseModel):
    message: str
    encryption_salt: str


class ShareVaultResponse(BaseModel):
    share_token: str
    share_url: str
    message: str


class SharedVaultItemResponse(BaseModel):
    id: uuid.UUID
    item_type: str
    label: str
    value: str
    decryption_failed: bool = False
    order_index: int

    @classmethod
    def from_decrypted(cls, decrypted: Any) -> "SharedVaultItemResponse":
        item = decrypted.item
        failed = decrypted.value.failed
        return cls(
            id=item.id,
            item_type=_enum_value(item.item_type),
            label=item.label,
            value=DECRYPTION_ERROR_SENTINEL if failed else decrypted.value.plaintext,
            decryption_failed=failed,
            order_index=item.order_index,
        )


class SharedVaultResponse(BaseModel):
    id: uuid.UUID
    title: str
    category: str
    color_value: str
    created_at: datetime.datetime
    updated_at: datetime.datetime
    items: list[SharedVaultItemResponse]
    is_shared: bool = True

    @classmethod
    def from_view(cls, view: Any) -> "SharedVaultResponse":
        vault = view.vault
        return cls(
            id=vault.id,
            title=vault.title,
            category=vault.category,
            color_value=vault.color_value,
            created_at=vault.created_at,
            updated_at=vault.updated_at,
            items=[SharedVaultItemResponse.from_decrypted(item) for item in view.items],
        )

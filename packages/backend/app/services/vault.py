from __future__ import annotations

import datetime
import logging
import math
import uuid
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.vault import (
    DEFAULT_VAULT_CATEGORY,
    DEFAULT_VAULT_COLOR,
    DEFAULT_VAULT_HEIGHT,
    DEFAULT_VAULT_TITLE,
    DEFAULT_VAULT_WIDTH,
    Vault,
)
from app.models.vault_item import VaultItem, VaultItemType
from app.schemas.vault import (
    BulkCreateVaultItemsRequest,
    CreateVaultItemRequest,
    CreateVaultRequest,
    UpdateVaultItemRequest,
    UpdateVaultRequest,
)
from app.security.cipher import Cipher, DecryptedValue
from app.security.password import (
    MAX_MASTER_PASSWORD_BYTES,
    MIN_MASTER_PASSWORD_LENGTH,
    exceeds_bcrypt_limit,
    generate_encryption_salt,
    hash_master_password,
    verify_master_password,
)


logger = logging.getLogger(__name__)


class VaultValidationError(Exception):
    pass


class VaultNotLockedError(VaultValidationError):
    pass


class VaultNotFoundError(Exception):
    pass


class VaultItemNotFoundError(Exception):
    pass


class InvalidMasterPasswordError(Exception):
    pass


class SharedVaultNotFoundError(Exception):
    pass


class SharedVaultLockedError(Exception):
    pass


@dataclass(frozen=True)
class DecryptedItem:
    item: VaultItem
    value: DecryptedValue


@dataclass(frozen=True)
class VaultView:
    vault: Vault
    items: list[DecryptedItem] = field(default_factory=list)
    requires_unlock: bool = False


@dataclass(frozen=True)
class ShareLink:
    share_token: str
    share_url: str


_UPDATABLE_VAULT_FIELDS = (
    "title",
    "category",
    "color_value",
    "position_x",
    "position_y",
    "width",
    "height",
    "z_index",
)


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _require_position(position_x: object, position_y: object) -> None:
    if not _is_number(position_x) or not _is_number(position_y):
        raise VaultValidationError("position_x and position_y are required and must be numbers.")


def _parse_item_type(value: object) -> VaultItemType | None:
    try:
        return VaultItemType(value)
    except (ValueError, TypeError):
        return None


def _validate_new_item(payload: CreateVaultItemRequest) -> tuple[VaultItemType, str, str]:
    item_type = _parse_item_type(payload.item_type)
    if item_type is None:
        raise VaultValidationError('item_type must be "key_value" or "secure_note"')
    label = (payload.label or "").strip()
    if not label:
        raise VaultValidationError("label is required")
    if payload.value is None:
        raise VaultValidationError("value is required")
    return item_type, label, payload.value


def _require_master_password_within_limit(password: str) -> None:
    if exceeds_bcrypt_limit(password):
        raise VaultValidationError(
            f"Master password must not exceed {MAX_MASTER_PASSWORD_BYTES} bytes"
        )


def _contains_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _build_share_url(frontend_url: str, share_token: str) -> str:
    return f"{frontend_url.rstrip('/')}/shared/vault/{share_token}"


async def _get_owned_vault(
    db: AsyncSession,
    *,
    vault_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Vault | None:
    result = await db.execute(
        select(Vault).where(
            Vault.id == vault_id,
            Vault.owner_id == owner_id,
        )
    )
    return result.scalar_one_or_none()


async def _require_owned_vault(
    db: AsyncSession,
    *,
    vault_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Vault:
    # Missing and foreign vaults are indistinguishable to the caller.
    vault = await _get_owned_vault(db, vault_id=vault_id, owner_id=owner_id)
    if vault is None:
        raise VaultNotFoundError
    return vault


async def _get_item_in_vault(
    db: AsyncSession,
    *,
    item_id: uuid.UUID,
    vault_id: uuid.UUID,
) -> VaultItem | None:
    result = await db.execute(
        select(VaultItem).where(
            VaultItem.id == item_id,
            VaultItem.vault_id == vault_id,
        )
    )
    return result.scalar_one_or_none()


async def _list_items(db: AsyncSession, *, vault_id: uuid.UUID) -> list[VaultItem]:
    result = await db.execute(
        select(VaultItem)
        .where(VaultItem.vault_id == vault_id)
        .order_by(VaultItem.order_index.asc(), VaultItem.created_at.asc(), VaultItem.id.asc())
    )
    return list(result.scalars().all())


async def _next_order_index(db: AsyncSession, *, vault_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.max(VaultItem.order_index)).where(VaultItem.vault_id == vault_id)
    )
    max_order_index = result.scalar_one_or_none()
    return 0 if max_order_index is None else int(max_order_index) + 1


def _decrypt_items(cipher: Cipher, items: list[VaultItem], *, vault_id: uuid.UUID) -> list[DecryptedItem]:
    decrypted: list[DecryptedItem] = []
    for item in items:
        value = cipher.try_decrypt(item.encrypted_value, item.iv)
        if value.failed:
            logger.error("Error decrypting vault item %s in vault %s", item.id, vault_id)
        decrypted.append(DecryptedItem(item=item, value=value))
    return decrypted


async def list_vaults(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    page: int,
    limit: int,
    category: str | None = None,
    search: str | None = None,
) -> tuple[list[tuple[Vault, int]], int]:
    conditions = [Vault.owner_id == owner_id]
    if category:
        conditions.append(Vault.category == category)
    if search:
        conditions.append(Vault.title.ilike(_contains_pattern(search), escape="\\"))

    total_result = await db.execute(select(func.count(Vault.id)).where(*conditions))
    total = int(total_result.scalar_one() or 0)

    result = await db.execute(
        select(Vault)
        .where(*conditions)
        .order_by(Vault.updated_at.desc(), Vault.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    vaults = list(result.scalars().all())
    if not vaults:
        return [], total

    counts_result = await db.execute(
        select(VaultItem.vault_id, func.count(VaultItem.id))
        .where(VaultItem.vault_id.in_([vault.id for vault in vaults]))
        .group_by(VaultItem.vault_id)
    )
    item_counts = {vault_id: int(count) for vault_id, count in counts_result.all()}
    return [(vault, item_counts.get(vault.id, 0)) for vault in vaults], total


async def get_vault(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    cipher: Cipher,
    master_password: str | None = None,
) -> VaultView:
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    if vault.is_locked:
        if not master_password:
            return VaultView(vault=vault, items=[], requires_unlock=True)
        if not await verify_master_password(master_password, vault.master_password_hash):
            raise InvalidMasterPasswordError("Invalid master password")

    items = await _list_items(db, vault_id=vault.id)
    return VaultView(vault=vault, items=_decrypt_items(cipher, items, vault_id=vault.id))


async def create_vault(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    payload: CreateVaultRequest,
    now: datetime.datetime | None = None,
) -> Vault:
    created_at = now or _utc_now()
    _require_position(payload.position_x, payload.position_y)
    if payload.master_password:
        _require_master_password_within_limit(payload.master_password)

    vault = Vault(
        owner_id=owner_id,
        title=payload.title if payload.title is not None else DEFAULT_VAULT_TITLE,
        category=payload.category if payload.category is not None else DEFAULT_VAULT_CATEGORY,
        color_value=payload.color_value if payload.color_value is not None else DEFAULT_VAULT_COLOR,
        position_x=payload.position_x,
        position_y=payload.position_y,
        width=payload.width if payload.width is not None else DEFAULT_VAULT_WIDTH,
        height=payload.height if payload.height is not None else DEFAULT_VAULT_HEIGHT,
        z_index=payload.z_index if payload.z_index is not None else 0,
        is_locked=False,
        is_public=False,
        created_at=created_at,
        updated_at=created_at,
    )

    if payload.master_password and len(payload.master_password) >= MIN_MASTER_PASSWORD_LENGTH:
        vault.is_locked = True
        vault.encryption_salt = generate_encryption_salt()
        vault.master_password_hash = await hash_master_password(payload.master_password)

    db.add(vault)
    await db.commit()
    await db.refresh(vault)
    return vault


async def update_vault(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    payload: UpdateVaultRequest,
    now: datetime.datetime | None = None,
) -> Vault:
    updated_at = now or _utc_now()
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    changes = {
        name: getattr(payload, name)
        for name in _UPDATABLE_VAULT_FIELDS
        if name in payload.model_fields_set and getattr(payload, name) is not None
    }
    if "position_x" in changes or "position_y" in changes:
        _require_position(
            changes.get("position_x", vault.position_x),
            changes.get("position_y", vault.position_y),
        )

    for name, value in changes.items():
        setattr(vault, name, value)
    vault.updated_at = updated_at

    await db.commit()
    await db.refresh(vault)
    return vault


async def update_vault_position(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    position_x: float,
    position_y: float,
    now: datetime.datetime | None = None,
) -> Vault:
    updated_at = now or _utc_now()
    _require_position(position_x, position_y)

    result = await db.execute(
        update(Vault)
        .where(
            Vault.id == vault_id,
            Vault.owner_id == owner_id,
        )
        .values(position_x=position_x, position_y=position_y, updated_at=updated_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise VaultNotFoundError
    await db.commit()

    return await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)


async def delete_vault(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
) -> None:
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    await db.execute(delete(VaultItem).where(VaultItem.vault_id == vault.id))
    await db.delete(vault)
    await db.commit()
    logger.info("Vault %s deleted by owner %s", vault_id, owner_id)


async def add_item(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    payload: CreateVaultItemRequest,
    cipher: Cipher,
    now: datetime.datetime | None = None,
) -> DecryptedItem:
    created_at = now or _utc_now()
    item_type, label, value = _validate_new_item(payload)
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    order_index = await _next_order_index(db, vault_id=vault.id)
    encrypted = cipher.encrypt(value)
    item = VaultItem(
        vault_id=vault.id,
        item_type=item_type,
        label=label,
        encrypted_value=encrypted.ciphertext,
        iv=encrypted.iv,
        order_index=order_index,
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(item)
    vault.updated_at = created_at
    await db.commit()
    await db.refresh(item)
    # The caller already holds the plaintext; skip the decrypt round trip.
    return DecryptedItem(item=item, value=DecryptedValue(plaintext=value))


async def bulk_add_items(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    payload: BulkCreateVaultItemsRequest,
    cipher: Cipher,
    now: datetime.datetime | None = None,
) -> list[DecryptedItem]:
    """Insert many items, skipping malformed entries (e.g. broken ``.env`` lines).

    Every created item is committed on its own; a later failure does not roll
    back earlier inserts.
    """
    created_at = now or _utc_now()
    if not payload.items:
        raise VaultValidationError("items array is required and must not be empty")
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    next_order_index = await _next_order_index(db, vault_id=vault.id)
    created: list[DecryptedItem] = []
    for entry in payload.items:
        item_type = _parse_item_type(entry.item_type)
        if item_type is None or not isinstance(entry.label, str) or not isinstance(entry.value, str):
            continue
        label = entry.label.strip()
        if not label or not entry.value:
            continue

        encrypted = cipher.encrypt(entry.value)
        item = VaultItem(
            vault_id=vault.id,
            item_type=item_type,
            label=label,
            encrypted_value=encrypted.ciphertext,
            iv=encrypted.iv,
            order_index=next_order_index,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(item)
        await db.commit()
        next_order_index += 1
        created.append(DecryptedItem(item=item, value=DecryptedValue(plaintext=entry.value)))

    skipped = len(payload.items) - len(created)
    if skipped:
        logger.info("Bulk import into vault %s skipped %d invalid item(s)", vault.id, skipped)

    vault.updated_at = created_at
    await db.commit()
    return created


async def update_item(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: UpdateVaultItemRequest,
    cipher: Cipher,
    now: datetime.datetime | None = None,
) -> DecryptedItem:
    updated_at = now or _utc_now()
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)
    item = await _get_item_in_vault(db, item_id=item_id, vault_id=vault.id)
    if item is None:
        raise VaultItemNotFoundError

    if payload.label is not None:
        label = payload.label.strip()
        if not label:
            raise VaultValidationError("label must not be empty")
        item.label = label

    if payload.value is not None:
        # Always a fresh IV, even when the plaintext is unchanged.
        encrypted = cipher.encrypt(payload.value)
        item.encrypted_value = encrypted.ciphertext
        item.iv = encrypted.iv
        value = DecryptedValue(plaintext=payload.value)
    else:
        value = cipher.try_decrypt(item.encrypted_value, item.iv)
        if value.failed:
            logger.error("Error decrypting vault item %s in vault %s", item.id, vault.id)

    item.updated_at = updated_at
    vault.updated_at = updated_at
    await db.commit()
    await db.refresh(item)
    return DecryptedItem(item=item, value=value)


async def delete_item(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    item_id: uuid.UUID,
    now: datetime.datetime | None = None,
) -> None:
    deleted_at = now or _utc_now()
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)
    item = await _get_item_in_vault(db, item_id=item_id, vault_id=vault.id)
    if item is None:
        raise VaultItemNotFoundError

    removed_index = item.order_index
    await db.delete(item)
    await db.flush()
    await db.execute(
        update(VaultItem)
        .where(
            VaultItem.vault_id == vault.id,
            VaultItem.order_index > removed_index,
        )
        .values(order_index=VaultItem.order_index - 1)
        .execution_options(synchronize_session=False)
    )
    vault.updated_at = deleted_at
    await db.commit()


async def reorder_items(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    item_ids: list[uuid.UUID],
    now: datetime.datetime | None = None,
) -> list[VaultItem]:
    """Apply the caller's order; items left out keep their relative order at the end."""
    updated_at = now or _utc_now()
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)
    items = await _list_items(db, vault_id=vault.id)
    items_by_id = {item.id: item for item in items}

    ordered: list[VaultItem] = []
    seen: set[uuid.UUID] = set()
    for item_id in item_ids:
        item = items_by_id.get(item_id)
        if item is None or item_id in seen:
            continue
        seen.add(item_id)
        ordered.append(item)
    ordered.extend(item for item in items if item.id not in seen)

    for index, item in enumerate(ordered):
        if item.order_index != index:
            item.order_index = index
            await db.flush()

    vault.updated_at = updated_at
    await db.commit()
    return ordered


async def lock_vault(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    master_password: str | None,
    current_password: str | None = None,
    now: datetime.datetime | None = None,
) -> str:
    """Set or change the master password and return the new encryption salt.

    Item ciphertexts are untouched: the master password gates API reads only.
    """
    updated_at = now or _utc_now()
    if not master_password or len(master_password) < MIN_MASTER_PASSWORD_LENGTH:
        raise VaultValidationError(
            f"Master password must be at least {MIN_MASTER_PASSWORD_LENGTH} characters"
        )
    _require_master_password_within_limit(master_password)
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    if vault.is_locked:
        if not current_password:
            raise VaultValidationError("Current password is required to change master password")
        if not await verify_master_password(current_password, vault.master_password_hash):
            raise InvalidMasterPasswordError("Invalid current password")

    encryption_salt = generate_encryption_salt()
    vault.master_password_hash = await hash_master_password(master_password)
    vault.encryption_salt = encryption_salt
    vault.is_locked = True
    vault.updated_at = updated_at
    await db.commit()
    return encryption_salt


async def unlock_vault(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    master_password: str | None,
    now: datetime.datetime | None = None,
) -> None:
    updated_at = now or _utc_now()
    if not master_password:
        raise VaultValidationError("Master password is required")
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    if not vault.is_locked:
        raise VaultNotLockedError("Vault is not locked")
    if not await verify_master_password(master_password, vault.master_password_hash):
        raise InvalidMasterPasswordError("Invalid master password")

    vault.is_locked = False
    vault.master_password_hash = None
    vault.encryption_salt = None
    vault.updated_at = updated_at
    await db.commit()


async def enable_sharing(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    frontend_url: str | None = None,
    now: datetime.datetime | None = None,
) -> ShareLink:
    shared_at = now or _utc_now()
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    if not vault.share_token:
        vault.share_token = str(uuid.uuid4())
    if vault.shared_at is None:
        vault.shared_at = shared_at
    vault.is_public = True
    await db.commit()
    logger.info("Sharing enabled for vault %s", vault.id)

    return ShareLink(
        share_token=vault.share_token,
        share_url=_build_share_url(frontend_url or settings.frontend_url, vault.share_token),
    )


async def disable_sharing(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID,
    vault_id: uuid.UUID,
    rotate_token: bool | None = None,
) -> None:
    """Hide the vault from the public path.

    By default the token is kept, so re-enabling revives previously issued
    links. With ``rotate_token`` the token is dropped and re-enabling mints a
    new one.
    """
    vault = await _require_owned_vault(db, vault_id=vault_id, owner_id=owner_id)

    if rotate_token is None:
        rotate_token = settings.vault_share_rotate_on_disable
    vault.is_public = False
    if rotate_token:
        vault.share_token = None
        vault.shared_at = None
    await db.commit()
    logger.info("Sharing disabled for vault %s (token rotated: %s)", vault.id, rotate_token)


async def get_shared_vault(
    db: AsyncSession,
    *,
    share_token: str,
    cipher: Cipher,
) -> VaultView:
    result = await db.execute(
        select(Vault).where(
            Vault.share_token == share_token,
            Vault.is_public.is_(True),
        )
    )
    vault = result.scalar_one_or_none()
    if vault is None:
        raise SharedVaultNotFoundError
    if vault.is_locked:
        raise SharedVaultLockedError

    items = await _list_items(db, vault_id=vault.id)
    return VaultView(vault=vault, items=_decrypt_items(cipher, items, vault_id=vault.id))

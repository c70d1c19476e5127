from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import CurrentUser, get_current_user
from app.api.dependencies.cipher import get_cipher
from app.core.problems import ERROR_TYPE_BASE, bad_request, not_found, problem_response
from app.db.session import get_db_session
from app.schemas.vault import (
    BulkCreateVaultItemsRequest,
    BulkVaultItemsResponse,
    CreateVaultItemRequest,
    CreateVaultRequest,
    LockVaultRequest,
    LockVaultResponse,
    MessageResponse,
    PaginationResponse,
    ReorderVaultItemsRequest,
    ShareVaultResponse,
    UnlockVaultRequest,
    UpdateVaultItemRequest,
    UpdateVaultPositionRequest,
    UpdateVaultRequest,
    VaultDetailResponse,
    VaultItemResponse,
    VaultResponse,
    VaultsPageResponse,
)
from app.security.cipher import Cipher, EncryptionError
from app.services.vault import (
    InvalidMasterPasswordError,
    VaultItemNotFoundError,
    VaultNotFoundError,
    VaultValidationError,
    add_item,
    bulk_add_items,
    create_vault,
    delete_item,
    delete_vault,
    disable_sharing,
    enable_sharing,
    get_vault,
    list_vaults,
    lock_vault,
    reorder_items,
    unlock_vault,
    update_item,
    update_vault,
    update_vault_position,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/vaults", tags=["vaults"])

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


def _vault_not_found() -> JSONResponse:
    return not_found("Vault not found or access denied.", "vault-not-found")


def _item_not_found() -> JSONResponse:
    return not_found("Vault item not found.", "vault-item-not-found")


def _invalid_password(exc: InvalidMasterPasswordError) -> JSONResponse:
    return problem_response(
        status=401,
        title="Unauthorized",
        detail=str(exc) or "Invalid master password.",
        type_=f"{ERROR_TYPE_BASE}/invalid-master-password",
    )


def _encryption_failed(vault_id: uuid.UUID) -> JSONResponse:
    logger.error("Encryption failed for vault %s", vault_id)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="The value could not be stored securely.",
        type_=f"{ERROR_TYPE_BASE}/encryption-failed",
    )


@router.get("", response_model=VaultsPageResponse)
async def list_vaults_endpoint(
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> VaultsPageResponse:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_LIMIT)
    rows, total = await list_vaults(
        db,
        owner_id=current_user.id,
        page=page,
        limit=limit,
        category=category,
        search=search,
    )
    return VaultsPageResponse(
        vaults=[VaultResponse.from_vault(vault, item_count=item_count) for vault, item_count in rows],
        pagination=PaginationResponse.build(page=page, limit=limit, total=total),
    )


@router.get("/{vault_id}", response_model=VaultDetailResponse)
async def get_vault_endpoint(
    vault_id: uuid.UUID,
    master_password: str | None = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cipher: Cipher = Depends(get_cipher),
) -> VaultDetailResponse:
    try:
        view = await get_vault(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            cipher=cipher,
            master_password=master_password,
        )
    except VaultNotFoundError:
        return _vault_not_found()
    except InvalidMasterPasswordError as exc:
        return _invalid_password(exc)
    return VaultDetailResponse.from_view(view)


@router.post("", response_model=VaultResponse, status_code=201)
async def create_vault_endpoint(
    payload: CreateVaultRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> VaultResponse:
    try:
        vault = await create_vault(db, owner_id=current_user.id, payload=payload)
    except VaultValidationError as exc:
        return bad_request(str(exc))
    return VaultResponse.from_vault(vault, item_count=0)


@router.put("/{vault_id}", response_model=VaultResponse)
async def update_vault_endpoint(
    vault_id: uuid.UUID,
    payload: UpdateVaultRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> VaultResponse:
    try:
        vault = await update_vault(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            payload=payload,
        )
    except VaultNotFoundError:
        return _vault_not_found()
    except VaultValidationError as exc:
        return bad_request(str(exc))
    return VaultResponse.from_vault(vault)


@router.put("/{vault_id}/position", response_model=VaultResponse)
async def update_vault_position_endpoint(
    vault_id: uuid.UUID,
    payload: UpdateVaultPositionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> VaultResponse:
    try:
        vault = await update_vault_position(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            position_x=payload.position_x,
            position_y=payload.position_y,
        )
    except VaultNotFoundError:
        return _vault_not_found()
    except VaultValidationError as exc:
        return bad_request(str(exc))
    return VaultResponse.from_vault(vault)


@router.delete("/{vault_id}", response_model=MessageResponse)
async def delete_vault_endpoint(
    vault_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await delete_vault(db, owner_id=current_user.id, vault_id=vault_id)
    except VaultNotFoundError:
        return _vault_not_found()
    return MessageResponse(message="Vault deleted successfully")


# Declared before /items/{item_id} so "reorder" is never parsed as an item id.
@router.put("/{vault_id}/items/reorder", response_model=MessageResponse)
async def reorder_items_endpoint(
    vault_id: uuid.UUID,
    payload: ReorderVaultItemsRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await reorder_items(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            item_ids=payload.item_ids,
        )
    except VaultNotFoundError:
        return _vault_not_found()
    return MessageResponse(message="Items reordered successfully")


@router.post("/{vault_id}/items", response_model=VaultItemResponse, status_code=201)
async def add_item_endpoint(
    vault_id: uuid.UUID,
    payload: CreateVaultItemRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cipher: Cipher = Depends(get_cipher),
) -> VaultItemResponse:
    try:
        created = await add_item(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            payload=payload,
            cipher=cipher,
        )
    except VaultValidationError as exc:
        return bad_request(str(exc))
    except VaultNotFoundError:
        return _vault_not_found()
    except EncryptionError:
        return _encryption_failed(vault_id)
    return VaultItemResponse.from_decrypted(created)


@router.post("/{vault_id}/items/bulk", response_model=BulkVaultItemsResponse, status_code=201)
async def bulk_add_items_endpoint(
    vault_id: uuid.UUID,
    payload: BulkCreateVaultItemsRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cipher: Cipher = Depends(get_cipher),
) -> BulkVaultItemsResponse:
    try:
        created = await bulk_add_items(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            payload=payload,
            cipher=cipher,
        )
    except VaultValidationError as exc:
        return bad_request(str(exc))
    except VaultNotFoundError:
        return _vault_not_found()
    except EncryptionError:
        return _encryption_failed(vault_id)
    return BulkVaultItemsResponse(
        items=[VaultItemResponse.from_decrypted(item) for item in created],
        count=len(created),
    )


@router.put("/{vault_id}/items/{item_id}", response_model=VaultItemResponse)
async def update_item_endpoint(
    vault_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: UpdateVaultItemRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cipher: Cipher = Depends(get_cipher),
) -> VaultItemResponse:
    try:
        updated = await update_item(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            item_id=item_id,
            payload=payload,
            cipher=cipher,
        )
    except VaultNotFoundError:
        return _vault_not_found()
    except VaultItemNotFoundError:
        return _item_not_found()
    except VaultValidationError as exc:
        return bad_request(str(exc))
    except EncryptionError:
        return _encryption_failed(vault_id)
    return VaultItemResponse.from_decrypted(updated)


@router.delete("/{vault_id}/items/{item_id}", response_model=MessageResponse)
async def delete_item_endpoint(
    vault_id: uuid.UUID,
    item_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await delete_item(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            item_id=item_id,
        )
    except VaultNotFoundError:
        return _vault_not_found()
    except VaultItemNotFoundError:
        return _item_not_found()
    return MessageResponse(message="Item deleted successfully")


@router.post("/{vault_id}/share", response_model=ShareVaultResponse)
async def enable_sharing_endpoint(
    vault_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ShareVaultResponse:
    try:
        link = await enable_sharing(db, owner_id=current_user.id, vault_id=vault_id)
    except VaultNotFoundError:
        return _vault_not_found()
    return ShareVaultResponse(
        share_token=link.share_token,
        share_url=link.share_url,
        message="Vault sharing enabled",
    )


@router.delete("/{vault_id}/share", response_model=MessageResponse)
async def disable_sharing_endpoint(
    vault_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await disable_sharing(db, owner_id=current_user.id, vault_id=vault_id)
    except VaultNotFoundError:
        return _vault_not_found()
    return MessageResponse(message="Vault sharing disabled")


@router.post("/{vault_id}/lock", response_model=LockVaultResponse)
async def lock_vault_endpoint(
    vault_id: uuid.UUID,
    payload: LockVaultRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> LockVaultResponse:
    try:
        encryption_salt = await lock_vault(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            master_password=payload.master_password,
            current_password=payload.current_password,
        )
    except VaultValidationError as exc:
        return bad_request(str(exc))
    except VaultNotFoundError:
        return _vault_not_found()
    except InvalidMasterPasswordError as exc:
        return _invalid_password(exc)
    return LockVaultResponse(message="Vault locked successfully", encryption_salt=encryption_salt)


@router.post("/{vault_id}/unlock", response_model=MessageResponse)
async def unlock_vault_endpoint(
    vault_id: uuid.UUID,
    payload: UnlockVaultRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await unlock_vault(
            db,
            owner_id=current_user.id,
            vault_id=vault_id,
            master_password=payload.master_password,
        )
    except VaultValidationError as exc:
        return bad_request(str(exc))
    except VaultNotFoundError:
        return _vault_not_found()
    except InvalidMasterPasswordError as exc:
        return _invalid_password(exc)
    return MessageResponse(message="Vault unlocked successfully")

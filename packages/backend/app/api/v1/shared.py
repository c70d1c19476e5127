
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.cipher import get_cipher
from app.core.problems import ERROR_TYPE_BASE, not_found, problem_response
from app.db.session import get_db_session
from app.schemas.vault import SharedVaultResponse
from app.security.cipher import Cipher
from app.services.vault import SharedVaultLockedError, SharedVaultNotFoundError, get_shared_vault


router = APIRouter(prefix="/api/v1/shared", tags=["shared"])


@router.get("/vault/{share_token}", response_model=SharedVaultResponse)
async def get_shared_vault_endpoint(
    share_token: str,
    db: AsyncSession = Depends(get_db_session),
    cipher: Cipher = Depends(get_cipher),
) -> SharedVaultResponse:
    try:
        view = await get_shared_vault(db, share_token=share_token, cipher=cipher)
    except SharedVaultNotFoundError:
        return not_found("Shared vault not found or no longer public.", "shared-vault-not-found")
    except SharedVaultLockedError:
        return problem_response(
            status=403,
            title="Forbidden",
            detail="This vault is password protected and cannot be viewed via share link.",
            type_=f"{ERROR_TYPE_BASE}/shared-vault-locked",
        )
    return SharedVaultResponse.from_view(view)

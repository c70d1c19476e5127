from __future__ import annotations

import asyncio
import base64
import secrets

import bcrypt

from app.core.settings import settings


MIN_MASTER_PASSWORD_LENGTH = 8
SALT_LENGTH = 16
# bcrypt only reads the first 72 bytes; longer master passwords are refused.
MAX_MASTER_PASSWORD_BYTES = 72


def generate_encryption_salt() -> str:
    return base64.b64encode(secrets.token_bytes(SALT_LENGTH)).decode("ascii")


def exceeds_bcrypt_limit(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_MASTER_PASSWORD_BYTES


def _hash_sync(password: str, rounds: int) -> str:
    if exceeds_bcrypt_limit(password):
        raise ValueError(f"master password must not exceed {MAX_MASTER_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _verify_sync(password: str, password_hash: str) -> bool:
    # A longer input would otherwise match on its first 72 bytes.
    if exceeds_bcrypt_limit(password):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


async def hash_master_password(password: str, *, rounds: int | None = None) -> str:
    return await asyncio.to_thread(_hash_sync, password, rounds or settings.master_password_bcrypt_rounds)


async def verify_master_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return await asyncio.to_thread(_verify_sync, password, password_hash)

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.vault_item import VaultItem
from app.security.cipher import Cipher, DecryptionError


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


@dataclass
class KeyRotationReport:
    rotated: int = 0
    already_rotated: int = 0
    failed_item_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_item_ids)


async def rotate_vault_encryption_key(
    db: AsyncSession,
    *,
    old_key: bytes,
    new_key: bytes,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> KeyRotationReport:
    """Re-encrypt every vault item from ``old_key`` to ``new_key``.

    Runs offline in batches ordered by item id, committing after each batch.
    Items that already decrypt under the new key are left alone, so an
    interrupted run can be restarted. Items readable under neither key are
    reported and left untouched.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")

    old_cipher = Cipher(old_key)
    new_cipher = Cipher(new_key)
    report = KeyRotationReport()
    last_id: uuid.UUID | None = None

    while True:
        query = select(VaultItem).order_by(VaultItem.id.asc()).limit(batch_size)
        if last_id is not None:
            query = query.where(VaultItem.id > last_id)
        result = await db.execute(query)
        batch = list(result.scalars().all())
        if not batch:
            break

        for item in batch:
            try:
                rotated = old_cipher.re_encrypt_to(new_cipher, item.encrypted_value, item.iv)
            except DecryptionError:
                if not new_cipher.try_decrypt(item.encrypted_value, item.iv).failed:
                    report.already_rotated += 1
                    continue
                logger.error("Vault item %s in vault %s could not be decrypted with the old key", item.id, item.vault_id)
                report.failed_item_ids.append(item.id)
                continue
            item.encrypted_value = rotated.ciphertext
            item.iv = rotated.iv
            report.rotated += 1

        await db.commit()
        last_id = batch[-1].id
        logger.info(
            "Key rotation progress: %d rotated, %d already rotated, %d failed",
            report.rotated,
            report.already_rotated,
            report.failed,
        )

    return report

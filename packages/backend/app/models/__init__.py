from app.models.vault import Vault
from app.models.vault_item import VaultItem, VaultItemType

__all__ = [
    "Vault",
    "VaultItem",
    "VaultItemType",
]

"""Import all models so SQLAlchemy metadata is fully populated."""

from app.models.vault import Vault  # noqa: F401
from app.models.vault_item import VaultItem  # noqa: F401

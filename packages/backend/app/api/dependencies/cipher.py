from functools import lru_cache

from app.core.settings import settings
from app.security.cipher import Cipher


@lru_cache(maxsize=1)
def get_cipher() -> Cipher:
    """Process-wide cipher, resolved from configuration on first use and never mutated."""
    return Cipher.from_settings(settings)

"""
Lazy encryption key resolver for ORM column definitions.

StringEncryptedType accepts a callable for the `key` parameter, which is
evaluated at encrypt/decrypt time rather than at import time, so models can be
imported (by Alembic, tests, tooling) without ENCRYPTION_KEY being set.
"""

from typing import Optional

_cached_key: Optional[str] = None


def get_encryption_key() -> str:
    """
    Resolve the encryption key from settings, caching it after the first call.
    Raises RuntimeError if ENCRYPTION_KEY is not set.
    """
    global _cached_key
    if _cached_key is not None:
        return _cached_key

    from app.shared.core.config import get_settings

    key = get_settings().ENCRYPTION_KEY
    if not key:
        raise RuntimeError(
            "ENCRYPTION_KEY not set. Cannot encrypt or decrypt provider tokens."
        )
    _cached_key = key
    return _cached_key


def clear_encryption_key_cache() -> None:
    global _cached_key
    _cached_key = None

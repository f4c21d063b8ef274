from __future__ import annotations

from functools import lru_cache

from datastore.backend import StorageBackend
from datastore.dynamodb import build_dynamodb_backend
from datastore.mock_dynamodb import build_default_database
from settings import get_settings


@lru_cache
def build_default_backend() -> StorageBackend:
    """Backend selected by ``DATA_ACCESS_BACKEND`` (``memory`` or ``dynamodb``)."""
    settings = get_settings()
    if settings.backend == "dynamodb":
        return build_dynamodb_backend(settings)
    return build_default_database()

"""Database storage and models."""

from .database import FeedStorage, StorageEvent
from .errors import MigrationError, StorageError
from .models import FeedModel, ItemModel, MetaModel, init_db

__all__ = [
    "FeedStorage", "StorageEvent", "StorageError", "MigrationError",
    "FeedModel", "ItemModel", "MetaModel", "init_db",
]

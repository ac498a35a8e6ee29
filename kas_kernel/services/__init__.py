"""Services for the cash fund kernel: the entity store, its change feed and object storage."""

from kas_kernel.services.change_feed import ChangeFeed, Subscription
from kas_kernel.services.entity_store import EntityStore, SqlEntityStore
from kas_kernel.services.object_storage import (
    LocalObjectStorage,
    ObjectStorage,
    validate_upload,
)

__all__ = [
    "ChangeFeed",
    "EntityStore",
    "LocalObjectStorage",
    "ObjectStorage",
    "SqlEntityStore",
    "Subscription",
    "validate_upload",
]

"""Ramus persistence layer."""

from ramus.store.message_store import MessageStore
from ramus.store.pool import StorePool, open_connection

__all__ = ["MessageStore", "StorePool", "open_connection"]

"""Storage module for hotsort."""

from .models import Item, ItemStatus, normalize_tags, join_tags, normalize_path
from .item_store import ItemStore, ItemQuery, ProjectQuery

__all__ = [
    "Item",
    "ItemStatus",
    "normalize_tags",
    "join_tags",
    "normalize_path",
    "ItemStore",
    "ItemQuery",
    "ProjectQuery",
]

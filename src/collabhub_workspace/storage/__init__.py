"""Persistence for project trees."""

from collabhub_workspace.storage.base import TreeStore
from collabhub_workspace.storage.mongo import MongoTreeStore

__all__ = ["MongoTreeStore", "TreeStore"]

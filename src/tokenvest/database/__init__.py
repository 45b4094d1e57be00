"""
tokenvest Database Module

SQLite-backed persistence for vault and token state.
"""

from .storage_manager import StorageManager
from .vault_repository import VaultRepository

__all__ = ["StorageManager", "VaultRepository"]

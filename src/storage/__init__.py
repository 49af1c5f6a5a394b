"""Storage layer for post persistence and schema management."""

from src.storage.database import Database
from src.storage.repository import PostRepository, ProcessedPost

__all__ = ["Database", "PostRepository", "ProcessedPost"]

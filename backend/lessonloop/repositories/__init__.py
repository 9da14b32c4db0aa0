"""
Repository layer for LessonLoop.

Repositories encapsulate all queries; services own transactions.
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "RepositoryFactory"]

"""
Infrastructure Layer - repositories and concurrency primitives.

This module provides:
- Repository pattern for data access (SQLAlchemy sessions)
- Per-project lock registry serialising mutations
"""

from .repositories import (
    BaseRepository,
    ProjectRepository,
    ChangeOrderRepository,
    ApplicationRepository,
)
from .locks import ProjectLockRegistry, default_registry

__all__ = [
    'BaseRepository',
    'ProjectRepository',
    'ChangeOrderRepository',
    'ApplicationRepository',
    'ProjectLockRegistry',
    'default_registry',
]

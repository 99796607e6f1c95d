"""
Repository implementations for data access layer.
"""
from progress_billing.domain.events import handlers as _handlers  # noqa: F401  registers ORM listeners

from .base_repository import BaseRepository
from .project_repository import ProjectRepository
from .change_order_repository import ChangeOrderRepository
from .application_repository import ApplicationRepository

__all__ = [
    'BaseRepository',
    'ProjectRepository',
    'ChangeOrderRepository',
    'ApplicationRepository',
]

"""
Base Repository - shared session plumbing for the billing repositories.

Records are addressed by their external UUID; integer primary keys stay
inside the persistence layer.
"""
from abc import ABC, abstractmethod
from typing import Generic, TypeVar, Optional, Type
from sqlalchemy.orm import Session

from progress_billing.models import Base

T = TypeVar('T', bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository over one record type.

    Repositories never commit; the service's unit of work owns the
    transaction.

    Type Parameters:
        T: The SQLAlchemy record type this repository manages
    """

    def __init__(self, session: Session, model_class: Type[T]):
        self.session = session
        self.model_class = model_class

    def get_by_uuid(self, uuid: str) -> Optional[T]:
        """
        Retrieve a record by its external UUID.

        Returns:
            The record if found, None otherwise
        """
        return self.session.query(self.model_class).filter(
            self.model_class.uuid == uuid
        ).first()

    def add(self, record: T) -> T:
        self.session.add(record)
        return record

    def delete(self, record: T) -> None:
        self.session.delete(record)

    def flush(self) -> None:
        """Flush pending changes so listeners and constraints run now."""
        self.session.flush()

    @abstractmethod
    def exists(self, **criteria) -> bool:
        """Check if a record matching the field-value criteria exists."""
        pass

    def _exists(self, **criteria) -> bool:
        query = self.session.query(self.model_class)
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.first() is not None

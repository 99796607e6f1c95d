"""
Database models and SQLAlchemy setup for the Progress Billing engine.
All monetary values stored as integer cents to avoid float drift;
retainage percents stored as integer basis points (10.00% == 1000).
"""
from datetime import datetime, timezone
from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean,
    DateTime, Date, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship

from progress_billing.config import get_config

DATABASE_URL = get_config().database_url
engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Project (Level 0)
# =============================================================================

class Project(Base):
    """
    Top-level project entity.
    Budget categories, change orders and applications belong to a project.
    """
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)  # External UUID
    name = Column(String(200), nullable=False)
    code = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    contract_sum_cents = Column(Integer, nullable=True)  # None = derive from SOV snapshot
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    budget_items = relationship(
        "BudgetItemRecord", back_populates="project",
        cascade="all, delete-orphan", order_by="BudgetItemRecord.position"
    )
    sov_items = relationship("SOVItemRecord", back_populates="project", cascade="all, delete-orphan")
    change_orders = relationship("ChangeOrderRecord", back_populates="project", cascade="all, delete-orphan")
    applications = relationship(
        "ApplicationRecord", back_populates="project",
        cascade="all, delete-orphan", order_by="ApplicationRecord.sequence_number"
    )


# =============================================================================
# Budget Category (supplied by the budgeting collaborator)
# =============================================================================

class BudgetItemRecord(Base):
    """Budget category; source of Schedule of Values items."""
    __tablename__ = "budget_items"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False, index=True)
    category = Column(String(200), nullable=False)
    original_budget_cents = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)  # Display order
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="budget_items")


# =============================================================================
# Schedule of Values Item
# =============================================================================

class SOVItemRecord(Base):
    """
    Schedule of Values line.
    INVARIANT: description and scheduled value are frozen once any
    application line references the item.
    """
    __tablename__ = "sov_items"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False, index=True)
    budget_item_uuid = Column(String(36), nullable=True, index=True)
    description = Column(String(200), nullable=False)
    scheduled_value_cents = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, index=True)  # False once superseded or removed
    created_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="sov_items")
    lines = relationship("ApplicationLineRecord", back_populates="sov_item")


# =============================================================================
# Change Order
# =============================================================================

class ChangeOrderRecord(Base):
    """
    Contract modification. Positive amount adds to scope, negative deducts.
    INVARIANT: amount is immutable once status is Approved.
    """
    __tablename__ = "change_orders"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False, index=True)
    number = Column(String(50), nullable=False, index=True)  # CO Number (e.g., "CO-001")
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='Submitted')  # Submitted, Pending, Approved, Rejected
    amount_cents = Column(Integer, nullable=False)  # Can be positive or negative
    date_initiated = Column(Date, nullable=True)
    vendor = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)
    schedule_impact = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="change_orders")

    __table_args__ = (
        UniqueConstraint('project_id', 'number', name='uq_project_co_number'),
    )


# =============================================================================
# Payment Application (G702) and Continuation Sheet Lines (G703)
# =============================================================================

class ApplicationRecord(Base):
    """
    Payment application.
    INVARIANT: sequence_number is 1..N per project with no gaps.
    """
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False, index=True)
    sequence_number = Column(Integer, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default='Draft')  # Draft, Submitted, Approved, Paid
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="applications")
    lines = relationship(
        "ApplicationLineRecord", back_populates="application",
        cascade="all, delete-orphan", order_by="ApplicationLineRecord.position"
    )

    __table_args__ = (
        UniqueConstraint('project_id', 'sequence_number', name='uq_project_application_sequence'),
    )


class ApplicationLineRecord(Base):
    """
    Continuation sheet line. Only entered values are stored;
    totals, retainage and balance are derived in the domain layer.
    INVARIANT: editable only while the parent application is Draft.
    """
    __tablename__ = "application_lines"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    application_id = Column(Integer, ForeignKey('applications.id'), nullable=False, index=True)
    sov_item_id = Column(Integer, ForeignKey('sov_items.id'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    description = Column(String(200), nullable=False)
    scheduled_value_cents = Column(Integer, nullable=False)  # Copied from SOV at creation
    work_completed_cents = Column(Integer, nullable=False, default=0)
    materials_stored_cents = Column(Integer, nullable=False, default=0)
    retainage_basis_points = Column(Integer, nullable=False, default=1000)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    application = relationship("ApplicationRecord", back_populates="lines")
    sov_item = relationship("SOVItemRecord", back_populates="lines")


def init_db():
    """Initialize the database and create all tables."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Database session dependency for FastAPI."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

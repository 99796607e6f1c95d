"""
Domain Layer - Core business entities and services for progress billing.

This module contains:
- entities/: Value objects (ScheduleOfValuesItem, ChangeOrder, Application, Certificate)
- services/: Domain services (SOV builder, continuation sheet, ledger, sequencer, G702 engine)
"""

from .entities import (
    BudgetItem, ScheduleOfValuesItem,
    ChangeOrder, ChangeOrderStatus,
    Application, ApplicationLine, ApplicationStatus,
    Certificate,
)

__all__ = [
    'BudgetItem', 'ScheduleOfValuesItem',
    'ChangeOrder', 'ChangeOrderStatus',
    'Application', 'ApplicationLine', 'ApplicationStatus',
    'Certificate',
]

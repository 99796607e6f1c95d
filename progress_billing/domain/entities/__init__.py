"""
Domain Entities - Core billing value objects.
"""

from .schedule_of_values import BudgetItem, ScheduleOfValuesItem
from .change_order import ChangeOrder, ChangeOrderStatus
from .application import Application, ApplicationLine, ApplicationStatus
from .certificate import Certificate

__all__ = [
    'BudgetItem', 'ScheduleOfValuesItem',
    'ChangeOrder', 'ChangeOrderStatus',
    'Application', 'ApplicationLine', 'ApplicationStatus',
    'Certificate',
]

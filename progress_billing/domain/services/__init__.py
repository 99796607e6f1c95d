"""
Domain Services - SOV derivation, continuation sheet arithmetic,
change order ledger, application sequencing and certificate aggregation.
"""

from .sov_builder import ScheduleOfValuesBuilder, SOVRefreshResult, build_schedule_of_values
from .continuation_sheet import ContinuationSheetCalculator, ContinuationSheetTotals, LineUpdateResult
from .change_order_ledger import ChangeOrderLedger, ChangeOrderSummary, net_approved_change_orders
from .application_sequencer import ApplicationSequencer, ApplicationListing, coerce_status
from .certificate_aggregator import CertificateAggregator
from .billing_service import ProgressBillingService

__all__ = [
    'ScheduleOfValuesBuilder',
    'SOVRefreshResult',
    'build_schedule_of_values',
    'ContinuationSheetCalculator',
    'ContinuationSheetTotals',
    'LineUpdateResult',
    'ChangeOrderLedger',
    'ChangeOrderSummary',
    'net_approved_change_orders',
    'ApplicationSequencer',
    'ApplicationListing',
    'coerce_status',
    'CertificateAggregator',
    'ProgressBillingService',
]

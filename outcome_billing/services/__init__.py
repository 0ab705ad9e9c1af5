"""
Session-backed services. Each takes a SQLAlchemy session and flushes inside
it; the caller owns the transaction.
"""

from .access import AccessGate
from .aggregator import BillingAggregator
from .invoicing import InvoiceService
from .lifecycle import EventLifecycleManager
from .plans import PricingPlanStore
from .recorder import OutcomeRecorder

__all__ = [
    "AccessGate",
    "BillingAggregator",
    "EventLifecycleManager",
    "InvoiceService",
    "OutcomeRecorder",
    "PricingPlanStore",
]

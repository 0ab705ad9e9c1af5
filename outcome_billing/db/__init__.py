from .base import Base, TrackedBase
from .engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from .tables import (
    Opportunity,
    Organization,
    OrganizationMember,
    OutcomeEvent,
    OutcomeInvoice,
    OutcomeInvoiceLineItem,
    OutcomePricingPlan,
)

__all__ = [
    "Base",
    "TrackedBase",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "Opportunity",
    "Organization",
    "OrganizationMember",
    "OutcomeEvent",
    "OutcomeInvoice",
    "OutcomeInvoiceLineItem",
    "OutcomePricingPlan",
]

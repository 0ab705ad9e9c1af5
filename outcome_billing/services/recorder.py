"""
Outcome Event Recorder

Turns a closed-won deal into a PENDING outcome event under its tenant's plan.
Called from the deal pipeline; outcome billing is opt-in per tenant, so a
missing plan or an exempt deal is a normal no-op, not an error.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import SystemClock, month_bounds
from ..db.tables import Opportunity, OutcomeEvent
from ..models import SUPERSEDED_STATUSES, EventStatus, PlanTerms
from ..processor import FeeEngine
from .aggregator import BillingAggregator
from .plans import PricingPlanStore

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal | None) -> int:
    """Convert a CRM amount in dollars to cents, halves rounding up."""
    if amount is None:
        return 0
    cents = (Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return max(0, int(cents))


class OutcomeRecorder:
    """Records one billing event per closed deal."""

    def __init__(self, session: Session, clock=None, fee_engine: FeeEngine | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self.fee_engine = fee_engine or FeeEngine()
        self.plans = PricingPlanStore(session)
        self.aggregator = BillingAggregator(session, self.clock)

    def record_deal_outcome(self, opportunity_id: str, organization_id: str) -> OutcomeEvent | None:
        """
        Record a deal outcome for billing.

        Returns the new event, the existing live event for the deal, or None
        when the tenant has no active plan, the deal is unknown, or the deal
        is below the plan's minimum value.
        """
        # Locking the plan row serializes recordings per tenant, so the cap
        # check below sees every fee committed before it.
        plan = self.plans.get_by_organization(organization_id, for_update=True)
        if plan is None or not plan.is_active:
            logger.debug(f"No active pricing plan for organization {organization_id}, skipping outcome recording")
            return None

        opportunity = self.session.get(Opportunity, opportunity_id)
        if opportunity is None or opportunity.organization_id != organization_id:
            logger.warning(f"Opportunity {opportunity_id} not found for outcome recording")
            return None

        existing = self.find_live_event(opportunity_id)
        if existing is not None:
            logger.warning(f"Outcome event already exists for opportunity {opportunity_id}")
            return existing

        closed_date = opportunity.closed_date or self.clock.now()
        period_start, period_end = month_bounds(closed_date)

        # The cap applies to the period the event is bucketed into
        deal_amount = to_minor_units(opportunity.amount)
        already_billed = self.aggregator.get_billed_amount(organization_id, closed_date)
        result = self.fee_engine.calculate(deal_amount, PlanTerms.from_plan(plan), already_billed)

        if result.below_minimum:
            logger.debug(
                f"Deal {opportunity_id} amount {deal_amount} below minimum {plan.min_deal_value}, skipping"
            )
            return None

        event = OutcomeEvent(
            organization_id=organization_id,
            pricing_plan_id=plan.id,
            opportunity_id=opportunity_id,
            opportunity_name=opportunity.name,
            account_name=opportunity.account_name or "Unknown Account",
            owner_id=opportunity.owner_id,
            owner_name=opportunity.owner_name,
            deal_amount=deal_amount,
            fee_amount=result.fee_amount,
            fee_calculation=result.calculation.to_dict(),
            status=EventStatus.PENDING.value,
            closed_date=closed_date,
            billing_period_start=period_start,
            billing_period_end=period_end,
        )

        try:
            with self.session.begin_nested():
                self.session.add(event)
        except IntegrityError:
            # A concurrent signal recorded this deal first
            existing = self.find_live_event(opportunity_id)
            if existing is None:
                raise
            logger.warning(f"Outcome event already exists for opportunity {opportunity_id}")
            return existing

        logger.info(
            f"Recorded outcome event {event.id} for opportunity {opportunity_id}: "
            f"fee=${event.fee_amount / 100:.2f}"
        )
        return event

    def find_live_event(self, opportunity_id: str) -> OutcomeEvent | None:
        """The event for a deal that has not been waived or voided, if any."""
        return self.session.scalars(
            select(OutcomeEvent).where(
                OutcomeEvent.opportunity_id == opportunity_id,
                OutcomeEvent.status.not_in([s.value for s in SUPERSEDED_STATUSES]),
            )
        ).first()

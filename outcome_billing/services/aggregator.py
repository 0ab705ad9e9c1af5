"""
Billing Aggregator

Period totals, lifetime totals and cap utilization for dashboards, plus the
already-billed amount the fee calculator needs for the monthly cap.
Read-only: nothing here mutates events or plans.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..clock import SystemClock, month_bounds, previous_month_bounds
from ..db.tables import OutcomeEvent, OutcomePricingPlan
from ..models import BILLABLE_STATUSES, CAP_STATUSES, RECOGNIZED_STATUSES, EventStatus


def _values(statuses) -> list[str]:
    return [s.value for s in statuses]


class BillingAggregator:
    """Summarizes outcome events per organization and across tenants."""

    def __init__(self, session: Session, clock=None):
        self.session = session
        self.clock = clock or SystemClock()

    def get_current_month_billed_amount(self, organization_id: str) -> int:
        return self.get_billed_amount(organization_id, self.clock.now())

    def get_billed_amount(self, organization_id: str, moment: datetime) -> int:
        """
        Sum of fees for events closed in the calendar month containing
        ``moment`` that still count against the monthly cap. No events means 0.
        """
        start, end = month_bounds(moment)
        total = self.session.scalar(
            select(func.coalesce(func.sum(OutcomeEvent.fee_amount), 0)).where(
                OutcomeEvent.organization_id == organization_id,
                OutcomeEvent.closed_date >= start,
                OutcomeEvent.closed_date < end,
                OutcomeEvent.status.in_(_values(CAP_STATUSES)),
            )
        )
        return int(total or 0)

    def get_outcome_billing_stats(self, organization_id: str) -> dict | None:
        """Current vs. prior period, lifetime totals and cap usage for one tenant."""
        plan = self.session.scalars(
            select(OutcomePricingPlan).where(OutcomePricingPlan.organization_id == organization_id)
        ).first()
        if plan is None:
            return None

        now = self.clock.now()
        current_start, current_end = month_bounds(now)
        last_start, last_end = previous_month_bounds(now)

        current = self._period_totals(organization_id, current_start, current_end)
        last = self._period_totals(organization_id, last_start, last_end)

        lifetime_fees, lifetime_deals = self.session.execute(
            select(func.coalesce(func.sum(OutcomeEvent.fee_amount), 0), func.count(OutcomeEvent.id)).where(
                OutcomeEvent.organization_id == organization_id,
                OutcomeEvent.status.in_(_values(RECOGNIZED_STATUSES)),
            )
        ).one()

        cap_remaining = None
        cap_utilization_percent = None
        if plan.monthly_cap:
            # Same sum the recorder caps against, so flagged events use up the cap too
            cap_used = self.get_billed_amount(organization_id, now)
            cap_remaining = max(0, plan.monthly_cap - cap_used)
            # Whole percent, rounded down: 62500 / 200000 -> 31
            cap_utilization_percent = cap_used * 100 // plan.monthly_cap

        return {
            "current_period_start": current_start.isoformat(),
            "current_period_end": current_end.isoformat(),
            "current_period_fees": current["fees"],
            "current_period_deals": current["deals"],
            "current_period_deal_value": current["deal_value"],
            "monthly_cap": plan.monthly_cap,
            "cap_remaining": cap_remaining,
            "cap_utilization_percent": cap_utilization_percent,
            "last_period_fees": last["fees"],
            "last_period_deals": last["deals"],
            "last_period_deal_value": last["deal_value"],
            "total_lifetime_fees": int(lifetime_fees),
            "total_lifetime_deals": int(lifetime_deals),
            "pricing_model": plan.pricing_model,
            "plan_details": {
                "revenue_share_percent": _float(plan.revenue_share_percent),
                "flat_fee_per_deal": plan.flat_fee_per_deal,
                "outcome_percent": _float(plan.outcome_percent),
                "tier_configuration": plan.tier_configuration,
                "min_fee_per_deal": plan.min_fee_per_deal,
                "platform_access_fee": plan.platform_access_fee,
                "min_deal_value": plan.min_deal_value,
            },
        }

    def get_admin_dashboard_stats(self) -> dict:
        """Cross-tenant rollup for the admin dashboard."""
        current_start, current_end = month_bounds(self.clock.now())

        active_plans = self.session.scalar(
            select(func.count()).select_from(OutcomePricingPlan).where(OutcomePricingPlan.is_active.is_(True))
        )
        pending_events = self._count_status(EventStatus.PENDING)
        flagged_events = self._count_status(EventStatus.FLAGGED_FOR_REVIEW)

        month_fees, month_deal_value, month_deals = self.session.execute(
            select(
                func.coalesce(func.sum(OutcomeEvent.fee_amount), 0),
                func.coalesce(func.sum(OutcomeEvent.deal_amount), 0),
                func.count(OutcomeEvent.id),
            ).where(
                OutcomeEvent.closed_date >= current_start,
                OutcomeEvent.closed_date < current_end,
                OutcomeEvent.status.in_(_values(BILLABLE_STATUSES)),
            )
        ).one()

        lifetime_revenue = self.session.scalar(
            select(func.coalesce(func.sum(OutcomeEvent.fee_amount), 0)).where(
                OutcomeEvent.status.in_(_values(RECOGNIZED_STATUSES))
            )
        )

        return {
            "active_plans": int(active_plans),
            "pending_events": pending_events,
            "flagged_for_review": flagged_events,
            "current_month_fees": int(month_fees),
            "current_month_deals": int(month_deals),
            "current_month_deal_value": int(month_deal_value),
            "total_lifetime_revenue": int(lifetime_revenue or 0),
        }

    def _period_totals(self, organization_id: str, start: datetime, end: datetime) -> dict:
        fees, deal_value, deals = self.session.execute(
            select(
                func.coalesce(func.sum(OutcomeEvent.fee_amount), 0),
                func.coalesce(func.sum(OutcomeEvent.deal_amount), 0),
                func.count(OutcomeEvent.id),
            ).where(
                OutcomeEvent.organization_id == organization_id,
                OutcomeEvent.closed_date >= start,
                OutcomeEvent.closed_date < end,
                OutcomeEvent.status.in_(_values(BILLABLE_STATUSES)),
            )
        ).one()
        return {"fees": int(fees), "deal_value": int(deal_value), "deals": int(deals)}

    def _count_status(self, status: EventStatus) -> int:
        return int(
            self.session.scalar(
                select(func.count()).select_from(OutcomeEvent).where(OutcomeEvent.status == status.value)
            )
        )


def _float(value):
    return float(value) if value is not None else None

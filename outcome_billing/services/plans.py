"""
Pricing Plan Store

CRUD over the single outcome pricing plan each organization may have.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.tables import Organization, OutcomeEvent, OutcomePricingPlan
from ..exceptions import Conflict, InvalidArgument, NotFound
from ..models import PricingTier
from ..validators import PlanValidator
from .base import paginate

logger = logging.getLogger(__name__)


class PricingPlanStore:
    """Creates, updates and deletes outcome pricing plans."""

    # Profitability defaults applied when the caller leaves a field out
    DEFAULT_MIN_FEE_PER_DEAL = 10000      # $100 minimum per deal
    DEFAULT_MIN_DEAL_VALUE = 500000       # $5,000 minimum deal value
    DEFAULT_PLATFORM_ACCESS_FEE = 4900    # $49/month platform fee
    DEFAULT_BILLING_DAY = 1
    DEFAULT_CURRENCY = "USD"

    def __init__(self, session: Session):
        self.session = session
        self.validator = PlanValidator()

    def create(self, data: dict) -> OutcomePricingPlan:
        """
        Create the plan for an organization.

        Checked in order: organization exists, no plan yet, then the plan fields.

        Raises:
            NotFound: the organization does not exist
            Conflict: the organization already has a plan
            InvalidArgument: the model's required field is missing or a value is invalid
        """
        organization_id = data.get("organization_id")
        if not organization_id:
            raise InvalidArgument("organization_id is required")

        if self.session.get(Organization, organization_id) is None:
            raise NotFound(f"Organization with ID {organization_id} not found")

        if self.get_by_organization(organization_id) is not None:
            raise Conflict(f"Organization {organization_id} already has a pricing plan. Use update instead.")

        self.validator.validate_create(data)

        plan = OutcomePricingPlan(
            organization_id=organization_id,
            pricing_model=self.validator.parse_pricing_model(data["pricing_model"]).value,
            revenue_share_percent=_to_decimal(data.get("revenue_share_percent")),
            tier_configuration=_normalize_tiers(data.get("tier_configuration")),
            flat_fee_per_deal=data.get("flat_fee_per_deal"),
            base_subscription_id=data.get("base_subscription_id"),
            outcome_percent=_to_decimal(data.get("outcome_percent")),
            monthly_cap=data.get("monthly_cap"),
            min_deal_value=_default(data, "min_deal_value", self.DEFAULT_MIN_DEAL_VALUE),
            min_fee_per_deal=_default(data, "min_fee_per_deal", self.DEFAULT_MIN_FEE_PER_DEAL),
            platform_access_fee=_default(data, "platform_access_fee", self.DEFAULT_PLATFORM_ACCESS_FEE),
            grants_full_access=_default(data, "grants_full_access", True),
            billing_day=_default(data, "billing_day", self.DEFAULT_BILLING_DAY),
            currency=_default(data, "currency", self.DEFAULT_CURRENCY),
            is_active=_default(data, "is_active", True),
        )

        try:
            with self.session.begin_nested():
                self.session.add(plan)
        except IntegrityError:
            # Lost a race with a concurrent create for the same organization
            raise Conflict(f"Organization {organization_id} already has a pricing plan. Use update instead.") from None

        logger.info(f"Created {plan.pricing_model} pricing plan {plan.id} for organization {organization_id}")
        return plan

    def update(self, plan_id: str, fields: dict) -> OutcomePricingPlan:
        """
        Merge the supplied fields into an existing plan.

        Model-required fields are not re-validated on partial updates.
        """
        self.validator.validate_update(fields)

        plan = self.get(plan_id)
        if plan is None:
            raise NotFound(f"Pricing plan with ID {plan_id} not found")

        for name, value in fields.items():
            if name == "pricing_model":
                value = self.validator.parse_pricing_model(value).value
            elif name in ("revenue_share_percent", "outcome_percent"):
                value = _to_decimal(value)
            elif name == "tier_configuration":
                value = _normalize_tiers(value)
            setattr(plan, name, value)

        self.session.flush()
        logger.info(f"Updated pricing plan {plan_id}: {', '.join(sorted(fields)) or 'no changes'}")
        return plan

    def delete(self, plan_id: str) -> None:
        """
        Delete a plan. Plans with any outcome events are kept: the events are
        the billing record and must not be orphaned.
        """
        plan = self.get(plan_id)
        if plan is None:
            raise NotFound(f"Pricing plan with ID {plan_id} not found")

        event_count = self.session.scalar(
            select(func.count()).select_from(OutcomeEvent).where(OutcomeEvent.pricing_plan_id == plan_id)
        )
        if event_count:
            raise Conflict(
                f"Cannot delete plan with {event_count} outcome events. "
                f"Deactivate the plan instead."
            )

        self.session.delete(plan)
        self.session.flush()
        logger.info(f"Deleted pricing plan {plan_id}")

    def get(self, plan_id: str) -> OutcomePricingPlan | None:
        return self.session.get(OutcomePricingPlan, plan_id)

    def get_by_organization(self, organization_id: str, for_update: bool = False) -> OutcomePricingPlan | None:
        stmt = select(OutcomePricingPlan).where(OutcomePricingPlan.organization_id == organization_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).first()

    def list(self, page: int | None = None, limit: int | None = None, is_active: bool | None = None) -> dict:
        stmt = select(OutcomePricingPlan).order_by(OutcomePricingPlan.created_at.desc(), OutcomePricingPlan.id)
        if is_active is not None:
            stmt = stmt.where(OutcomePricingPlan.is_active == is_active)
        return paginate(self.session, stmt, page, limit)


def _default(data: dict, name: str, default):
    value = data.get(name)
    return default if value is None else value


def _to_decimal(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def _normalize_tiers(tiers) -> list | None:
    if tiers is None:
        return None
    return [PricingTier.from_dict(t).to_dict() for t in tiers]

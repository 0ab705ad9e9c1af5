"""
Access Gate

Tells the licensing layer whether outcome billing unlocks full platform
access for a tenant or user. Fails closed.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.tables import OrganizationMember, OutcomePricingPlan


class AccessGate:
    def __init__(self, session: Session):
        self.session = session

    def has_outcome_based_access(self, organization_id: str) -> bool:
        """True only for an existing, active plan that grants full access."""
        plan = self.session.scalars(
            select(OutcomePricingPlan).where(OutcomePricingPlan.organization_id == organization_id)
        ).first()
        return bool(plan and plan.is_active and plan.grants_full_access)

    def user_has_outcome_based_access(self, user_id: str) -> bool:
        """True if any of the user's active memberships is in an organization with access."""
        organization_ids = self.session.scalars(
            select(OrganizationMember.organization_id).where(
                OrganizationMember.user_id == user_id,
                OrganizationMember.is_active.is_(True),
            )
        ).all()

        if not organization_ids:
            return False

        plan = self.session.scalars(
            select(OutcomePricingPlan).where(
                OutcomePricingPlan.organization_id.in_(organization_ids),
                OutcomePricingPlan.is_active.is_(True),
                OutcomePricingPlan.grants_full_access.is_(True),
            )
        ).first()
        return plan is not None

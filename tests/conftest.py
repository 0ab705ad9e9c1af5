"""
Shared fixtures: an in-memory database per test, a fixed clock, and
factories for the CRM records outcome billing reads.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from outcome_billing.clock import FixedClock, month_bounds
from outcome_billing.db.base import new_id
from outcome_billing.db import create_tables, get_session, init_engine_from_url, reset_engine
from outcome_billing.db.tables import Opportunity, Organization, OrganizationMember, OutcomeEvent
from outcome_billing.services import PricingPlanStore

# Mid-month so the current period is March 2024
NOW = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def db_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine):
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_organization(session):
    def _make(name="Acme Corp", slug="acme"):
        organization = Organization(name=name, slug=slug)
        session.add(organization)
        session.flush()
        return organization

    return _make


@pytest.fixture
def organization(make_organization):
    return make_organization()


@pytest.fixture
def make_opportunity(session):
    def _make(organization, amount="25000.00", closed_date=NOW, name="Enterprise Renewal",
              account_name="Globex", owner_id="user-1", owner_name="Sam Rivera"):
        opportunity = Opportunity(
            organization_id=organization.id,
            name=name,
            account_name=account_name,
            owner_id=owner_id,
            owner_name=owner_name,
            amount=Decimal(amount) if amount is not None else None,
            closed_date=closed_date,
            is_won=True,
        )
        session.add(opportunity)
        session.flush()
        return opportunity

    return _make


@pytest.fixture
def make_plan(session):
    def _make(organization, **overrides):
        data = {
            "organization_id": organization.id,
            "pricing_model": "REVENUE_SHARE",
            "revenue_share_percent": 2.5,
        }
        data.update(overrides)
        return PricingPlanStore(session).create(data)

    return _make


@pytest.fixture
def make_member(session):
    def _make(user_id, organization, is_active=True):
        member = OrganizationMember(user_id=user_id, organization_id=organization.id, is_active=is_active)
        session.add(member)
        session.flush()
        return member

    return _make


@pytest.fixture
def make_event(session):
    """Insert an outcome event directly, bypassing the recorder."""

    def _make(organization, plan, fee_amount=10000, status="PENDING", closed_date=NOW,
              deal_amount=1000000, opportunity_id=None, opportunity_name="Direct Deal"):
        start, end = month_bounds(closed_date)
        event = OutcomeEvent(
            organization_id=organization.id,
            pricing_plan_id=plan.id,
            opportunity_id=opportunity_id or new_id(),
            opportunity_name=opportunity_name,
            account_name="Initech",
            deal_amount=deal_amount,
            fee_amount=fee_amount,
            fee_calculation={"model": plan.pricing_model, "deal_amount": deal_amount},
            status=status,
            closed_date=closed_date,
            billing_period_start=start,
            billing_period_end=end,
        )
        session.add(event)
        session.flush()
        return event

    return _make

"""
Tests for the Pricing Plan Store.
"""

from decimal import Decimal

import pytest

from outcome_billing.exceptions import Conflict, InvalidArgument, NotFound
from outcome_billing.services import PricingPlanStore


@pytest.fixture
def store(session):
    return PricingPlanStore(session)


class TestCreatePlan:

    def test_applies_profitability_defaults(self, store, organization):
        plan = store.create({
            "organization_id": organization.id,
            "pricing_model": "REVENUE_SHARE",
            "revenue_share_percent": 2.5,
        })

        assert plan.pricing_model == "REVENUE_SHARE"
        assert plan.revenue_share_percent == Decimal("2.5")
        assert plan.min_fee_per_deal == 10000
        assert plan.min_deal_value == 500000
        assert plan.platform_access_fee == 4900
        assert plan.billing_day == 1
        assert plan.currency == "USD"
        assert plan.is_active is True
        assert plan.grants_full_access is True
        assert plan.monthly_cap is None

    def test_explicit_values_override_defaults(self, store, organization):
        plan = store.create({
            "organization_id": organization.id,
            "pricing_model": "FLAT_PER_DEAL",
            "flat_fee_per_deal": 15000,
            "min_fee_per_deal": 0,
            "billing_day": 15,
        })

        assert plan.min_fee_per_deal == 0
        assert plan.billing_day == 15

    def test_stores_tiers_as_json(self, store, organization):
        plan = store.create({
            "organization_id": organization.id,
            "pricing_model": "TIERED_FLAT_FEE",
            "tier_configuration": [{"min_amount": 0, "fee": 25000}],
        })

        assert plan.tier_configuration == [{"min_amount": 0, "max_amount": None, "fee": 25000}]

    def test_missing_organization(self, store):
        with pytest.raises(NotFound):
            store.create({"organization_id": "missing", "pricing_model": "FLAT_PER_DEAL", "flat_fee_per_deal": 1})

    def test_one_plan_per_organization(self, store, organization, make_plan):
        make_plan(organization)

        with pytest.raises(Conflict, match="already has a pricing plan"):
            store.create({"organization_id": organization.id, "pricing_model": "FLAT_PER_DEAL", "flat_fee_per_deal": 1})

    def test_missing_model_field(self, store, organization):
        with pytest.raises(InvalidArgument, match="Revenue share percentage is required"):
            store.create({"organization_id": organization.id, "pricing_model": "REVENUE_SHARE"})

    def test_missing_organization_reported_before_model_field(self, store):
        with pytest.raises(NotFound):
            store.create({"organization_id": "missing", "pricing_model": "HYBRID"})

    def test_existing_plan_reported_before_bad_field(self, store, organization, make_plan):
        make_plan(organization)

        with pytest.raises(Conflict):
            store.create({"organization_id": organization.id, "pricing_model": "REVENUE_SHARE", "monthly_cap": -1})

    def test_organization_id_required(self, store):
        with pytest.raises(InvalidArgument, match="organization_id is required"):
            store.create({"pricing_model": "FLAT_PER_DEAL", "flat_fee_per_deal": 100})


class TestUpdatePlan:

    def test_partial_merge(self, store, organization, make_plan):
        plan = make_plan(organization, monthly_cap=200000)

        updated = store.update(plan.id, {"revenue_share_percent": 3, "is_active": False})

        assert updated.revenue_share_percent == Decimal("3")
        assert updated.is_active is False
        assert updated.monthly_cap == 200000

    def test_missing_plan(self, store):
        with pytest.raises(NotFound):
            store.update("missing", {"is_active": False})

    def test_unknown_field(self, store, organization, make_plan):
        plan = make_plan(organization)

        with pytest.raises(InvalidArgument):
            store.update(plan.id, {"organization_id": "someone-else"})


class TestDeletePlan:

    def test_delete_unused_plan(self, store, organization, make_plan):
        plan = make_plan(organization)
        store.delete(plan.id)

        assert store.get(plan.id) is None

    def test_plan_with_events_is_kept(self, store, organization, make_plan, make_event):
        plan = make_plan(organization)
        make_event(organization, plan, status="WAIVED")

        with pytest.raises(Conflict, match="1 outcome events"):
            store.delete(plan.id)

    def test_missing_plan(self, store):
        with pytest.raises(NotFound):
            store.delete("missing")


class TestQueries:

    def test_get_by_organization(self, store, organization, make_plan):
        plan = make_plan(organization)

        assert store.get_by_organization(organization.id).id == plan.id
        assert store.get_by_organization("other") is None

    def test_list_filters_and_paginates(self, store, make_organization, make_plan):
        for i in range(3):
            make_plan(make_organization(name=f"Org {i}", slug=f"org-{i}"), is_active=i != 0)

        page = store.list(page=1, limit=2, is_active=True)

        assert page["total"] == 2
        assert page["total_pages"] == 1
        assert len(page["data"]) == 2
        assert all(plan.is_active for plan in page["data"])

    def test_list_rejects_oversized_page(self, store):
        with pytest.raises(InvalidArgument, match="limit"):
            store.list(limit=1000)

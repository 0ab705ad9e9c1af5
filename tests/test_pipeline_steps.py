"""
Unit Tests for the individual fee pipeline steps.

Each step is applied to a hand-built context, independent of the others.
"""

from decimal import Decimal

import pytest

from outcome_billing.calculators import (
    MinimumDealValueGate,
    MinimumFeeFloor,
    ModelFeeCalculator,
    MonthlyCapEnforcer,
)
from outcome_billing.models import FeeContext, FeeTrace, PlanTerms, PricingModel


def _make_context(fee=0, deal_amount=1000000, already_billed=0, **plan_fields):
    plan_fields.setdefault("pricing_model", PricingModel.REVENUE_SHARE)
    plan = PlanTerms(**plan_fields)
    return FeeContext(
        deal_amount=deal_amount,
        plan=plan,
        already_billed=already_billed,
        fee=fee,
        trace=FeeTrace.for_model(plan.pricing_model, deal_amount),
    )


class TestMinimumDealValueGate:

    @pytest.fixture
    def gate(self):
        return MinimumDealValueGate()

    def test_halts_below_minimum(self, gate):
        ctx = gate.apply(_make_context(deal_amount=100, min_deal_value=500000))

        assert ctx.halted is True
        assert ctx.fee == 0
        assert ctx.trace.below_minimum is True

    def test_passes_at_minimum(self, gate):
        ctx = gate.apply(_make_context(deal_amount=500000, min_deal_value=500000))
        assert ctx.halted is False

    def test_no_minimum_configured(self, gate):
        ctx = gate.apply(_make_context(deal_amount=1, min_deal_value=None))
        assert ctx.halted is False


class TestModelFeeCalculator:

    @pytest.fixture
    def calculator(self):
        return ModelFeeCalculator()

    def test_records_percent_on_trace(self, calculator):
        ctx = calculator.apply(_make_context(revenue_share_percent=Decimal("3")))

        assert ctx.fee == 30000
        assert ctx.trace.percent == Decimal("3")

    def test_hybrid_records_subscription(self, calculator):
        ctx = calculator.apply(_make_context(
            pricing_model=PricingModel.HYBRID, outcome_percent=Decimal("1"), base_subscription_id="sub_1"
        ))

        assert ctx.fee == 10000
        assert ctx.trace.base_subscription_id == "sub_1"


class TestMinimumFeeFloor:

    @pytest.fixture
    def floor(self):
        return MinimumFeeFloor()

    def test_raises_small_fee(self, floor):
        ctx = floor.apply(_make_context(fee=6000, min_fee_per_deal=10000))

        assert ctx.fee == 10000
        assert ctx.trace.calculated_fee == 6000
        assert ctx.trace.min_fee_applied is True

    def test_leaves_zero_fee(self, floor):
        ctx = floor.apply(_make_context(fee=0, min_fee_per_deal=10000))
        assert ctx.fee == 0

    def test_leaves_fee_at_floor(self, floor):
        ctx = floor.apply(_make_context(fee=10000, min_fee_per_deal=10000))

        assert ctx.fee == 10000
        assert ctx.trace.min_fee_applied is False


class TestMonthlyCapEnforcer:

    @pytest.fixture
    def enforcer(self):
        return MonthlyCapEnforcer()

    def test_caps_to_remaining(self, enforcer):
        ctx = enforcer.apply(_make_context(fee=10000, already_billed=10000, monthly_cap=15000))

        assert ctx.fee == 5000
        assert ctx.trace.original_fee == 10000
        assert ctx.trace.capped_to == 5000

    def test_over_cap_yields_zero(self, enforcer):
        """Already billed past the cap (e.g. after a cap was lowered)."""
        ctx = enforcer.apply(_make_context(fee=10000, already_billed=20000, monthly_cap=15000))

        assert ctx.fee == 0
        assert ctx.trace.capped_to_zero is True

    def test_exactly_remaining_is_not_capped(self, enforcer):
        ctx = enforcer.apply(_make_context(fee=5000, already_billed=10000, monthly_cap=15000))

        assert ctx.fee == 5000
        assert ctx.trace.capped_to is None

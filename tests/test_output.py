"""
Tests for payload builders and the human-readable fee breakdown.
"""

from outcome_billing.output import _fmt, describe_calculation, event_to_dict, plan_to_dict


class TestFormatting:

    def test_cents_rendered_as_dollars(self):
        assert _fmt(6250000) == "$62,500.00"

    def test_none_is_zero(self):
        assert _fmt(None) == "$0.00"


class TestDescribeCalculation:

    def test_revenue_share(self):
        breakdown = describe_calculation(
            {"model": "REVENUE_SHARE", "deal_amount": 2500000, "percent": 2.5}, 62500
        )

        assert breakdown["deal_amount"] == {"value": 2500000, "description": "Closed deal value of $25,000.00"}
        assert breakdown["model_fee"] == {"value": 62500, "description": "2.5% × $25,000.00 = $625.00"}
        assert breakdown["fee_amount"]["value"] == 62500
        assert "min_fee_floor" not in breakdown
        assert "monthly_cap" not in breakdown

    def test_floor_then_cap(self):
        calculation = {
            "model": "REVENUE_SHARE",
            "deal_amount": 600000,
            "percent": 1.0,
            "min_fee_applied": True,
            "calculated_fee": 6000,
            "original_fee": 10000,
            "capped_to": 5000,
        }

        breakdown = describe_calculation(calculation, 5000)

        assert breakdown["model_fee"]["value"] == 6000
        assert breakdown["min_fee_floor"]["value"] == 10000
        assert breakdown["monthly_cap"] == {
            "value": 5000,
            "description": "Capped from $100.00 to the $50.00 remaining under the monthly cap",
        }
        assert breakdown["fee_amount"]["value"] == 5000

    def test_cap_reached(self):
        calculation = {
            "model": "FLAT_PER_DEAL",
            "deal_amount": 500000,
            "flat_fee": 15000,
            "original_fee": 15000,
            "capped_to_zero": True,
        }

        breakdown = describe_calculation(calculation, 0)

        assert breakdown["model_fee"]["value"] == 15000
        assert breakdown["monthly_cap"]["value"] == 0
        assert breakdown["fee_amount"]["value"] == 0

    def test_tiered(self):
        calculation = {
            "model": "TIERED_FLAT_FEE",
            "deal_amount": 1500000,
            "tier": {"min_amount": 500000, "max_amount": 2500000, "fee": 50000},
        }

        breakdown = describe_calculation(calculation, 50000)

        assert breakdown["model_fee"]["description"] == "Tier $5,000.00 - $25,000.00 flat fee of $500.00"

    def test_below_minimum(self):
        breakdown = describe_calculation(
            {"model": "REVENUE_SHARE", "deal_amount": 100, "below_minimum": True}, 0
        )

        assert list(breakdown) == ["deal_amount", "fee_amount"]
        assert breakdown["fee_amount"]["value"] == 0

    def test_unconfigured_rate(self):
        breakdown = describe_calculation({"model": "HYBRID", "deal_amount": 100}, 0)
        assert breakdown["model_fee"]["value"] == 0


class TestPayloads:

    def test_plan_payload(self, organization, make_plan):
        plan = make_plan(organization, monthly_cap=200000)

        payload = plan_to_dict(plan)

        assert payload["organization"] == {"id": organization.id, "name": "Acme Corp", "slug": "acme"}
        assert payload["revenue_share_percent"] == 2.5
        assert payload["monthly_cap"] == 200000

    def test_event_payload_with_breakdown(self, organization, make_plan, make_event):
        plan = make_plan(organization)
        event = make_event(organization, plan, fee_amount=10000)

        payload = event_to_dict(event, include_breakdown=True)

        assert payload["status"] == "PENDING"
        assert payload["closed_date"] == "2024-03-15T12:00:00"
        assert payload["fee_breakdown"]["fee_amount"]["value"] == 10000

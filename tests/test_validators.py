"""
Unit Tests for Pricing Plan Validation
"""

import pytest

from outcome_billing.exceptions import InvalidArgument
from outcome_billing.validators import PlanValidator


@pytest.fixture
def validator():
    return PlanValidator()


class TestValidateCreate:

    @pytest.mark.parametrize("model,field", [
        ("REVENUE_SHARE", "revenue_share_percent"),
        ("FLAT_PER_DEAL", "flat_fee_per_deal"),
        ("HYBRID", "outcome_percent"),
    ])
    def test_model_requires_its_field(self, validator, model, field):
        with pytest.raises(InvalidArgument, match=f"required for {model}"):
            validator.validate_create({"organization_id": "org-1", "pricing_model": model})

    def test_tiered_requires_non_empty_tiers(self, validator):
        with pytest.raises(InvalidArgument, match="Tier configuration is required"):
            validator.validate_create({
                "organization_id": "org-1", "pricing_model": "TIERED_FLAT_FEE", "tier_configuration": [],
            })

    def test_unknown_pricing_model(self, validator):
        with pytest.raises(InvalidArgument, match="Invalid pricing_model"):
            validator.validate_create({"organization_id": "org-1", "pricing_model": "BARTER"})

    def test_organization_required(self, validator):
        with pytest.raises(InvalidArgument, match="organization_id is required"):
            validator.validate_create({"pricing_model": "FLAT_PER_DEAL", "flat_fee_per_deal": 100})

    def test_valid_tiered_plan(self, validator):
        validator.validate_create({
            "organization_id": "org-1",
            "pricing_model": "TIERED_FLAT_FEE",
            "tier_configuration": [
                {"min_amount": 0, "max_amount": 500000, "fee": 25000},
                {"min_amount": 500000, "max_amount": None, "fee": 50000},
            ],
        })


class TestValidateValues:

    def test_unknown_field_rejected(self, validator):
        with pytest.raises(InvalidArgument, match="Unknown pricing plan fields: discount"):
            validator.validate_update({"discount": 10})

    def test_negative_money_rejected(self, validator):
        with pytest.raises(InvalidArgument, match="monthly_cap cannot be negative"):
            validator.validate_update({"monthly_cap": -1})

    def test_fractional_money_rejected(self, validator):
        with pytest.raises(InvalidArgument, match="minor units"):
            validator.validate_update({"flat_fee_per_deal": 99.5})

    def test_percent_over_100_rejected(self, validator):
        with pytest.raises(InvalidArgument, match="between 0 and 100"):
            validator.validate_update({"revenue_share_percent": 101})

    def test_percent_not_a_number(self, validator):
        with pytest.raises(InvalidArgument, match="must be a number"):
            validator.validate_update({"outcome_percent": "lots"})

    def test_tier_max_below_min(self, validator):
        with pytest.raises(InvalidArgument, match="below min_amount"):
            validator.validate_update({"tier_configuration": [{"min_amount": 500, "max_amount": 100, "fee": 1}]})

    def test_billing_day_out_of_range(self, validator):
        with pytest.raises(InvalidArgument, match="billing_day"):
            validator.validate_update({"billing_day": 32})

    def test_bad_currency(self, validator):
        with pytest.raises(InvalidArgument, match="currency"):
            validator.validate_update({"currency": "DOLLARS"})

    def test_partial_update_skips_model_requirements(self, validator):
        """Switching model without its field is allowed on update."""
        validator.validate_update({"pricing_model": "HYBRID"})

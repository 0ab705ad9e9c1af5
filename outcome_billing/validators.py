"""
Input Validation for Pricing Plans

Validates plan payloads before they reach the database.
Raises InvalidArgument with clear messages for any constraint violation.
"""

from decimal import Decimal, InvalidOperation

from .exceptions import InvalidArgument
from .models import PricingModel

# Fields a caller may set on a plan
PLAN_FIELDS = (
    "pricing_model",
    "revenue_share_percent",
    "tier_configuration",
    "flat_fee_per_deal",
    "base_subscription_id",
    "outcome_percent",
    "monthly_cap",
    "min_deal_value",
    "min_fee_per_deal",
    "platform_access_fee",
    "grants_full_access",
    "billing_day",
    "currency",
    "is_active",
)

# Field each pricing model cannot work without
REQUIRED_FIELD_BY_MODEL = {
    PricingModel.REVENUE_SHARE: ("revenue_share_percent", "Revenue share percentage"),
    PricingModel.TIERED_FLAT_FEE: ("tier_configuration", "Tier configuration"),
    PricingModel.FLAT_PER_DEAL: ("flat_fee_per_deal", "Flat fee per deal"),
    PricingModel.HYBRID: ("outcome_percent", "Outcome percentage"),
}

_MONEY_FIELDS = ("flat_fee_per_deal", "monthly_cap", "min_deal_value", "min_fee_per_deal", "platform_access_fee")
_PERCENT_FIELDS = ("revenue_share_percent", "outcome_percent")


class PlanValidator:
    """Validates pricing plan input according to business rules."""

    def validate_create(self, data: dict) -> None:
        """
        Validate a new plan. The chosen model's required field must be present.
        """
        if not data.get("organization_id"):
            raise InvalidArgument("organization_id is required")
        if "pricing_model" not in data or data["pricing_model"] is None:
            raise InvalidArgument("pricing_model is required")

        plan_fields = {k: v for k, v in data.items() if k != "organization_id"}
        self._validate_known_fields(plan_fields)
        self._validate_values(plan_fields)
        self._validate_model_configuration(data)

    def validate_update(self, fields: dict) -> None:
        """
        Validate a partial update. Model-required fields are not re-checked;
        keeping a plan consistent across partial edits is the caller's job.
        """
        self._validate_known_fields(fields)
        self._validate_values(fields)

    def _validate_known_fields(self, fields: dict) -> None:
        unknown = sorted(set(fields) - set(PLAN_FIELDS))
        if unknown:
            raise InvalidArgument(f"Unknown pricing plan fields: {', '.join(unknown)}")

    def _validate_values(self, fields: dict) -> None:
        if fields.get("pricing_model") is not None:
            self.parse_pricing_model(fields["pricing_model"])

        for name in _MONEY_FIELDS:
            value = fields.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidArgument(f"{name} must be an integer amount in minor units, got: {value!r}")
            if value < 0:
                raise InvalidArgument(f"{name} cannot be negative, got: {value}")

        for name in _PERCENT_FIELDS:
            value = fields.get(name)
            if value is None:
                continue
            percent = self._parse_decimal(name, value)
            if not (0 <= percent <= 100):
                raise InvalidArgument(f"{name} must be between 0 and 100, got: {value}")

        if fields.get("tier_configuration") is not None:
            self._validate_tiers(fields["tier_configuration"])

        billing_day = fields.get("billing_day")
        if billing_day is not None:
            if isinstance(billing_day, bool) or not isinstance(billing_day, int) or not (1 <= billing_day <= 31):
                raise InvalidArgument(f"billing_day must be between 1 and 31, got: {billing_day!r}")

        currency = fields.get("currency")
        if currency is not None and (not isinstance(currency, str) or len(currency) != 3):
            raise InvalidArgument(f"currency must be a 3-letter ISO code, got: {currency!r}")

    def _validate_tiers(self, tiers) -> None:
        if not isinstance(tiers, list):
            raise InvalidArgument("tier_configuration must be a list of tiers")

        for i, tier in enumerate(tiers):
            if not isinstance(tier, dict) or "min_amount" not in tier or "fee" not in tier:
                raise InvalidArgument(f"Tier {i} must have min_amount, max_amount and fee")
            min_amount = tier["min_amount"]
            max_amount = tier.get("max_amount")
            fee = tier["fee"]
            for label, value in (("min_amount", min_amount), ("fee", fee)):
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise InvalidArgument(f"Tier {i} {label} must be a non-negative integer, got: {value!r}")
            if max_amount is not None:
                if isinstance(max_amount, bool) or not isinstance(max_amount, int):
                    raise InvalidArgument(f"Tier {i} max_amount must be an integer or null, got: {max_amount!r}")
                if max_amount < min_amount:
                    raise InvalidArgument(f"Tier {i} max_amount ({max_amount}) is below min_amount ({min_amount})")

    def _validate_model_configuration(self, data: dict) -> None:
        """Check the field the chosen pricing model requires."""
        model = self.parse_pricing_model(data["pricing_model"])
        field_name, label = REQUIRED_FIELD_BY_MODEL[model]
        value = data.get(field_name)

        if model == PricingModel.TIERED_FLAT_FEE:
            if not value:
                raise InvalidArgument(f"{label} is required for {model.value} pricing model")
            return

        if value is None:
            raise InvalidArgument(f"{label} is required for {model.value} pricing model")

    @staticmethod
    def parse_pricing_model(value) -> PricingModel:
        try:
            return PricingModel(value)
        except ValueError:
            valid = ", ".join(m.value for m in PricingModel)
            raise InvalidArgument(f"Invalid pricing_model: {value}. Must be one of {valid}") from None

    @staticmethod
    def _parse_decimal(name: str, value) -> Decimal:
        if isinstance(value, bool):
            raise InvalidArgument(f"{name} must be a number, got: {value!r}")
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise InvalidArgument(f"{name} must be a number, got: {value!r}") from None

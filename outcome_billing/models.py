"""
Domain Models for the Outcome Billing Engine

Dataclasses used by the fee calculator. They carry no database state: the
services turn ORM rows into PlanTerms before calling the calculator.
All money is an integer number of minor units (cents); percentages are
Decimals where 2.5 means 2.5%.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import ClassVar

# =============================================================================
# ENUMERATIONS
# =============================================================================


class PricingModel(str, Enum):
    REVENUE_SHARE = "REVENUE_SHARE"
    TIERED_FLAT_FEE = "TIERED_FLAT_FEE"
    FLAT_PER_DEAL = "FLAT_PER_DEAL"
    HYBRID = "HYBRID"


class EventStatus(str, Enum):
    """Lifecycle status of an outcome event.

    PENDING -> INVOICED -> PAID
    PENDING <-> FLAGGED_FOR_REVIEW
    PENDING | FLAGGED_FOR_REVIEW -> WAIVED | VOIDED
    """

    PENDING = "PENDING"
    INVOICED = "INVOICED"
    PAID = "PAID"
    WAIVED = "WAIVED"
    VOIDED = "VOIDED"
    FLAGGED_FOR_REVIEW = "FLAGGED_FOR_REVIEW"


# Statuses that supersede an event: a new one may be recorded for the deal.
SUPERSEDED_STATUSES = (EventStatus.WAIVED, EventStatus.VOIDED)

# Statuses counted in period reporting.
BILLABLE_STATUSES = (EventStatus.PENDING, EventStatus.INVOICED, EventStatus.PAID)

# Statuses counted against the monthly cap. Flagged events may be approved
# back to PENDING, so they keep their share of the cap.
CAP_STATUSES = BILLABLE_STATUSES + (EventStatus.FLAGGED_FOR_REVIEW,)

# Statuses counted as recognized revenue.
RECOGNIZED_STATUSES = (EventStatus.INVOICED, EventStatus.PAID)


# =============================================================================
# INPUT MODELS
# =============================================================================


@dataclass
class PricingTier:
    """A deal-amount range mapped to a flat fee."""

    min_amount: int
    max_amount: int | None  # None = no upper bound
    fee: int

    def matches(self, deal_amount: int) -> bool:
        if deal_amount < self.min_amount:
            return False
        return self.max_amount is None or deal_amount <= self.max_amount

    def to_dict(self) -> dict:
        return {"min_amount": self.min_amount, "max_amount": self.max_amount, "fee": self.fee}

    @classmethod
    def from_dict(cls, data: dict) -> "PricingTier":
        max_amount = data.get("max_amount")
        return cls(
            min_amount=int(data["min_amount"]),
            max_amount=int(max_amount) if max_amount is not None else None,
            fee=int(data["fee"]),
        )


def _percent(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def _cents(value) -> int | None:
    return int(value) if value is not None else None


@dataclass
class PlanTerms:
    """The parts of a pricing plan the fee calculator reads."""

    pricing_model: PricingModel
    revenue_share_percent: Decimal | None = None
    tier_configuration: list[PricingTier] | None = None
    flat_fee_per_deal: int | None = None
    outcome_percent: Decimal | None = None
    base_subscription_id: str | None = None
    min_deal_value: int | None = None
    min_fee_per_deal: int | None = None
    monthly_cap: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PlanTerms":
        tiers = data.get("tier_configuration")
        return cls(
            pricing_model=PricingModel(data["pricing_model"]),
            revenue_share_percent=_percent(data.get("revenue_share_percent")),
            tier_configuration=[PricingTier.from_dict(t) for t in tiers] if tiers is not None else None,
            flat_fee_per_deal=_cents(data.get("flat_fee_per_deal")),
            outcome_percent=_percent(data.get("outcome_percent")),
            base_subscription_id=data.get("base_subscription_id"),
            min_deal_value=_cents(data.get("min_deal_value")),
            min_fee_per_deal=_cents(data.get("min_fee_per_deal")),
            monthly_cap=_cents(data.get("monthly_cap")),
        )

    @classmethod
    def from_plan(cls, plan) -> "PlanTerms":
        """Build from an OutcomePricingPlan row (or anything with the same attributes)."""
        return cls.from_dict({
            "pricing_model": plan.pricing_model,
            "revenue_share_percent": plan.revenue_share_percent,
            "tier_configuration": plan.tier_configuration,
            "flat_fee_per_deal": plan.flat_fee_per_deal,
            "outcome_percent": plan.outcome_percent,
            "base_subscription_id": plan.base_subscription_id,
            "min_deal_value": plan.min_deal_value,
            "min_fee_per_deal": plan.min_fee_per_deal,
            "monthly_cap": plan.monthly_cap,
        })


# =============================================================================
# FEE TRACES
# =============================================================================


@dataclass
class FeeTrace:
    """Record of how a fee was computed.

    One subclass per pricing model carries that model's inputs; the safeguard
    fields are shared and stay None until a safeguard fires.
    """

    model: ClassVar[PricingModel]

    deal_amount: int = 0
    below_minimum: bool = False
    min_fee_applied: bool = False
    calculated_fee: int | None = None
    original_fee: int | None = None
    capped_to: int | None = None
    capped_to_zero: bool = False

    def model_fields(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        result = {"model": self.model.value, "deal_amount": self.deal_amount}
        result.update(self.model_fields())
        if self.below_minimum:
            result["below_minimum"] = True
        if self.min_fee_applied:
            result["min_fee_applied"] = True
            result["calculated_fee"] = self.calculated_fee
        if self.original_fee is not None:
            result["original_fee"] = self.original_fee
        if self.capped_to is not None:
            result["capped_to"] = self.capped_to
        if self.capped_to_zero:
            result["capped_to_zero"] = True
        return result

    @staticmethod
    def for_model(pricing_model: PricingModel, deal_amount: int) -> "FeeTrace":
        trace_class = TRACE_TYPES[PricingModel(pricing_model)]
        return trace_class(deal_amount=deal_amount)


@dataclass
class RevenueShareTrace(FeeTrace):
    model: ClassVar[PricingModel] = PricingModel.REVENUE_SHARE

    percent: Decimal | None = None

    def model_fields(self) -> dict:
        return {"percent": float(self.percent)} if self.percent is not None else {}


@dataclass
class TieredFlatFeeTrace(FeeTrace):
    model: ClassVar[PricingModel] = PricingModel.TIERED_FLAT_FEE

    tier: PricingTier | None = None

    def model_fields(self) -> dict:
        return {"tier": self.tier.to_dict()} if self.tier is not None else {}


@dataclass
class FlatPerDealTrace(FeeTrace):
    model: ClassVar[PricingModel] = PricingModel.FLAT_PER_DEAL

    flat_fee: int | None = None

    def model_fields(self) -> dict:
        return {"flat_fee": self.flat_fee} if self.flat_fee is not None else {}


@dataclass
class HybridTrace(FeeTrace):
    model: ClassVar[PricingModel] = PricingModel.HYBRID

    percent: Decimal | None = None
    base_subscription_id: str | None = None

    def model_fields(self) -> dict:
        fields = {}
        if self.percent is not None:
            fields["percent"] = float(self.percent)
        if self.base_subscription_id is not None:
            fields["base_subscription_id"] = self.base_subscription_id
        return fields


TRACE_TYPES: dict[PricingModel, type[FeeTrace]] = {
    PricingModel.REVENUE_SHARE: RevenueShareTrace,
    PricingModel.TIERED_FLAT_FEE: TieredFlatFeeTrace,
    PricingModel.FLAT_PER_DEAL: FlatPerDealTrace,
    PricingModel.HYBRID: HybridTrace,
}


# =============================================================================
# PIPELINE STATE / RESULT
# =============================================================================


@dataclass
class FeeContext:
    """
    Holds the intermediate fee while it moves through the safeguard pipeline.
    """

    # Input (immutable during processing)
    deal_amount: int
    plan: PlanTerms
    already_billed: int = 0

    # Step results
    fee: int = 0
    trace: FeeTrace = field(default_factory=FeeTrace)
    halted: bool = False


@dataclass
class FeeResult:
    """Final output of a fee calculation."""

    fee_amount: int
    calculation: FeeTrace

    @property
    def below_minimum(self) -> bool:
        return self.calculation.below_minimum

"""
Fee Engine - Main Orchestrator

Runs a deal amount through the fee pipeline as discrete, testable steps.
"""

from typing import Any, Dict

from .calculators import (
    MinimumDealValueGate,
    MinimumFeeFloor,
    ModelFeeCalculator,
    MonthlyCapEnforcer,
)
from .models import FeeContext, FeeResult, FeeTrace, PlanTerms


class FeeEngine:
    """
    Main orchestrator for fee calculation.

    The safeguard order is fixed; each step sees the previous step's fee:
    1. Minimum deal value gate (halts with fee 0)
    2. Pricing model fee
    3. Minimum fee floor
    4. Monthly cap

    Pure and deterministic. Degenerate plans bill nothing rather than raise.
    """

    def __init__(self):
        self.deal_value_gate = MinimumDealValueGate()
        self.model_fee_calculator = ModelFeeCalculator()
        self.min_fee_floor = MinimumFeeFloor()
        self.monthly_cap_enforcer = MonthlyCapEnforcer()

    @property
    def steps(self) -> list:
        return [
            self.deal_value_gate,
            self.model_fee_calculator,
            self.min_fee_floor,
            self.monthly_cap_enforcer,
        ]

    def calculate(self, deal_amount: int, plan: PlanTerms, already_billed: int = 0) -> FeeResult:
        """
        Calculate the fee for a deal.

        Args:
            deal_amount: Deal value in minor units
            plan: Pricing terms of the tenant's plan
            already_billed: Fees already billed this period, in minor units

        Returns:
            FeeResult with the fee and the trace of how it was reached
        """
        ctx = FeeContext(
            deal_amount=deal_amount,
            plan=plan,
            already_billed=already_billed,
            trace=FeeTrace.for_model(plan.pricing_model, deal_amount),
        )

        for step in self.steps:
            ctx = step.apply(ctx)
            if ctx.halted:
                break

        return FeeResult(fee_amount=max(0, ctx.fee), calculation=ctx.trace)

    def calculate_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Calculate a fee from a raw dictionary.

        Convenience method for API usage (fee previews).
        """
        plan = PlanTerms.from_dict(data["plan"])
        result = self.calculate(
            int(data["deal_amount"]),
            plan,
            int(data.get("already_billed_this_period", 0)),
        )
        return {"fee_amount": result.fee_amount, "calculation": result.calculation.to_dict()}


_default_engine = FeeEngine()


def calculate_fee(deal_amount: int, plan: PlanTerms, already_billed: int = 0) -> FeeResult:
    """Calculate a fee with a shared engine. The engine holds no state."""
    return _default_engine.calculate(deal_amount, plan, already_billed)

"""
Minimum Deal Value Gate

Deals below the plan's minimum value are exempt from outcome billing.
"""

from ..models import FeeContext


class MinimumDealValueGate:
    """Halts the pipeline with a zero fee for deals below the minimum value."""

    def apply(self, ctx: FeeContext) -> FeeContext:
        min_deal_value = ctx.plan.min_deal_value

        # A deal exactly at the minimum is billable
        if min_deal_value and ctx.deal_amount < min_deal_value:
            ctx.fee = 0
            ctx.trace.below_minimum = True
            ctx.halted = True

        return ctx

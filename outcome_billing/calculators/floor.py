"""
Minimum Fee Floor

Raises small, non-zero fees to the plan's per-deal minimum.
"""

from ..models import FeeContext


class MinimumFeeFloor:
    """Applies the minimum fee per deal."""

    def apply(self, ctx: FeeContext) -> FeeContext:
        """
        Raise the fee to ``min_fee_per_deal`` when ``0 < fee < min_fee_per_deal``.

        A zero fee stays zero: a deal that earned nothing under its model is
        exempt, not merely cheap.
        """
        min_fee = ctx.plan.min_fee_per_deal

        if min_fee and 0 < ctx.fee < min_fee:
            ctx.trace.calculated_fee = ctx.fee
            ctx.trace.min_fee_applied = True
            ctx.fee = min_fee

        return ctx

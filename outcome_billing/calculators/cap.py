"""
Monthly Cap Enforcer

Limits cumulative outcome fees billed to a tenant within one billing period.
"""

from ..models import FeeContext


class MonthlyCapEnforcer:
    """Enforces the plan's monthly cap on outcome fees."""

    def apply(self, ctx: FeeContext) -> FeeContext:
        """
        Apply the monthly cap if configured.

        remaining = monthly_cap - already billed this period
        - remaining <= 0: nothing more can be billed this period
        - fee > remaining: bill only what is left under the cap
        The fee entering this step is kept as original_fee in both cases.
        """
        cap = ctx.plan.monthly_cap

        if not cap:
            return ctx

        remaining = cap - ctx.already_billed

        if remaining <= 0:
            ctx.trace.original_fee = ctx.fee
            ctx.trace.capped_to_zero = True
            ctx.fee = 0
        elif ctx.fee > remaining:
            ctx.trace.original_fee = ctx.fee
            ctx.trace.capped_to = remaining
            ctx.fee = remaining

        return ctx

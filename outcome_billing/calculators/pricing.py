"""
Model Fee Calculator

Computes the base fee for a deal under the plan's pricing model, before any
safeguard is applied. All percentage fees round half-up to a whole cent.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..models import FeeContext, PlanTerms, PricingModel, PricingTier


def round_minor_units(value: Decimal) -> int:
    """Round to a whole minor unit, halves going up (25002.5 -> 25003)."""
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


class ModelFeeCalculator:
    """Calculates the pricing-model fee for a deal."""

    def apply(self, ctx: FeeContext) -> FeeContext:
        plan = ctx.plan
        model = plan.pricing_model

        if model == PricingModel.REVENUE_SHARE:
            ctx.fee = self._calculate_percentage(ctx, plan.revenue_share_percent)
        elif model == PricingModel.TIERED_FLAT_FEE:
            ctx.fee = self._calculate_tiered(ctx, plan.tier_configuration)
        elif model == PricingModel.FLAT_PER_DEAL:
            ctx.fee = self._calculate_flat(ctx, plan)
        elif model == PricingModel.HYBRID:
            # The base subscription is billed separately; only the outcome share is computed here.
            ctx.trace.base_subscription_id = plan.base_subscription_id
            ctx.fee = self._calculate_percentage(ctx, plan.outcome_percent)
        else:
            ctx.fee = 0

        return ctx

    def _calculate_percentage(self, ctx: FeeContext, percent: Decimal | None) -> int:
        """deal x percent / 100. An unset or 0% rate yields no fee."""
        if not percent:
            return 0
        ctx.trace.percent = percent
        return round_minor_units(Decimal(ctx.deal_amount) * percent / Decimal('100'))

    def _calculate_tiered(self, ctx: FeeContext, tiers: list[PricingTier] | None) -> int:
        """
        Flat fee of the first tier containing the deal amount.

        Tiers are scanned in configured order, so for overlapping ranges the
        earlier tier wins. Both bounds are inclusive.
        """
        if not tiers:
            return 0

        for tier in tiers:
            if tier.matches(ctx.deal_amount):
                ctx.trace.tier = tier
                return tier.fee

        return 0

    def _calculate_flat(self, ctx: FeeContext, plan: PlanTerms) -> int:
        fee = plan.flat_fee_per_deal or 0
        ctx.trace.flat_fee = fee
        return fee

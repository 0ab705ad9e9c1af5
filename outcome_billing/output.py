"""
Output Builder

Constructs API payloads from plans, events and invoices. Money stays in
integer minor units; descriptions render it in dollars for humans.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional


def _fmt(cents: int | None) -> str:
    """Format minor units as a currency string for descriptions."""
    return f"${(cents or 0) / 100:,.2f}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def plan_to_dict(plan) -> dict:
    organization = plan.organization
    return {
        "id": plan.id,
        "organization_id": plan.organization_id,
        "organization": (
            {"id": organization.id, "name": organization.name, "slug": organization.slug}
            if organization is not None else None
        ),
        "pricing_model": plan.pricing_model,
        "revenue_share_percent": _float(plan.revenue_share_percent),
        "tier_configuration": plan.tier_configuration,
        "flat_fee_per_deal": plan.flat_fee_per_deal,
        "base_subscription_id": plan.base_subscription_id,
        "outcome_percent": _float(plan.outcome_percent),
        "monthly_cap": plan.monthly_cap,
        "min_deal_value": plan.min_deal_value,
        "min_fee_per_deal": plan.min_fee_per_deal,
        "platform_access_fee": plan.platform_access_fee,
        "grants_full_access": plan.grants_full_access,
        "billing_day": plan.billing_day,
        "currency": plan.currency,
        "is_active": plan.is_active,
        "created_at": _iso(plan.created_at),
        "updated_at": _iso(plan.updated_at),
    }


def event_to_dict(event, include_breakdown: bool = False) -> dict:
    result = {
        "id": event.id,
        "organization_id": event.organization_id,
        "pricing_plan_id": event.pricing_plan_id,
        "opportunity_id": event.opportunity_id,
        "opportunity_name": event.opportunity_name,
        "account_name": event.account_name,
        "owner_id": event.owner_id,
        "owner_name": event.owner_name,
        "deal_amount": event.deal_amount,
        "fee_amount": event.fee_amount,
        "fee_calculation": event.fee_calculation,
        "status": event.status,
        "closed_date": _iso(event.closed_date),
        "billing_period_start": _iso(event.billing_period_start),
        "billing_period_end": _iso(event.billing_period_end),
        "admin_notes": event.admin_notes,
        "reviewed_by": event.reviewed_by,
        "reviewed_at": _iso(event.reviewed_at),
        "invoice_id": event.invoice_id,
        "invoice_line_item_id": event.invoice_line_item_id,
        "invoiced_at": _iso(event.invoiced_at),
        "paid_at": _iso(event.paid_at),
    }
    if include_breakdown:
        result["fee_breakdown"] = describe_calculation(event.fee_calculation, event.fee_amount)
    return result


def invoice_to_dict(invoice) -> dict:
    return {
        "id": invoice.id,
        "organization_id": invoice.organization_id,
        "invoice_number": invoice.invoice_number,
        "status": invoice.status,
        "currency": invoice.currency,
        "total_amount": invoice.total_amount,
        "issued_at": _iso(invoice.issued_at),
        "paid_at": _iso(invoice.paid_at),
        "line_items": [
            {
                "id": line.id,
                "outcome_event_id": line.outcome_event_id,
                "description": line.description,
                "amount": line.amount,
            }
            for line in invoice.line_items
        ],
    }


def page_to_dict(page: dict, serializer: Callable) -> dict:
    return {**page, "data": [serializer(row) for row in page["data"]]}


def describe_calculation(calculation: dict, fee_amount: int) -> dict:
    """
    Explain a stored fee calculation step by step, each with a value and a
    description.
    """
    deal_amount = calculation.get("deal_amount", 0)
    model = calculation.get("model")

    breakdown = {
        "deal_amount": {
            "value": deal_amount,
            "description": f"Closed deal value of {_fmt(deal_amount)}",
        }
    }

    if calculation.get("below_minimum"):
        breakdown["fee_amount"] = {
            "value": 0,
            "description": "Deal is below the plan's minimum deal value - no fee charged",
        }
        return breakdown

    model_fee = calculation.get("calculated_fee")
    if model_fee is None:
        model_fee = calculation.get("original_fee", fee_amount)

    if model in ("REVENUE_SHARE", "HYBRID") and calculation.get("percent") is not None:
        model_desc = f"{calculation['percent']}% × {_fmt(deal_amount)} = {_fmt(model_fee)}"
        if model == "HYBRID":
            model_desc += " (outcome share; base subscription billed separately)"
    elif model == "TIERED_FLAT_FEE" and calculation.get("tier"):
        tier = calculation["tier"]
        upper = _fmt(tier["max_amount"]) if tier.get("max_amount") is not None else "no upper bound"
        model_desc = f"Tier {_fmt(tier['min_amount'])} - {upper} flat fee of {_fmt(tier['fee'])}"
    elif model == "FLAT_PER_DEAL":
        model_desc = f"Flat fee of {_fmt(calculation.get('flat_fee'))} per deal"
    else:
        model_fee = 0
        model_desc = f"No {model} rate configured for this deal - no fee from the pricing model"

    breakdown["model_fee"] = {"value": model_fee, "description": model_desc}

    if calculation.get("min_fee_applied"):
        floored = calculation.get("original_fee", fee_amount)
        breakdown["min_fee_floor"] = {
            "value": floored,
            "description": f"Raised from {_fmt(calculation.get('calculated_fee'))} to the per-deal minimum fee",
        }

    if calculation.get("capped_to_zero"):
        breakdown["monthly_cap"] = {
            "value": 0,
            "description": "Monthly cap already reached - no fee charged this period",
        }
    elif calculation.get("capped_to") is not None:
        breakdown["monthly_cap"] = {
            "value": calculation["capped_to"],
            "description": (
                f"Capped from {_fmt(calculation.get('original_fee'))} to the "
                f"{_fmt(calculation['capped_to'])} remaining under the monthly cap"
            ),
        }

    breakdown["fee_amount"] = {"value": fee_amount, "description": f"Fee billed for this deal: {_fmt(fee_amount)}"}
    return breakdown

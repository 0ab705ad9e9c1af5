"""
OUTCOME BILLING ENGINE
Fee calculation and event lifecycle for outcome-based CRM pricing.
"""

from .models import EventStatus, FeeResult, PlanTerms, PricingModel, PricingTier
from .processor import FeeEngine, calculate_fee

__all__ = [
    'FeeEngine',
    'calculate_fee',
    'EventStatus',
    'FeeResult',
    'PlanTerms',
    'PricingModel',
    'PricingTier',
]

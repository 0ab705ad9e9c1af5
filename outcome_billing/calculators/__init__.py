"""
Calculators Package

Provides the steps of the fee pipeline, in the order they run.
"""

from .cap import MonthlyCapEnforcer
from .floor import MinimumFeeFloor
from .gate import MinimumDealValueGate
from .pricing import ModelFeeCalculator, round_minor_units

__all__ = [
    "MinimumDealValueGate",
    "ModelFeeCalculator",
    "MinimumFeeFloor",
    "MonthlyCapEnforcer",
    "round_minor_units",
]

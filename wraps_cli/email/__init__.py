"""Email service configuration, presets and cost model."""

from .config import EmailConfig, retention_days
from .costs import FeatureCost, FeatureCostBreakdown, PricingTable, estimate_costs, format_cost
from .presets import get_preset, validate_config

__all__ = [
    'EmailConfig',
    'retention_days',
    'FeatureCost',
    'FeatureCostBreakdown',
    'PricingTable',
    'estimate_costs',
    'format_cost',
    'get_preset',
    'validate_config',
]

"""Cost accounting."""

from convergence_engine.pricing.cost import (
    DEFAULT_PRICING,
    CostAccountant,
    ModelPricing,
    PricingTable,
    format_cost,
)

__all__ = [
    "CostAccountant",
    "ModelPricing",
    "PricingTable",
    "DEFAULT_PRICING",
    "format_cost",
]

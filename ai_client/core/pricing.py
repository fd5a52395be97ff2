"""
Per-model pricing rates.

Holds the USD-per-1K-token rates used to cost each request.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping

from .errors import ConfigurationError


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_per_1k: float  # USD per 1K input tokens
    output_per_1k: float  # USD per 1K output tokens

    def __post_init__(self):
        """Validate rates are non-negative."""
        if self.input_per_1k < 0:
            raise ValueError("input_per_1k must be >= 0")
        if self.output_per_1k < 0:
            raise ValueError("output_per_1k must be >= 0")


@dataclass(frozen=True)
class PricingTable:
    """Pricing table for configured models."""
    prices: Dict[str, ModelPricing] = field(default_factory=dict)

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ConfigurationError: If no pricing entry exists for the model
        """
        if model not in self.prices:
            raise ConfigurationError(f"Pricing not configured for model: {model}")
        return self.prices[model]

    def merged(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with ``overrides`` layered over these prices."""
        prices = dict(self.prices)
        prices.update(overrides)
        return PricingTable(prices)

    def __contains__(self, model: object) -> bool:
        return model in self.prices


DEFAULT_PRICING = PricingTable({
    "claude-sonnet-4-5-20250929": ModelPricing(
        input_per_1k=0.003,
        output_per_1k=0.015
    ),
    "claude-haiku-4-5-20251001": ModelPricing(
        input_per_1k=0.001,
        output_per_1k=0.005
    ),
    "claude-opus-4-5-20251101": ModelPricing(
        input_per_1k=0.005,
        output_per_1k=0.025
    ),
})

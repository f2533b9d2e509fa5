"""Token cost estimation.

모델별 단가 (100만 토큰당 통화 단위) 테이블로 추정 비용 계산.
테이블은 생성 시점에 주입하며 런타임에 변경하지 않음.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

TOKENS_PER_UNIT = Decimal(1_000_000)
DISPLAY_PRECISION = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    """Per-model rates in currency units per 1,000,000 tokens."""

    prompt_rate: Decimal
    completion_rate: Decimal


class PricingTable:
    """Immutable model -> pricing mapping with a default fallback model.

    Example:
        table = PricingTable(
            {"my-model": ModelPricing(Decimal("1"), Decimal("2"))},
            default_model="my-model",
        )
    """

    def __init__(self, rates: Mapping[str, ModelPricing], default_model: str):
        if default_model not in rates:
            raise ValueError(f"Default model '{default_model}' has no pricing entry")
        self._rates = MappingProxyType(dict(rates))
        self.default_model = default_model

    @property
    def models(self) -> list[str]:
        return list(self._rates)

    def rates_for(self, model: str) -> ModelPricing:
        """Look up rates, falling back to the default model."""
        return self._rates.get(model, self._rates[self.default_model])


DEFAULT_PRICING = PricingTable(
    {
        "gpt-4o-2024-08-06": ModelPricing(Decimal("2.50"), Decimal("10.00")),
        "gpt-4o": ModelPricing(Decimal("2.50"), Decimal("10.00")),
        "gpt-4o-mini": ModelPricing(Decimal("0.15"), Decimal("0.60")),
        "gpt-4-turbo": ModelPricing(Decimal("10.00"), Decimal("30.00")),
        "gpt-3.5-turbo": ModelPricing(Decimal("0.50"), Decimal("1.50")),
    },
    default_model="gpt-4o-2024-08-06",
)


class CostAccountant:
    """Map token counts and a model identifier to an estimated cost."""

    def __init__(self, pricing: PricingTable | None = None):
        self.pricing = pricing or DEFAULT_PRICING

    def estimate_cost(
        self, prompt_tokens: int, completion_tokens: int, model: str
    ) -> Decimal:
        """Estimate cost with full precision.

        Args:
            prompt_tokens: Prompt token count
            completion_tokens: Completion token count
            model: Model identifier (unknown ids use the default model's rates)

        Returns:
            Decimal cost; use format_cost() for display
        """
        rates = self.pricing.rates_for(model)
        total = (
            Decimal(prompt_tokens) * rates.prompt_rate
            + Decimal(completion_tokens) * rates.completion_rate
        )
        return total / TOKENS_PER_UNIT


def format_cost(cost: Decimal) -> str:
    """Render a cost rounded to 6 decimal places."""
    return str(cost.quantize(DISPLAY_PRECISION, rounding=ROUND_HALF_UP))

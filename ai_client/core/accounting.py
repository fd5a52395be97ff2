"""
Usage accounting.

Turns token counts into costs and keeps cumulative session statistics.
"""

from dataclasses import dataclass, replace
from typing import Optional

from .pricing import ModelPricing


@dataclass(frozen=True)
class UsageRecord:
    """Token and cost snapshot for one completed request."""
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class SessionStats:
    """Cumulative usage counters."""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    request_count: int = 0

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def average_cost(self) -> float:
        """Mean cost per request, 0 when nothing has been recorded."""
        if self.request_count == 0:
            return 0.0
        return self.total_cost / self.request_count


def compute_usage(input_tokens: int, output_tokens: int, pricing: ModelPricing) -> UsageRecord:
    """Cost a request from its token counts.

    Costs are plain floats with no rounding applied; rounding is left to
    presentation.

    Args:
        input_tokens: Input (prompt) tokens consumed
        output_tokens: Output tokens generated
        pricing: Rates for the active model

    Returns:
        UsageRecord with per-direction and total cost
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError("token counts must be >= 0")

    input_cost = input_tokens / 1000 * pricing.input_per_1k
    output_cost = output_tokens / 1000 * pricing.output_per_1k

    return UsageRecord(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost
    )


def format_cost(amount: float) -> str:
    """Format a USD amount with 4 decimal places."""
    return f"${amount:.4f}"


class UsageAccountant:
    """Accumulates usage records into session statistics.

    Initial statistics are handed in by the caller (typically loaded from
    storage at startup), so the accountant never reads global state.
    """

    def __init__(self, stats: Optional[SessionStats] = None):
        self._stats = replace(stats) if stats is not None else SessionStats()

    @property
    def stats(self) -> SessionStats:
        """A copy of the current statistics."""
        return replace(self._stats)

    def add_usage(self, record: UsageRecord) -> None:
        """Fold a completed request into the running totals."""
        self._stats.total_input_tokens += record.input_tokens
        self._stats.total_output_tokens += record.output_tokens
        self._stats.total_cost += record.total_cost
        self._stats.request_count += 1

    def reset(self) -> None:
        """Zero all counters."""
        self._stats = SessionStats()

    def format_usage(self, record: UsageRecord) -> str:
        """One-line summary of a request plus the running session cost."""
        return (
            f"Usage: {record.input_tokens} in / {record.output_tokens} out tokens, "
            f"{format_cost(record.total_cost)} (session: {format_cost(self._stats.total_cost)})"
        )

    def format_stats(self) -> str:
        """Multi-line summary of the session statistics."""
        return "\n".join([
            "Session Stats:",
            f"- Input tokens:  {self._stats.total_input_tokens}",
            f"- Output tokens: {self._stats.total_output_tokens}",
            f"- Total cost:    {format_cost(self._stats.total_cost)}",
            f"- Requests:      {self._stats.request_count}",
        ])

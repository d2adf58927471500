"""Strategy protocol definition"""
from typing import Optional, Protocol

from signal_scanner.core.domain.signal import EvaluationContext, StrategyName, StrategyResult


class Strategy(Protocol):
    """Protocol for signal strategies"""

    name: StrategyName

    def evaluate(self, ctx: EvaluationContext) -> Optional[StrategyResult]:
        """
        Evaluate the latest closed bar of the context.

        Pure function of ``ctx``: no I/O, no state carried between calls.

        Args:
            ctx: Aligned entry/bias candle and indicator series

        Returns:
            StrategyResult if the setup qualifies, None otherwise
        """
        ...

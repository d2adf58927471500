"""Signal strategies"""
from signal_scanner.core.strategy.engine import evaluate_strategies, passes_data_quality_gate, run_strategies
from signal_scanner.core.strategy.range_breakout import RangeBreakoutStrategy
from signal_scanner.core.strategy.strategy_protocol import Strategy
from signal_scanner.core.strategy.trend_continuation import TrendContinuationStrategy

__all__ = [
    "evaluate_strategies",
    "passes_data_quality_gate",
    "RangeBreakoutStrategy",
    "run_strategies",
    "Strategy",
    "TrendContinuationStrategy",
]

"""Runs every strategy against one evaluation context"""
from typing import List, Optional, Sequence

from signal_scanner.core.domain.signal import EvaluationContext, StrategyResult
from signal_scanner.core.strategy.range_breakout import RangeBreakoutStrategy
from signal_scanner.core.strategy.strategy_protocol import Strategy
from signal_scanner.core.strategy.technical_utils import indicator_for_candle, missing_indicator_fields
from signal_scanner.core.strategy.trend_continuation import TrendContinuationStrategy
from signal_scanner.utils.error_handler import log_data_quality

DEFAULT_STRATEGIES: Sequence[Strategy] = (TrendContinuationStrategy(), RangeBreakoutStrategy())


def passes_data_quality_gate(ctx: EvaluationContext) -> bool:
    """
    Check that the latest entry bar has a fully populated indicator row.

    Logs a ``data_quality_gate`` event when it does not. An empty context
    fails silently.
    """
    if not ctx.entry_candles:
        return False

    latest = ctx.entry_candles[0]
    missing = missing_indicator_fields(indicator_for_candle(ctx.entry_indicators, latest))
    if missing:
        log_data_quality(ctx.symbol, ctx.entry_timeframe, latest.datetime_utc, missing)
        return False
    return True


def run_strategies(
    ctx: EvaluationContext,
    strategies: Optional[Sequence[Strategy]] = None,
) -> List[StrategyResult]:
    """Run each strategy on a context that already passed the data-quality gate"""
    results = []
    for strategy in strategies if strategies is not None else DEFAULT_STRATEGIES:
        result = strategy.evaluate(ctx)
        if result is not None:
            results.append(result)
    return results


def evaluate_strategies(
    ctx: EvaluationContext,
    strategies: Optional[Sequence[Strategy]] = None,
) -> List[StrategyResult]:
    """
    Evaluate the latest closed entry bar with each strategy.

    The evaluated bar must have a fully populated indicator row; otherwise a
    ``data_quality_gate`` event is logged and nothing is evaluated.

    Args:
        ctx: Evaluation context, series most-recent-first
        strategies: Strategies to run (trend continuation then range breakout by default)

    Returns:
        Zero, one or two results, at most one per strategy
    """
    if not passes_data_quality_gate(ctx):
        return []
    return run_strategies(ctx, strategies)

"""Range breakout strategy: squeeze inside a quiet range, then two closes outside it"""
import logging
from typing import Optional

from signal_scanner.core.domain.signal import Direction, EvaluationContext, StrategyName, StrategyResult
from signal_scanner.core.strategy.technical_utils import (
    has_required_indicators,
    indicator_for_candle,
    median_bb_width,
    round_price,
    trade_levels,
)

logger = logging.getLogger(__name__)

MIN_CANDLES = 24
MIN_INDICATORS = 50
ADX_RANGING_MAX = 18.0
# candles[0] and candles[1] are the follow-through bars; the range is built from the 20 before them
RANGE_START = 2
RANGE_END = 22
BREAKOUT_SCORE = 70


class RangeBreakoutStrategy:
    """
    Breakout from a low-volatility range.

    Gates, in order: ADX <= 18, Bollinger width below its trailing median.
    A breakout needs the previous and latest closes beyond the range and the
    latest close at or through the matching Bollinger band. Scores a flat 70.
    """

    name = StrategyName.RANGE_BREAKOUT

    def evaluate(self, ctx: EvaluationContext) -> Optional[StrategyResult]:
        candles = ctx.entry_candles
        if len(candles) < MIN_CANDLES or len(ctx.entry_indicators) < MIN_INDICATORS:
            return None

        latest = candles[0]
        prev = candles[1]
        ind = indicator_for_candle(ctx.entry_indicators, latest)
        if not has_required_indicators(ind):
            return None

        if ind.adx > ADX_RANGING_MAX:
            return None

        median_width = median_bb_width(ctx.entry_indicators)
        if median_width is None or ind.bb_width >= median_width:
            return None

        base_range = candles[RANGE_START:RANGE_END]
        range_high = max(c.high for c in base_range)
        range_low = min(c.low for c in base_range)

        if prev.close > range_high and latest.close > range_high and latest.close >= ind.bb_upper:
            direction = Direction.LONG
            breakout = "2 consecutive closes above range high + BB upper"
        elif prev.close < range_low and latest.close < range_low and latest.close <= ind.bb_lower:
            direction = Direction.SHORT
            breakout = "2 consecutive closes below range low + BB lower"
        else:
            return None

        logger.debug(
            f"Range breakout {direction.value} for instrument {ctx.instrument_id}",
            extra={'component': 'RangeBreakout'}
        )

        reasons = {
            "adx": round(ind.adx, 1),
            "bb_width": round_price(ind.bb_width),
            "median_bb_width": round_price(median_width),
            "range_high": round_price(range_high),
            "range_low": round_price(range_low),
            "breakout": breakout,
            "factors": ["low_adx", "squeeze", "two_close_breakout", "band_touch"],
        }
        reasons.update(trade_levels(direction, latest.close, ind.atr))

        return StrategyResult(strategy=self.name, direction=direction, score=BREAKOUT_SCORE, reasons=reasons)

"""Trend continuation strategy: 1h EMA200 bias with a 15m pullback entry"""
import logging
from typing import Optional

from signal_scanner.core.domain.signal import Direction, EvaluationContext, StrategyName, StrategyResult
from signal_scanner.core.strategy.technical_utils import (
    has_required_indicators,
    indicator_for_candle,
    round_price,
    trade_levels,
)

logger = logging.getLogger(__name__)

BIAS_SCORE = 20
EMA_STACK_SCORE = 25
PULLBACK_SCORE = 20
MACD_SCORE = 15
ADX_SCORE = 20
MIN_SCORE = 40
MAX_SCORE = 100

ADX_TRENDING = 18.0
EMA21_TOLERANCE = 0.002
EMA55_TOLERANCE = 0.005
SLOPE_LOOKBACK = 3


class TrendContinuationStrategy:
    """
    Trend continuation on the entry timeframe in the direction of the bias
    timeframe's EMA200.

    Scoring:
    - +20 bias (bias close and EMA200 slope agree)
    - +25 EMA stack 9/21/55 ordered with the direction
    - +20 previous bar dipped into the EMA21/EMA55 zone and the latest close reclaimed EMA21
    - +15 MACD histogram agrees with the direction
    - +20 ADX >= 18

    Emits only at 40 or more; capped at 100.
    """

    name = StrategyName.TREND_CONTINUATION

    def evaluate(self, ctx: EvaluationContext) -> Optional[StrategyResult]:
        if len(ctx.bias_indicators) < SLOPE_LOOKBACK + 1 or len(ctx.entry_candles) < 2:
            return None
        if not ctx.bias_candles:
            return None

        latest = ctx.entry_candles[0]
        prev = ctx.entry_candles[1]
        entry_ind = indicator_for_candle(ctx.entry_indicators, latest)
        if not has_required_indicators(entry_ind):
            return None

        bias_candle = ctx.bias_candles[0]
        latest_bias = indicator_for_candle(ctx.bias_indicators, bias_candle)
        if latest_bias is None:
            return None
        # Slope reference is SLOPE_LOOKBACK rows older than the matched row
        slope_index = ctx.bias_indicators.index(latest_bias) + SLOPE_LOOKBACK
        if slope_index >= len(ctx.bias_indicators):
            return None
        earlier_bias = ctx.bias_indicators[slope_index]
        if latest_bias.ema200 is None or earlier_bias.ema200 is None:
            return None

        direction = self._bias_direction(bias_candle.close, latest_bias.ema200, earlier_bias.ema200)
        if direction is None:
            return None

        is_long = direction is Direction.LONG
        score = BIAS_SCORE
        factors = ["bias"]
        reasons = {
            "bias": "close > EMA200, slope up" if is_long else "close < EMA200, slope down",
            "bias_ema200": round_price(latest_bias.ema200),
        }

        if is_long:
            stacked = entry_ind.ema9 > entry_ind.ema21 > entry_ind.ema55
        else:
            stacked = entry_ind.ema9 < entry_ind.ema21 < entry_ind.ema55
        if stacked:
            score += EMA_STACK_SCORE
            factors.append("ema_stack")
            reasons["ema_stack"] = "aligned"

        if self._pullback_reclaimed(direction, prev, latest, entry_ind.ema21, entry_ind.ema55):
            score += PULLBACK_SCORE
            factors.append("pullback")
            reasons["pullback"] = "reclaim after dip"

        macd_agrees = entry_ind.macd_hist >= 0 if is_long else entry_ind.macd_hist <= 0
        if macd_agrees:
            score += MACD_SCORE
            factors.append("macd")
            reasons["macd"] = "histogram confirms direction"

        if entry_ind.adx >= ADX_TRENDING:
            score += ADX_SCORE
            factors.append("adx")
            reasons["adx"] = f"trending ({entry_ind.adx:.1f})"

        if score < MIN_SCORE:
            logger.debug(
                f"Trend score {score} below {MIN_SCORE} for instrument {ctx.instrument_id}",
                extra={'component': 'TrendContinuation'}
            )
            return None

        reasons.update(trade_levels(direction, latest.close, entry_ind.atr))
        reasons["ema21_zone"] = round_price(entry_ind.ema21)
        reasons["ema55_zone"] = round_price(entry_ind.ema55)
        reasons["factors"] = factors

        return StrategyResult(
            strategy=self.name,
            direction=direction,
            score=min(score, MAX_SCORE),
            reasons=reasons,
        )

    @staticmethod
    def _bias_direction(bias_close: float, ema200: float, ema200_earlier: float) -> Optional[Direction]:
        if bias_close > ema200 and ema200 > ema200_earlier:
            return Direction.LONG
        if bias_close < ema200 and ema200 < ema200_earlier:
            return Direction.SHORT
        return None

    @staticmethod
    def _pullback_reclaimed(direction: Direction, prev, latest, ema21: float, ema55: float) -> bool:
        """Previous bar touched the EMA21/EMA55 zone; latest closed back beyond EMA21"""
        if direction is Direction.LONG:
            dipped = prev.low <= ema21 * (1 + EMA21_TOLERANCE) or prev.low <= ema55 * (1 + EMA55_TOLERANCE)
            return dipped and latest.close > ema21

        rallied = prev.high >= ema21 * (1 - EMA21_TOLERANCE) or prev.high >= ema55 * (1 - EMA55_TOLERANCE)
        return rallied and latest.close < ema21

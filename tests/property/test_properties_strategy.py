"""
Property-based tests for the strategy engine.

Rows are plain namespaces exposing the candle and indicator columns, the
same attributes the ORM rows carry in production.
"""
import logging
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from hypothesis import given, settings, strategies as st

from signal_scanner.core.domain.signal import Direction, EvaluationContext, StrategyName
from signal_scanner.core.strategy import (
    RangeBreakoutStrategy,
    TrendContinuationStrategy,
    evaluate_strategies,
    passes_data_quality_gate,
)
from signal_scanner.core.strategy.technical_utils import (
    has_required_indicators,
    median_bb_width,
    missing_indicator_fields,
    trade_levels,
)

LATEST = datetime(2024, 1, 1, 11, 45)
STEP = timedelta(minutes=15)


def make_candle(dt, open=1.085, high=1.086, low=1.084, close=1.085):
    return SimpleNamespace(datetime_utc=dt, open=open, high=high, low=low, close=close, volume=None)


def make_indicator(dt, **overrides):
    values = dict(
        datetime_utc=dt,
        ema9=1.09, ema21=1.08, ema55=1.07, ema200=1.0,
        bb_upper=1.1, bb_middle=1.08, bb_lower=1.06, bb_width=0.037,
        macd=0.001, macd_signal=0.0, macd_hist=0.001,
        atr=0.002, adx=25.0,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def bias_series(close, ema200_values):
    """One closed 1h candle and EMA200 rows newest first"""
    start = datetime(2024, 1, 1, 11, 0)
    candles = [make_candle(start, close=close)]
    indicators = [
        make_indicator(start - timedelta(hours=i), ema200=value)
        for i, value in enumerate(ema200_values)
    ]
    return candles, indicators


def trend_context(bias_close, ema200_values, prev, latest, **indicator_overrides):
    bias_candles, bias_indicators = bias_series(bias_close, ema200_values)
    return EvaluationContext(
        instrument_id=1,
        entry_candles=[latest, prev],
        entry_indicators=[make_indicator(LATEST, **indicator_overrides), make_indicator(LATEST - STEP)],
        bias_candles=bias_candles,
        bias_indicators=bias_indicators,
    )


RISING = [1.0, 0.999, 0.998, 0.997]
FALLING = [1.0, 1.001, 1.002, 1.003]


# Property 4: Trend continuation scoring
def test_trend_fully_aligned_long_scores_100():
    """
    Property 4: Trend continuation scoring

    Bias, EMA stack, pullback reclaim, MACD and ADX all agreeing give the
    maximum score, with ATR-based levels in the reasons.
    """
    ctx = trend_context(
        1.1, RISING,
        prev=make_candle(LATEST - STEP, low=1.0805),
        latest=make_candle(LATEST, close=1.085),
    )

    result = TrendContinuationStrategy().evaluate(ctx)

    assert result is not None
    assert result.strategy == StrategyName.TREND_CONTINUATION
    assert result.direction == Direction.LONG
    assert result.score == 100
    assert result.reasons["factors"] == ["bias", "ema_stack", "pullback", "macd", "adx"]
    assert result.reasons["entry_price"] == pytest.approx(1.085)
    assert result.reasons["stop_loss"] == pytest.approx(1.0826)
    assert result.reasons["take_profit"] == pytest.approx(1.0898)
    assert result.reasons["risk_reward_ratio"] == "1:2"
    assert result.reasons["adx"] == "trending (25.0)"


def test_trend_partial_confluence():
    """Bias + MACD + ADX without stack or pullback scores 55"""
    ctx = trend_context(
        1.1, RISING,
        prev=make_candle(LATEST - STEP, low=1.2),
        latest=make_candle(LATEST, close=1.085),
        ema9=1.07, ema21=1.08, ema55=1.09,
    )

    result = TrendContinuationStrategy().evaluate(ctx)

    assert result.score == 55
    assert result.reasons["factors"] == ["bias", "macd", "adx"]
    assert "ema_stack" not in result.reasons
    assert "pullback" not in result.reasons


def test_trend_threshold_is_inclusive():
    """Exactly 40 (bias + ADX) emits; 20 (bias only) does not"""
    prev = make_candle(LATEST - STEP, low=1.2)
    latest = make_candle(LATEST, close=1.085)
    unstacked = dict(ema9=1.07, ema21=1.08, ema55=1.09, macd_hist=-0.001)

    at_threshold = TrendContinuationStrategy().evaluate(trend_context(1.1, RISING, prev, latest, **unstacked))
    below = TrendContinuationStrategy().evaluate(trend_context(1.1, RISING, prev, latest, adx=10.0, **unstacked))

    assert at_threshold.score == 40
    assert below is None


def test_trend_short_mirror():
    ctx = trend_context(
        0.9, FALLING,
        prev=make_candle(LATEST - STEP, high=1.0795),
        latest=make_candle(LATEST, close=1.075),
        ema9=1.07, ema21=1.08, ema55=1.09, macd_hist=-0.001,
    )

    result = TrendContinuationStrategy().evaluate(ctx)

    assert result.direction == Direction.SHORT
    assert result.score == 100
    assert result.reasons["stop_loss"] == pytest.approx(1.0774)
    assert result.reasons["take_profit"] == pytest.approx(1.0702)


def test_trend_needs_bias_agreement():
    """Close above EMA200 with a falling slope has no bias"""
    ctx = trend_context(
        1.1, FALLING,
        prev=make_candle(LATEST - STEP, low=1.0805),
        latest=make_candle(LATEST, close=1.085),
    )
    assert TrendContinuationStrategy().evaluate(ctx) is None


def test_trend_needs_enough_bias_history():
    ctx = trend_context(
        1.1, RISING[:3],
        prev=make_candle(LATEST - STEP, low=1.0805),
        latest=make_candle(LATEST, close=1.085),
    )
    assert TrendContinuationStrategy().evaluate(ctx) is None


def test_trend_bias_row_matched_by_timestamp():
    """The latest bias candle without its own indicator row gives no bias"""
    ctx = trend_context(
        1.1, RISING,
        prev=make_candle(LATEST - STEP, low=1.0805),
        latest=make_candle(LATEST, close=1.085),
    )
    # Rows for 10:00 back to 07:00 only; the 11:00 candle is unmatched
    ctx.bias_indicators = [
        make_indicator(datetime(2024, 1, 1, 10, 0) - timedelta(hours=i), ema200=value)
        for i, value in enumerate(RISING)
    ]

    assert TrendContinuationStrategy().evaluate(ctx) is None


def test_trend_slope_measured_from_matched_bias_row():
    """A newer stray indicator row is skipped; slope runs from the 11:00 row"""
    ctx = trend_context(
        1.1, RISING,
        prev=make_candle(LATEST - STEP, low=1.0805),
        latest=make_candle(LATEST, close=1.085),
    )
    ctx.bias_indicators = [make_indicator(datetime(2024, 1, 1, 12, 0), ema200=5.0)] + list(ctx.bias_indicators)

    result = TrendContinuationStrategy().evaluate(ctx)

    assert result is not None
    assert result.direction == Direction.LONG
    assert result.reasons["bias_ema200"] == pytest.approx(1.0)


@given(
    ema9=st.floats(min_value=0.5, max_value=2.0),
    ema21=st.floats(min_value=0.5, max_value=2.0),
    ema55=st.floats(min_value=0.5, max_value=2.0),
    macd_hist=st.floats(min_value=-0.01, max_value=0.01),
    adx=st.floats(min_value=0, max_value=60),
    prev_low=st.floats(min_value=0.5, max_value=2.0),
    close=st.floats(min_value=0.5, max_value=2.0),
)
@settings(max_examples=200)
def test_trend_score_bounds(ema9, ema21, ema55, macd_hist, adx, prev_low, close):
    """Any emitted trend result scores within [40, 100] and lists its factors"""
    ctx = trend_context(
        1.1, RISING,
        prev=make_candle(LATEST - STEP, low=prev_low),
        latest=make_candle(LATEST, close=close),
        ema9=ema9, ema21=ema21, ema55=ema55, macd_hist=macd_hist, adx=adx,
    )

    result = TrendContinuationStrategy().evaluate(ctx)

    if result is not None:
        assert 40 <= result.score <= 100
        assert result.reasons["factors"][0] == "bias"
        assert result.direction == Direction.LONG


# Property 5: Range breakout
def range_context(latest_close=1.02, prev_close=1.02, indicator_count=60, **latest_overrides):
    candles = []
    for i in range(60):
        dt = LATEST - STEP * i
        if i == 0:
            candles.append(make_candle(dt, open=1.0, high=max(latest_close, 1.0) + 0.001,
                                       low=min(latest_close, 1.0) - 0.001, close=latest_close))
        elif i == 1:
            candles.append(make_candle(dt, open=1.0, high=max(prev_close, 1.0) + 0.001,
                                       low=min(prev_close, 1.0) - 0.001, close=prev_close))
        else:
            candles.append(make_candle(dt, open=1.0, high=1.01, low=0.99, close=1.0))

    indicators = []
    for i in range(indicator_count):
        overrides = dict(bb_upper=1.015, bb_middle=1.0, bb_lower=0.985, bb_width=0.01, adx=12.0)
        if i == 0:
            overrides.update(bb_width=0.001)
            overrides.update(latest_overrides)
        indicators.append(make_indicator(LATEST - STEP * i, **overrides))

    return EvaluationContext(
        instrument_id=1,
        entry_candles=candles,
        entry_indicators=indicators,
        bias_candles=[],
        bias_indicators=[],
    )


def test_range_breakout_long():
    """
    Property 5: Range breakout

    Low ADX, a squeeze below the median width, two closes above the range
    and the latest close through the upper band give a LONG at 70.
    """
    result = RangeBreakoutStrategy().evaluate(range_context())

    assert result is not None
    assert result.strategy == StrategyName.RANGE_BREAKOUT
    assert result.direction == Direction.LONG
    assert result.score == 70
    assert result.reasons["range_high"] == pytest.approx(1.01)
    assert result.reasons["range_low"] == pytest.approx(0.99)
    assert result.reasons["median_bb_width"] == pytest.approx(0.01)
    assert result.reasons["factors"] == ["low_adx", "squeeze", "two_close_breakout", "band_touch"]
    assert result.reasons["stop_loss"] == pytest.approx(1.02 - 0.0024)


def test_range_breakout_short():
    result = RangeBreakoutStrategy().evaluate(range_context(latest_close=0.98, prev_close=0.98))

    assert result.direction == Direction.SHORT
    assert result.score == 70


def test_range_breakout_needs_two_closes():
    assert RangeBreakoutStrategy().evaluate(range_context(prev_close=1.0)) is None


def test_range_breakout_needs_band_touch():
    assert RangeBreakoutStrategy().evaluate(range_context(bb_upper=1.03)) is None


def test_range_breakout_gates():
    assert RangeBreakoutStrategy().evaluate(range_context(adx=25.0)) is None
    assert RangeBreakoutStrategy().evaluate(range_context(bb_width=0.02)) is None
    assert RangeBreakoutStrategy().evaluate(range_context(indicator_count=40)) is None


# Property 6: Data-quality gate
def test_engine_skips_incomplete_indicator_row(caplog):
    """
    Property 6: Data-quality gate

    A latest bar whose indicator row has any null is not evaluated, and a
    structured data_quality_gate event is logged.
    """
    ctx = range_context(adx=None)

    with caplog.at_level(logging.WARNING):
        results = evaluate_strategies(ctx)

    assert results == []
    events = [r for r in caplog.records if getattr(r, "event", None) == "data_quality_gate"]
    assert len(events) == 1
    assert events[0].reason == "missing_indicators"
    assert events[0].timeframe == "15m"


def test_gate_event_carries_symbol(caplog):
    ctx = range_context(bb_width=None)
    ctx.symbol = "XAUUSD"

    with caplog.at_level(logging.WARNING):
        assert passes_data_quality_gate(ctx) is False

    events = [r for r in caplog.records if getattr(r, "event", None) == "data_quality_gate"]
    assert len(events) == 1
    assert events[0].symbol == "XAUUSD"
    assert events[0].candle == "2024-01-01T11:45:00"
    assert passes_data_quality_gate(range_context()) is True


def test_engine_skips_when_row_absent():
    ctx = range_context()
    ctx.entry_indicators = ctx.entry_indicators[1:]
    assert evaluate_strategies(ctx) == []


def test_engine_runs_every_strategy():
    results = evaluate_strategies(range_context())

    assert [r.strategy for r in results] == [StrategyName.RANGE_BREAKOUT]


def test_engine_empty_context():
    ctx = EvaluationContext(instrument_id=1, entry_candles=[], entry_indicators=[], bias_candles=[], bias_indicators=[])
    assert evaluate_strategies(ctx) == []


# Property 7: Indicator helpers
@given(widths=st.lists(st.floats(min_value=0.0001, max_value=1.0), min_size=10, max_size=50))
def test_median_bb_width_is_upper_median(widths):
    """
    Property 7: Indicator helpers

    The median is sorted[n // 2] of the non-null widths.
    """
    rows = [{"bb_width": w} for w in widths]
    assert median_bb_width(rows) == sorted(widths)[len(widths) // 2]


def test_median_bb_width_needs_ten_values():
    rows = [{"bb_width": 0.01}] * 9 + [{"bb_width": None}] * 5
    assert median_bb_width(rows) is None


def test_median_bb_width_window():
    rows = [{"bb_width": 0.01}] * 50 + [{"bb_width": 0.5}] * 50
    assert median_bb_width(rows) == 0.01


def test_required_indicator_predicate():
    complete = make_indicator(LATEST)
    assert has_required_indicators(complete)
    assert missing_indicator_fields(complete) == []

    partial = make_indicator(LATEST, bb_width=None, atr=None)
    assert not has_required_indicators(partial)
    assert missing_indicator_fields(partial) == ["atr", "bb_width"]
    assert not has_required_indicators(None)


def test_trade_levels_short():
    levels = trade_levels(Direction.SHORT, 1.0, 0.01)

    assert levels["stop_loss"] == pytest.approx(1.012)
    assert levels["take_profit"] == pytest.approx(0.976)
    assert levels["stop_distance"] == pytest.approx(0.012)

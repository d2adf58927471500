"""Strategy evaluation dataclasses"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence


class Direction(str, Enum):
    """Trade direction"""
    LONG = "LONG"
    SHORT = "SHORT"


class StrategyName(str, Enum):
    """Strategies run on every evaluation"""
    TREND_CONTINUATION = "TREND_CONTINUATION"
    RANGE_BREAKOUT = "RANGE_BREAKOUT"


class SignalStatus(str, Enum):
    """Signal lifecycle: NEW -> ALERTED, or NEW -> IGNORED"""
    NEW = "NEW"
    ALERTED = "ALERTED"
    IGNORED = "IGNORED"


@dataclass
class EvaluationContext:
    """
    Input to the strategy engine.

    All series are ordered most-recent-first: index 0 is the latest closed
    bar, index 1 the previous one. Candle and indicator rows are anything
    exposing the candle / indicator column names as attributes (ORM rows in
    production).

    Attributes:
        instrument_id: Instrument primary key
        entry_candles: Entry-timeframe candles (15m)
        entry_indicators: Entry-timeframe indicator rows
        bias_candles: Bias-timeframe candles (1h)
        bias_indicators: Bias-timeframe indicator rows
        entry_timeframe: Entry timeframe label
        symbol: Canonical symbol used in data-quality events
    """
    instrument_id: int
    entry_candles: Sequence[Any]
    entry_indicators: Sequence[Any]
    bias_candles: Sequence[Any]
    bias_indicators: Sequence[Any]
    entry_timeframe: str = "15m"
    symbol: Optional[str] = None


@dataclass
class StrategyResult:
    """
    Scored, explainable strategy outcome.

    Attributes:
        strategy: Strategy that produced the result
        direction: LONG or SHORT
        score: 0-100
        reasons: JSON-serializable reasoning payload
    """
    strategy: StrategyName
    direction: Direction
    score: int
    reasons: Dict[str, Any] = field(default_factory=dict)

"""Technical analysis utilities shared by the strategies"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from signal_scanner.core.domain.signal import Direction

logger = logging.getLogger(__name__)

# Values supplied by the vendor; bb_width is derived from the three bands
VENDOR_INDICATOR_FIELDS = (
    "ema9", "ema21", "ema55", "ema200",
    "bb_upper", "bb_middle", "bb_lower",
    "macd", "macd_signal", "macd_hist",
    "atr", "adx",
)
INDICATOR_FIELDS = VENDOR_INDICATOR_FIELDS + ("bb_width",)

STOP_ATR_MULTIPLIER = 1.2
REWARD_RISK_MULTIPLE = 2
PRICE_DECIMALS = 5


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def has_required_indicators(row: Any) -> bool:
    """
    True when every vendor-supplied indicator value and the derived band
    width are present. Accepts ORM rows, dataclasses or dicts.
    """
    if row is None:
        return False
    return all(_field(row, name) is not None for name in INDICATOR_FIELDS)


def missing_indicator_fields(row: Any) -> List[str]:
    """Null indicator fields of ``row`` (all of them when row is None)"""
    if row is None:
        return list(INDICATOR_FIELDS)
    return [name for name in INDICATOR_FIELDS if _field(row, name) is None]


def indicator_for_candle(indicators: Sequence[Any], candle: Any) -> Optional[Any]:
    """Indicator row with exactly the candle's timestamp"""
    for indicator in indicators:
        if indicator.datetime_utc == candle.datetime_utc:
            return indicator
    return None


def median_bb_width(indicators: Sequence[Any], window: int = 50, min_values: int = 10) -> Optional[float]:
    """
    Median Bollinger width over the most recent ``window`` rows.

    Uses the upper median (sorted[n // 2]) for even counts.

    Returns:
        Median width, or None with fewer than ``min_values`` non-null widths
    """
    widths = sorted(w for w in (_field(i, "bb_width") for i in indicators[:window]) if w is not None)
    if len(widths) < min_values:
        return None
    return widths[len(widths) // 2]


def round_price(value: float) -> float:
    return round(value, PRICE_DECIMALS)


def trade_levels(direction: Direction, entry_price: float, atr: float) -> Dict[str, Any]:
    """
    Entry, stop and target from an ATR-based stop distance at 1:2 risk/reward.

    Args:
        direction: Trade direction
        entry_price: Latest close
        atr: Latest ATR

    Returns:
        Rounded reason fields for the levels
    """
    stop_distance = STOP_ATR_MULTIPLIER * atr
    if direction is Direction.LONG:
        stop_loss = entry_price - stop_distance
        take_profit = entry_price + stop_distance * REWARD_RISK_MULTIPLE
    else:
        stop_loss = entry_price + stop_distance
        take_profit = entry_price - stop_distance * REWARD_RISK_MULTIPLE

    return {
        "entry_price": round_price(entry_price),
        "stop_loss": round_price(stop_loss),
        "take_profit": round_price(take_profit),
        "atr": round_price(atr),
        "stop_distance": round_price(stop_distance),
        "risk_reward_ratio": f"1:{REWARD_RISK_MULTIPLE}",
    }

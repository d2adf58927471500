"""
Normalization of raw vendor rows into candle and indicator records.

Indicator endpoints are fetched independently and may disagree on which
timestamps they cover; the merge is an outer join on timestamp, so a row
missing from one endpoint simply leaves those columns null.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from signal_scanner.data.twelvedata_client import IndicatorPack
from signal_scanner.core.strategy.technical_utils import INDICATOR_FIELDS, VENDOR_INDICATOR_FIELDS

# pack field -> {vendor column: indicator column}
INDICATOR_COLUMN_MAP: Dict[str, Dict[str, str]] = {
    "ema9": {"ema": "ema9"},
    "ema21": {"ema": "ema21"},
    "ema55": {"ema": "ema55"},
    "ema200": {"ema": "ema200"},
    "bbands": {"upper_band": "bb_upper", "middle_band": "bb_middle", "lower_band": "bb_lower"},
    "macd": {"macd": "macd", "macd_signal": "macd_signal", "macd_histogram": "macd_hist"},
    "atr": {"atr": "atr"},
    "adx": {"adx": "adx"},
}

CANDLE_COLUMNS = ("open", "high", "low", "close")


def parse_vendor_datetime(value: str) -> datetime:
    """Vendor datetimes without an offset are UTC; returns naive UTC"""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC").tz_localize(None).to_pydatetime()


def _to_utc_index(values: pd.Series) -> pd.Series:
    return pd.to_datetime(values, utc=True, errors="coerce").dt.tz_localize(None)


def _none_for_nan(value: Any) -> Any:
    return None if pd.isna(value) else float(value)


def normalize_candles(values: Iterable[dict], instrument_id: int, timeframe: str, source: str = "twelvedata") -> List[dict]:
    """
    Convert vendor time_series rows into candle rows.

    Rows with a missing datetime or OHLC value are dropped; volume is optional.
    """
    df = pd.DataFrame(list(values))
    if df.empty or "datetime" not in df.columns:
        return []

    for column in CANDLE_COLUMNS + ("volume",):
        if column not in df.columns:
            df[column] = None
        df[column] = pd.to_numeric(df[column], errors="coerce")

    df["datetime_utc"] = _to_utc_index(df["datetime"])
    df = df.dropna(subset=["datetime_utc", *CANDLE_COLUMNS])
    df = df.drop_duplicates(subset="datetime_utc", keep="last")

    return [
        {
            "instrument_id": instrument_id,
            "timeframe": timeframe,
            "datetime_utc": row.datetime_utc.to_pydatetime(),
            "open": float(row.open),
            "high": float(row.high),
            "low": float(row.low),
            "close": float(row.close),
            "volume": _none_for_nan(row.volume),
            "source": source,
        }
        for row in df.itertuples(index=False)
    ]


def _endpoint_frame(values: List[dict], columns: Dict[str, str]) -> Optional[pd.DataFrame]:
    df = pd.DataFrame(values)
    if df.empty or "datetime" not in df.columns:
        return None

    frame = pd.DataFrame({"datetime_utc": _to_utc_index(df["datetime"])})
    for vendor_column, column in columns.items():
        source = df[vendor_column] if vendor_column in df.columns else None
        frame[column] = pd.to_numeric(source, errors="coerce") if source is not None else float("nan")

    frame = frame.dropna(subset=["datetime_utc"]).drop_duplicates(subset="datetime_utc", keep="last")
    return frame.set_index("datetime_utc")


def merge_indicator_rows(pack: IndicatorPack, instrument_id: int, timeframe: str) -> List[dict]:
    """
    Merge every indicator endpoint of a pack into one row per timestamp.

    ``bb_width`` is derived as (upper - lower) / middle when all three bands
    are present and middle is non-zero.

    Returns:
        Indicator rows, newest first, with None for missing values
    """
    frames = []
    for name, columns in INDICATOR_COLUMN_MAP.items():
        frame = _endpoint_frame(getattr(pack, name), columns)
        if frame is not None:
            frames.append(frame)

    if not frames:
        return []

    merged = pd.concat(frames, axis=1, join="outer", sort=False)
    for column in VENDOR_INDICATOR_FIELDS:
        if column not in merged.columns:
            merged[column] = float("nan")

    middle = merged["bb_middle"].where(merged["bb_middle"] != 0)
    merged["bb_width"] = (merged["bb_upper"] - merged["bb_lower"]) / middle
    merged = merged.sort_index(ascending=False)

    rows = []
    for timestamp, values in merged.iterrows():
        row = {
            "instrument_id": instrument_id,
            "timeframe": timeframe,
            "datetime_utc": timestamp.to_pydatetime(),
        }
        for column in INDICATOR_FIELDS:
            row[column] = _none_for_nan(values[column])
        rows.append(row)
    return rows

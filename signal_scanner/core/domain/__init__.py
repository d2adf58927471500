"""Domain types"""
from signal_scanner.core.domain.instrument import AssetClass, WHITELIST, canonical_to_vendor, whitelist_entries
from signal_scanner.core.domain.signal import (
    Direction,
    EvaluationContext,
    SignalStatus,
    StrategyName,
    StrategyResult,
)

__all__ = [
    "AssetClass",
    "WHITELIST",
    "canonical_to_vendor",
    "whitelist_entries",
    "Direction",
    "EvaluationContext",
    "SignalStatus",
    "StrategyName",
    "StrategyResult",
]

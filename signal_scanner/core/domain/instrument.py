"""Instrument universe and canonical <-> vendor symbol mapping"""
from enum import Enum
from typing import Dict, List


class AssetClass(str, Enum):
    """Asset class enumeration"""
    FOREX = "FOREX"
    METAL = "METAL"
    CRYPTO = "CRYPTO"


# Symbols the scanner knows how to seed, keyed by asset class
WHITELIST: Dict[AssetClass, List[str]] = {
    AssetClass.FOREX: [
        "AUDCAD", "AUDCHF", "AUDJPY", "AUDNZD", "AUDUSD",
        "CADCHF", "CADJPY", "CHFJPY",
        "EURAUD", "EURCAD", "EURCHF", "EURGBP", "EURJPY", "EURNZD", "EURUSD",
        "GBPAUD", "GBPCAD", "GBPCHF", "GBPJPY", "GBPNZD", "GBPUSD",
        "NZDCAD", "NZDCHF", "NZDJPY", "NZDUSD",
        "USDCAD", "USDCHF", "USDJPY",
    ],
    AssetClass.METAL: ["XAUUSD", "XAGUSD"],
    AssetClass.CRYPTO: [
        "BTCUSD", "ETHUSD", "SOLUSD", "XRPUSD", "ADAUSD", "BCHUSD", "BNBUSD", "LTCUSD",
    ],
}

CRYPTO_EXCHANGE_SUFFIX = ":KuCoin"


def canonical_to_vendor(canonical: str, asset_class: str) -> str:
    """
    Map a canonical symbol to the vendor's symbol format.

    "EURUSD" / FOREX -> "EUR/USD", "BTCUSD" / CRYPTO -> "BTC/USD:KuCoin".
    """
    pair = f"{canonical[:3]}/{canonical[3:]}"
    if AssetClass(asset_class) is AssetClass.CRYPTO:
        return f"{pair}{CRYPTO_EXCHANGE_SUFFIX}"
    return pair


def whitelist_entries() -> List[dict]:
    """Flatten the whitelist into instrument rows ready for upsert"""
    return [
        {
            "canonical_symbol": symbol,
            "asset_class": asset_class.value,
            "vendor_symbol": canonical_to_vendor(symbol, asset_class.value),
        }
        for asset_class, symbols in WHITELIST.items()
        for symbol in symbols
    ]

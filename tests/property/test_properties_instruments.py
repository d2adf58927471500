"""
Tests for the instrument universe and symbol mapping.
"""
from hypothesis import given, strategies as st

from signal_scanner.core.domain.instrument import AssetClass, WHITELIST, canonical_to_vendor, whitelist_entries
from signal_scanner.db.queries import get_enabled_instruments, get_instruments, seed_instruments, set_instrument_enabled


# Property 3: Canonical to vendor symbol mapping
def test_canonical_to_vendor_examples():
    """
    Property 3: Canonical to vendor symbol mapping

    Crypto symbols carry the exchange suffix; forex and metals do not.
    """
    assert canonical_to_vendor("BTCUSD", "CRYPTO") == "BTC/USD:KuCoin"
    assert canonical_to_vendor("EURUSD", "FOREX") == "EUR/USD"
    assert canonical_to_vendor("XAUUSD", "METAL") == "XAU/USD"


@given(
    base=st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ", min_size=3, max_size=3),
    quote=st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ", min_size=3, max_size=4),
    asset_class=st.sampled_from([a.value for a in AssetClass]),
)
def test_canonical_to_vendor_shape(base, quote, asset_class):
    vendor = canonical_to_vendor(base + quote, asset_class)
    pair = f"{base}/{quote}"

    if asset_class == "CRYPTO":
        assert vendor == pair + ":KuCoin"
    else:
        assert vendor == pair


def test_whitelist_contents():
    assert len(WHITELIST[AssetClass.FOREX]) == 28
    assert WHITELIST[AssetClass.METAL] == ["XAUUSD", "XAGUSD"]
    assert len(WHITELIST[AssetClass.CRYPTO]) == 8

    entries = whitelist_entries()
    assert len(entries) == 38
    assert len({e["canonical_symbol"] for e in entries}) == 38


def test_seed_is_idempotent_and_keeps_enabled_flag(db):
    assert seed_instruments(db) == 38
    set_instrument_enabled(db, "BTCUSD", False)

    assert seed_instruments(db) == 38

    instruments = {i.canonical_symbol: i for i in get_instruments(db)}
    assert len(instruments) == 38
    assert instruments["BTCUSD"].enabled is False
    assert instruments["BTCUSD"].vendor_symbol == "BTC/USD:KuCoin"
    assert len(get_enabled_instruments(db)) == 37

"""Twelve Data quote API client"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from signal_scanner.data.rate_governor import RateGovernor

logger = logging.getLogger(__name__)

BASE_URL = "https://api.twelvedata.com"
MAX_RETRIES = 3
DEFAULT_OUTPUT_SIZE = 100


class VendorError(Exception):
    """Base class for vendor failures"""


class VendorConfigError(VendorError):
    """Client is not configured (missing API key)"""


class VendorHTTPError(VendorError):
    """Non-throttling HTTP failure; not retried"""

    def __init__(self, status: int, endpoint: str):
        super().__init__(f"HTTP {status} for {endpoint}")
        self.status = status
        self.endpoint = endpoint


class VendorAPIError(VendorError):
    """Vendor answered with a ``status: error`` envelope; not retried"""


class VendorThrottledError(VendorError):
    """Vendor throttled the request (HTTP 429); retried within the budget"""


@dataclass
class IndicatorPack:
    """Raw per-endpoint value arrays for one symbol and interval"""
    candles: List[dict] = field(default_factory=list)
    ema9: List[dict] = field(default_factory=list)
    ema21: List[dict] = field(default_factory=list)
    ema55: List[dict] = field(default_factory=list)
    ema200: List[dict] = field(default_factory=list)
    bbands: List[dict] = field(default_factory=list)
    macd: List[dict] = field(default_factory=list)
    atr: List[dict] = field(default_factory=list)
    adx: List[dict] = field(default_factory=list)


def indicator_requests(vendor_symbol: str, interval: str, output_size: int) -> List[Tuple[str, str, Dict[str, Any]]]:
    """
    The nine requests making up one indicator pack, in pack field order.

    Returns:
        List of (pack field, endpoint, params)
    """
    base = {"symbol": vendor_symbol, "interval": interval, "outputsize": output_size, "timezone": "UTC"}
    return [
        ("candles", "time_series", dict(base)),
        ("ema9", "ema", {**base, "time_period": 9}),
        ("ema21", "ema", {**base, "time_period": 21}),
        ("ema55", "ema", {**base, "time_period": 55}),
        ("ema200", "ema", {**base, "time_period": 200}),
        ("bbands", "bbands", {**base, "time_period": 20, "sd": 2}),
        ("macd", "macd", dict(base)),
        ("atr", "atr", {**base, "time_period": 14}),
        ("adx", "adx", {**base, "time_period": 14}),
    ]


def _stringify(params: Dict[str, Any]) -> Dict[str, str]:
    return {key: str(value) for key, value in params.items()}


class TwelveDataClient:
    """
    Budget-gated, serialized client for the Twelve Data REST API.

    Every request (batched or single) runs under one asyncio lock, so the
    shared RateGovernor is only read and mutated by one request at a time
    and requests complete in FIFO order, retry loop included.
    """

    def __init__(
        self,
        api_key: Optional[str],
        governor: Optional[RateGovernor] = None,
        base_url: str = BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        max_retries: int = MAX_RETRIES,
    ):
        """
        Initialize client.

        Args:
            api_key: Twelve Data API key; absence fails each fetch, not construction
            governor: Shared credit governor
            base_url: API root
            session: aiohttp session (created lazily when omitted)
            max_retries: Attempts per request under throttling
        """
        self.api_key = api_key
        self.governor = governor or RateGovernor()
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._session = session
        self._owns_session = session is None
        self._lock = asyncio.Lock()

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise VendorConfigError("TWELVEDATA__API_KEY not set")
        return self.api_key

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def request(self, endpoint: str, params: Dict[str, Any]) -> List[dict]:
        """
        GET one endpoint through the serialized, retrying, budget-gated path.

        Returns:
            The ``values`` array (empty when the endpoint has no data)

        Raises:
            VendorConfigError: API key missing
            VendorHTTPError: Non-throttling HTTP failure
            VendorAPIError: Vendor reported a logical error
            VendorThrottledError: Still throttled after ``max_retries`` attempts
        """
        api_key = self._require_api_key()
        values: List[dict] = []

        async with self._lock:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                retry=retry_if_exception_type(VendorThrottledError),
                reraise=True,
            ):
                with attempt:
                    values = await self._attempt(endpoint, params, api_key, attempt.retry_state.attempt_number)

        return values

    async def _attempt(self, endpoint: str, params: Dict[str, Any], api_key: str, attempt_number: int) -> List[dict]:
        await self.governor.acquire()

        session = await self._get_session()
        query = _stringify({**params, "apikey": api_key})

        async with session.get(f"{self.base_url}/{endpoint}", params=query) as response:
            self.governor.record_headers(response.headers)

            if response.status == 429:
                wait = self.governor.pause()
                logger.warning(
                    f"429 {endpoint}, attempt {attempt_number}/{self.max_retries}, paused {wait:.3f}s",
                    extra={'component': 'TwelveData'}
                )
                raise VendorThrottledError(f"{endpoint} throttled after {attempt_number} attempt(s)")

            if response.status >= 400:
                raise VendorHTTPError(response.status, endpoint)

            data = await response.json(content_type=None)

        if isinstance(data, dict) and data.get("status") == "error":
            raise VendorAPIError(f"{endpoint} error: {data.get('message')}")

        self.governor.record_completion(response.headers)

        if isinstance(data, dict):
            return data.get("values") or []
        return []

    async def fetch_time_series(self, vendor_symbol: str, interval: str, output_size: int = DEFAULT_OUTPUT_SIZE) -> List[dict]:
        return await self.request("time_series", {
            "symbol": vendor_symbol, "interval": interval, "outputsize": output_size, "timezone": "UTC",
        })

    async def fetch_ema(self, vendor_symbol: str, interval: str, time_period: int, output_size: int = DEFAULT_OUTPUT_SIZE) -> List[dict]:
        return await self.request("ema", {
            "symbol": vendor_symbol, "interval": interval, "time_period": time_period,
            "outputsize": output_size, "timezone": "UTC",
        })

    async def fetch_bbands(self, vendor_symbol: str, interval: str, output_size: int = DEFAULT_OUTPUT_SIZE) -> List[dict]:
        return await self.request("bbands", {
            "symbol": vendor_symbol, "interval": interval, "time_period": 20, "sd": 2,
            "outputsize": output_size, "timezone": "UTC",
        })

    async def fetch_macd(self, vendor_symbol: str, interval: str, output_size: int = DEFAULT_OUTPUT_SIZE) -> List[dict]:
        return await self.request("macd", {
            "symbol": vendor_symbol, "interval": interval, "outputsize": output_size, "timezone": "UTC",
        })

    async def fetch_atr(self, vendor_symbol: str, interval: str, output_size: int = DEFAULT_OUTPUT_SIZE) -> List[dict]:
        return await self.request("atr", {
            "symbol": vendor_symbol, "interval": interval, "time_period": 14,
            "outputsize": output_size, "timezone": "UTC",
        })

    async def fetch_adx(self, vendor_symbol: str, interval: str, output_size: int = DEFAULT_OUTPUT_SIZE) -> List[dict]:
        return await self.request("adx", {
            "symbol": vendor_symbol, "interval": interval, "time_period": 14,
            "outputsize": output_size, "timezone": "UTC",
        })

    async def fetch_all_indicators(
        self,
        vendor_symbol: str,
        interval: str,
        output_size: int = DEFAULT_OUTPUT_SIZE,
    ) -> IndicatorPack:
        """
        Fetch candles plus every indicator for one symbol and interval.

        Tries a single batched request first; when that is unreachable or
        its response is malformed or incomplete, falls back to the nine
        endpoint calls one after another (never in parallel).

        Args:
            vendor_symbol: Vendor symbol, e.g. "EUR/USD"
            interval: Vendor interval, e.g. "15min"
            output_size: Rows per endpoint

        Returns:
            IndicatorPack of raw value arrays
        """
        self._require_api_key()
        requests = indicator_requests(vendor_symbol, interval, output_size)

        pack = await self._fetch_batch(requests)
        if pack is not None:
            return pack

        logger.info(
            f"Batch unavailable for {vendor_symbol} {interval}, fetching sequentially",
            extra={'component': 'TwelveData', 'symbol': vendor_symbol}
        )
        pack = IndicatorPack()
        for name, endpoint, params in requests:
            setattr(pack, name, await self.request(endpoint, params))
        return pack

    async def _fetch_batch(self, requests: List[Tuple[str, str, Dict[str, Any]]]) -> Optional[IndicatorPack]:
        """One batched POST; None on any failure so the caller can fall back"""
        api_key = self._require_api_key()
        body = {"data": [{"endpoint": endpoint, "params": params} for _, endpoint, params in requests]}

        try:
            async with self._lock:
                await self.governor.acquire()
                session = await self._get_session()

                async with session.post(f"{self.base_url}/batch", params={"apikey": api_key}, json=body) as response:
                    self.governor.record_headers(response.headers)

                    if response.status == 429:
                        self.governor.pause()
                        logger.warning("429 batch", extra={'component': 'TwelveData'})
                        return None
                    if response.status >= 400:
                        logger.warning(f"HTTP {response.status} for batch", extra={'component': 'TwelveData'})
                        return None

                    data = await response.json(content_type=None)
                    self.governor.record_completion(response.headers, credits=len(requests))

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Batch request failed: {e}", extra={'component': 'TwelveData'})
            return None

        return self._unpack_batch(data, requests)

    @staticmethod
    def _unpack_batch(data: Any, requests: List[Tuple[str, str, Dict[str, Any]]]) -> Optional[IndicatorPack]:
        if not isinstance(data, dict):
            return None
        rows = data.get("data")
        if not isinstance(rows, list) or len(rows) < len(requests):
            return None

        pack = IndicatorPack()
        for (name, endpoint, _), row in zip(requests, rows):
            if not isinstance(row, dict) or row.get("status") == "error":
                logger.warning(f"Batch entry {endpoint} incomplete", extra={'component': 'TwelveData'})
                return None
            setattr(pack, name, row.get("values") or [])
        return pack

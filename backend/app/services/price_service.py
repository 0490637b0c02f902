"""CoinGecko price source for alert evaluation."""

import logging
import math
from typing import Dict, Iterable, List, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class PriceSourceError(Exception):
    """A price batch request failed. Never escapes fetch_prices."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        # Rate limit or timeout; logged as a warning rather than an error
        self.transient = transient


class PriceService:
    """Fetch current USD prices for CoinGecko ids.

    Stateless: every call opens its own HTTP client, so the service can be
    shared between the API event loop and Celery's per-task loops. Failures
    never raise; ids that could not be priced are simply absent from the
    result and the caller skips them for this pass.
    """

    VS_CURRENCY = "usd"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.COINGECKO_API_KEY
        self.timeout = timeout or settings.PRICE_FETCH_TIMEOUT
        self.batch_size = max(1, batch_size or settings.PRICE_BATCH_SIZE)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        # Demo/free tier works without a key, just with lower rate limits
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _batches(ids: List[str], size: int) -> Iterable[List[str]]:
        for i in range(0, len(ids), size):
            yield ids[i:i + size]

    async def fetch_prices(self, token_ids: Iterable[str]) -> Dict[str, float]:
        """Return {token_id: usd_price} for every id the provider priced."""
        ids = sorted({t for t in token_ids if t})
        if not ids:
            return {}

        prices: Dict[str, float] = {}
        async with self._client() as client:
            for batch in self._batches(ids, self.batch_size):
                prices.update(await self._fetch_batch(client, batch))

        logger.info(
            "Fetched prices",
            extra={"requested": len(ids), "resolved": len(prices)},
        )
        return prices

    async def fetch_price(self, token_id: str) -> Optional[float]:
        """Single-id convenience wrapper around fetch_prices."""
        prices = await self.fetch_prices([token_id])
        return prices.get(token_id)

    async def _fetch_batch(self, client: httpx.AsyncClient, batch: List[str]) -> Dict[str, float]:
        try:
            data = await self._request_batch(client, batch)
        except PriceSourceError as e:
            log = logger.warning if e.transient else logger.error
            log(f"Price batch skipped: {e}", extra={"batch_size": len(batch)})
            return {}

        prices = {}
        for token_id in batch:
            price = self._extract_price(data.get(token_id))
            if price is not None:
                prices[token_id] = price
        return prices

    async def _request_batch(self, client: httpx.AsyncClient, batch: List[str]) -> dict:
        """One /simple/price call. Raises PriceSourceError on any failure."""
        try:
            response = await client.get(
                "/simple/price",
                params={"ids": ",".join(batch), "vs_currencies": self.VS_CURRENCY},
            )
        except httpx.TimeoutException as e:
            raise PriceSourceError("CoinGecko price request timed out", transient=True) from e
        except httpx.HTTPError as e:
            raise PriceSourceError(f"CoinGecko request failed: {type(e).__name__}: {e}") from e

        if response.status_code == 429:
            raise PriceSourceError("CoinGecko rate limit hit", transient=True)
        if response.is_error:
            raise PriceSourceError(f"CoinGecko returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise PriceSourceError("CoinGecko returned invalid JSON") from e
        if not isinstance(data, dict):
            raise PriceSourceError(f"Unexpected CoinGecko payload type: {type(data).__name__}")
        return data

    @classmethod
    def _extract_price(cls, entry) -> Optional[float]:
        if not isinstance(entry, dict):
            return None
        value = entry.get(cls.VS_CURRENCY)
        # bool is an int subclass; CoinGecko never sends one for a price
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        value = float(value)
        if not math.isfinite(value):
            return None
        return value


# Singleton instance
price_service = PriceService()

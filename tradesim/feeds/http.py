"""
HTTP ticker feed.

Polls a Binance-style ticker endpoint:

    GET {url}?symbol=BTCUSDT  ->  {"symbol": "BTCUSDT", "price": "50000.00"}
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from ..engine.assets import TradingPair
from ..exceptions import PriceFeedError

logger = logging.getLogger(__name__)


def ticker_symbol(pair: TradingPair) -> str:
    return f"{pair.base.value}{pair.quote.value}"


class HttpPriceFeed:
    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def quote(self, pair: TradingPair) -> Decimal:
        pair = TradingPair.parse(pair)
        symbol = ticker_symbol(pair)
        try:
            response = await self._client.get(self.url, params={"symbol": symbol})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise PriceFeedError(f"Ticker {symbol} returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.debug(f"Ticker request for {symbol} failed: {e}")
            raise PriceFeedError(f"Ticker {symbol} unreachable: {e}") from e
        except ValueError as e:
            raise PriceFeedError(f"Ticker {symbol} returned invalid JSON") from e

        try:
            price = Decimal(str(payload["price"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise PriceFeedError(f"Ticker {symbol} payload has no usable price: {payload!r}") from e
        if not price.is_finite() or price <= 0:
            raise PriceFeedError(f"Ticker {symbol} returned non-positive price {price}")
        return price

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

"""
Binance spot ticker adapter.
Provides 24h ticker statistics for the tracked USDT pairs.
"""

from typing import List, Optional
import httpx

from .base import BaseUpstreamAdapter, MalformedResponseError
from ..api.schemas import Ticker
from ..core.config import settings
from ..core.formatting import format_compact, format_price, to_float
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class BinanceTickerAdapter(BaseUpstreamAdapter[List[Ticker]]):
    """Binance 24h tickers, filtered to tracked pairs."""

    QUOTE_ASSET = "USDT"

    def __init__(self, symbols: Optional[List[str]] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            name="binance",
            base_url=settings.binance_api_url,
            client=client
        )
        self.symbols = symbols or settings.get_ticker_symbols_list()

    async def _fetch(self) -> List[Ticker]:
        payload = await self._make_request(
            method="GET",
            url=f"{self.base_url}/ticker/24hr"
        )

        if not isinstance(payload, list):
            raise MalformedResponseError("Expected a list of tickers", self.name)

        tracked = set(self.symbols)
        tickers = []
        for raw in payload:
            if not isinstance(raw, dict) or raw.get('symbol') not in tracked:
                continue
            tickers.append(self._to_ticker(raw))

        logger.info("Retrieved tickers from Binance", extra={
            "provider": self.name,
            "requested": len(self.symbols),
            "successful": len(tickers)
        })
        return tickers

    def _to_ticker(self, raw: dict) -> Ticker:
        symbol = str(raw.get('symbol', ''))
        if symbol.endswith(self.QUOTE_ASSET):
            symbol = symbol[:-len(self.QUOTE_ASSET)]

        price = to_float(raw.get('lastPrice'))
        volume = to_float(raw.get('quoteVolume'))
        return Ticker(
            symbol=symbol,
            price=price,
            priceChange=to_float(raw.get('priceChangePercent')),
            volume=volume,
            high=to_float(raw.get('highPrice')),
            low=to_float(raw.get('lowPrice')),
            priceFormatted=format_price(price),
            volumeFormatted=format_compact(volume)
        )

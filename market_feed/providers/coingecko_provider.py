"""
CoinGecko adapters.
Global market stats, derivatives listing, coin markets and simple prices (free tier, no key).
"""

from typing import Dict, List, Optional
import httpx

from .base import BaseUpstreamAdapter, MalformedResponseError
from ..api.schemas import AssetQuote, CoinPrice, Derivative, GlobalStats
from ..core.config import settings
from ..core.formatting import base_symbol, dedupe_derivatives, format_compact, to_float
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class CoinGeckoAdapter(BaseUpstreamAdapter):
    """Shared construction for CoinGecko endpoints."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            name="coingecko",
            base_url=settings.coingecko_api_url,
            client=client
        )


class CoinGeckoGlobalAdapter(CoinGeckoAdapter):
    """BTC dominance, total market cap and total 24h volume."""

    async def _fetch(self) -> GlobalStats:
        payload = await self._make_request(method="GET", url=f"{self.base_url}/global")
        if not isinstance(payload, dict):
            raise MalformedResponseError("Expected a JSON object from /global", self.name)

        data = payload.get('data') or {}
        dominance = to_float((data.get('market_cap_percentage') or {}).get('btc'))
        stats = GlobalStats(
            btcDominance=round(dominance, 2),
            totalMarketCap=to_float((data.get('total_market_cap') or {}).get('usd')),
            totalVolume24h=to_float((data.get('total_volume') or {}).get('usd'))
        )

        logger.info("Retrieved global stats from CoinGecko", extra={
            "provider": self.name,
            "btc_dominance": stats.btcDominance,
            "total_market_cap": format_compact(stats.totalMarketCap)
        })
        return stats


class CoinGeckoDerivativesAdapter(CoinGeckoAdapter):
    """Perpetual contract metrics, one entry per tracked base symbol."""

    def __init__(self, symbols: Optional[List[str]] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client=client)
        self.symbols = symbols or settings.get_derivative_symbols_list()

    async def _fetch(self) -> List[Derivative]:
        payload = await self._make_request(method="GET", url=f"{self.base_url}/derivatives")
        if payload is None:
            payload = []
        if not isinstance(payload, list):
            raise MalformedResponseError("Expected a list of derivatives", self.name)

        candidates = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            symbol = base_symbol(raw.get('symbol'))
            if not symbol:
                continue
            open_interest = to_float(raw.get('open_interest'))
            volume = to_float(raw.get('volume_24h'))
            candidates.append(Derivative(
                symbol=symbol,
                fundingRate=to_float(raw.get('funding_rate')),
                openInterest=open_interest,
                volume24h=volume,
                spread=to_float(raw.get('bid_ask_spread')),
                openInterestFormatted=format_compact(open_interest),
                volume24hFormatted=format_compact(volume)
            ))

        derivatives = dedupe_derivatives(candidates, tracked=self.symbols)
        logger.info("Retrieved derivatives from CoinGecko", extra={
            "provider": self.name,
            "raw_count": len(payload),
            "kept": len(derivatives)
        })
        return derivatives


class CoinGeckoMarketsAdapter(CoinGeckoAdapter):
    """Prices for the site's price ticker."""

    def __init__(self, coin_ids: Optional[List[str]] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client=client)
        self.coin_ids = coin_ids or settings.get_price_coin_ids_list()

    async def _fetch(self) -> List[CoinPrice]:
        payload = await self._make_request(
            method="GET",
            url=f"{self.base_url}/coins/markets",
            params={
                'vs_currency': 'usd',
                'ids': ','.join(self.coin_ids),
                'order': 'market_cap_desc',
                'sparkline': 'false'
            }
        )
        if not isinstance(payload, list):
            raise MalformedResponseError("Expected a list of coin markets", self.name)

        prices = []
        for coin in payload:
            if not isinstance(coin, dict) or not coin.get('id'):
                continue
            prices.append(CoinPrice(
                id=str(coin['id']),
                symbol=str(coin.get('symbol') or ''),
                image=coin.get('image'),
                current_price=to_float(coin.get('current_price')),
                price_change_percentage_24h=to_float(coin.get('price_change_percentage_24h'))
            ))

        logger.info("Retrieved coin prices from CoinGecko", extra={
            "provider": self.name,
            "requested": len(self.coin_ids),
            "successful": len(prices)
        })
        return prices


class CoinGeckoSimplePriceAdapter(CoinGeckoAdapter):
    """USD price and 24h change for a handful of coin ids."""

    async def _fetch(self, coin_ids: List[str]) -> Dict[str, AssetQuote]:
        payload = await self._make_request(
            method="GET",
            url=f"{self.base_url}/simple/price",
            params={
                'ids': ','.join(coin_ids),
                'vs_currencies': 'usd',
                'include_24hr_change': 'true'
            }
        )
        if not isinstance(payload, dict):
            raise MalformedResponseError("Expected a JSON object from /simple/price", self.name)

        quotes = {}
        for coin_id in coin_ids:
            data = payload.get(coin_id) or {}
            quotes[coin_id] = AssetQuote(
                price=to_float(data.get('usd')),
                change24h=to_float(data.get('usd_24h_change'))
            )
        return quotes

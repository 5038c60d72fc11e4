"""Tests for the market data adapters (Binance, CoinGecko, CryptoCompare) over a mocked transport."""

import time

import httpx
import pytest

from market_feed.providers.base import (
    AuthenticationError, MalformedResponseError, ProviderError, RateLimitError
)
from market_feed.providers.binance_provider import BinanceTickerAdapter
from market_feed.providers.coingecko_provider import (
    CoinGeckoDerivativesAdapter,
    CoinGeckoGlobalAdapter,
    CoinGeckoMarketsAdapter,
    CoinGeckoSimplePriceAdapter,
)
from market_feed.providers.cryptocompare_provider import (
    CryptoCompareHistoryAdapter,
    CryptoCompareNewsAdapter,
)


def _binance_row(symbol, last="100", change="1.5", quote_volume="2500000000"):
    return {
        "symbol": symbol,
        "lastPrice": last,
        "priceChangePercent": change,
        "quoteVolume": quote_volume,
        "highPrice": "110",
        "lowPrice": "90",
    }


class TestBinanceTickerAdapter:
    @pytest.mark.asyncio
    async def test_filters_tracked_pairs_and_formats(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/ticker/24hr")
            return httpx.Response(200, json=[
                _binance_row("BTCUSDT", last="42000.5"),
                _binance_row("SHIBUSDT", last="0.0000091"),
                _binance_row("ETHBTC"),
            ])

        adapter = BinanceTickerAdapter(symbols=["BTCUSDT", "SHIBUSDT"], client=mock_client(handler))
        result = await adapter.fetch()

        assert result.ok
        assert [t.symbol for t in result.value] == ["BTC", "SHIB"]
        btc, shib = result.value
        assert btc.price == 42000.5
        assert btc.priceFormatted == "$42,000.50"
        assert btc.volumeFormatted == "$2.50B"
        assert shib.priceFormatted == "$0.000009"

    @pytest.mark.asyncio
    async def test_non_2xx_is_a_failure(self, mock_client):
        adapter = BinanceTickerAdapter(
            symbols=["BTCUSDT"],
            client=mock_client(lambda request: httpx.Response(503, text="unavailable"))
        )
        result = await adapter.fetch()

        assert not result.ok
        assert isinstance(result.error, ProviderError)
        assert result.error.status_code == 503

    @pytest.mark.asyncio
    async def test_rate_limit_and_auth_errors(self, mock_client):
        limited = BinanceTickerAdapter(client=mock_client(lambda request: httpx.Response(429)))
        forbidden = BinanceTickerAdapter(client=mock_client(lambda request: httpx.Response(403)))

        assert isinstance((await limited.fetch()).error, RateLimitError)
        assert isinstance((await forbidden.fetch()).error, AuthenticationError)

    @pytest.mark.asyncio
    async def test_malformed_json_is_a_failure(self, mock_client):
        adapter = BinanceTickerAdapter(
            client=mock_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        )
        result = await adapter.fetch()

        assert not result.ok
        assert isinstance(result.error, MalformedResponseError)

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_a_failure(self, mock_client):
        adapter = BinanceTickerAdapter(
            client=mock_client(lambda request: httpx.Response(200, json={"code": -1}))
        )
        result = await adapter.fetch()

        assert not result.ok
        assert isinstance(result.error, MalformedResponseError)

    @pytest.mark.asyncio
    async def test_transport_error_is_a_failure(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await BinanceTickerAdapter(client=mock_client(handler)).fetch()

        assert not result.ok
        assert "HTTP error" in result.error.message


class TestCoinGeckoAdapters:
    @pytest.mark.asyncio
    async def test_global_stats_round_dominance(self, mock_client):
        payload = {
            "data": {
                "market_cap_percentage": {"btc": 52.34567},
                "total_market_cap": {"usd": 1.65e12},
                "total_volume": {"usd": 8.4e10},
            }
        }
        adapter = CoinGeckoGlobalAdapter(client=mock_client(lambda request: httpx.Response(200, json=payload)))
        result = await adapter.fetch()

        assert result.ok
        assert result.value.btcDominance == 52.35
        assert result.value.totalMarketCap == 1.65e12
        assert result.value.totalVolume24h == 8.4e10

    @pytest.mark.asyncio
    async def test_derivatives_keep_first_per_symbol(self, mock_client):
        payload = [
            {"symbol": "BTC/USDT", "funding_rate": 0.0001, "open_interest": 3.2e9,
             "volume_24h": 9.1e9, "bid_ask_spread": 0.01},
            {"symbol": "BTC/USD", "funding_rate": 0.0009, "open_interest": 1.0e9,
             "volume_24h": 1.0e9, "bid_ask_spread": 0.05},
            {"symbol": "ETH/USDT", "funding_rate": -0.0002, "open_interest": 1.1e9},
            {"symbol": "PEPE/USDT", "funding_rate": 0.01},
        ]
        adapter = CoinGeckoDerivativesAdapter(
            symbols=["BTC", "ETH"],
            client=mock_client(lambda request: httpx.Response(200, json=payload))
        )
        result = await adapter.fetch()

        assert result.ok
        assert [d.symbol for d in result.value] == ["BTC", "ETH"]
        btc = result.value[0]
        assert btc.fundingRate == 0.0001
        assert btc.openInterest == 3.2e9
        assert btc.openInterestFormatted == "$3.20B"
        assert result.value[1].fundingRate == -0.0002

    @pytest.mark.asyncio
    async def test_markets_request_and_mapping(self, mock_client):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ids"] = request.url.params["ids"]
            return httpx.Response(200, json=[
                {"id": "bitcoin", "symbol": "btc", "image": "https://img/btc.png",
                 "current_price": 42000, "price_change_percentage_24h": None},
                {"symbol": "nameless"},
            ])

        adapter = CoinGeckoMarketsAdapter(coin_ids=["bitcoin", "ethereum"], client=mock_client(handler))
        result = await adapter.fetch()

        assert seen["ids"] == "bitcoin,ethereum"
        assert result.ok
        assert len(result.value) == 1
        assert result.value[0].current_price == 42000.0
        assert result.value[0].price_change_percentage_24h == 0.0

    @pytest.mark.asyncio
    async def test_simple_price_quotes(self, mock_client):
        payload = {
            "bitcoin": {"usd": 42000, "usd_24h_change": 1.2345},
            "pax-gold": {"usd": 2050.5, "usd_24h_change": -0.5},
        }
        adapter = CoinGeckoSimplePriceAdapter(client=mock_client(lambda request: httpx.Response(200, json=payload)))
        result = await adapter.fetch(["bitcoin", "pax-gold", "missing"])

        assert result.ok
        assert result.value["bitcoin"].price == 42000.0
        assert result.value["pax-gold"].change24h == -0.5
        assert result.value["missing"].price == 0.0


class TestCryptoCompareAdapters:
    @pytest.mark.asyncio
    async def test_news_drops_stale_articles(self, mock_client):
        now = int(time.time())
        payload = {"Data": [
            {"id": 1, "title": "Fresh", "url": "https://n/1", "published_on": now - 3600,
             "source_info": {"name": "CoinDesk"}, "categories": "BTC|Market"},
            {"id": 2, "title": "Stale", "url": "https://n/2", "published_on": now - 30 * 86400},
            {"id": 3, "title": "", "published_on": now},
        ]}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["sortOrder"] == "popular"
            return httpx.Response(200, json=payload)

        result = await CryptoCompareNewsAdapter(client=mock_client(handler)).fetch()

        assert result.ok
        assert [a.title for a in result.value] == ["Fresh"]
        assert result.value[0].source == "CoinDesk"
        assert result.value[0].id == "1"

    @pytest.mark.asyncio
    async def test_history_maps_minute_closes(self, mock_client):
        payload = {"Response": "Success", "Data": {"Data": [
            {"time": 1700000000, "close": 42000.1},
            {"time": 1700000060, "close": 42010.2},
        ]}}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["fsym"] == "BTC"
            assert request.url.params["limit"] == "60"
            return httpx.Response(200, json=payload)

        result = await CryptoCompareHistoryAdapter(client=mock_client(handler)).fetch("btc")

        assert result.ok
        assert [p.price for p in result.value] == [42000.1, 42010.2]
        assert result.value[0].time.timestamp() == 1700000000

    @pytest.mark.asyncio
    async def test_history_error_response_is_a_failure(self, mock_client):
        payload = {"Response": "Error", "Message": "fsym is a required param."}
        adapter = CryptoCompareHistoryAdapter(client=mock_client(lambda request: httpx.Response(200, json=payload)))
        result = await adapter.fetch("btc")

        assert not result.ok
        assert "fsym" in result.error.message


class TestClientOwnership:
    @pytest.mark.asyncio
    async def test_injected_client_is_left_open(self, mock_client):
        shared = mock_client(lambda request: httpx.Response(200, json=[]))
        adapter = BinanceTickerAdapter(client=shared)

        await adapter.disconnect()

        assert adapter.client is shared
        assert not shared.is_closed

    @pytest.mark.asyncio
    async def test_own_client_is_created_lazily_and_closed(self):
        adapter = CoinGeckoGlobalAdapter()
        assert adapter.client is None

        await adapter.connect()
        own = adapter.client
        await adapter.disconnect()

        assert own.is_closed
        assert adapter.client is None

"""Shared test fixtures for the crypto market feed service."""

from types import SimpleNamespace
from typing import Any, Callable, Dict
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from market_feed.api.schemas import (
    AssetQuote, CalendarEvent, CoinPrice, Derivative, EventSource, GlobalStats,
    ImpactLevel, NewsArticle, Ticker
)
from market_feed.providers.base import FetchResult, ProviderError
from market_feed.services.cache import InMemoryFallbackStore
from market_feed.services.data_aggregator import MarketAggregator


# ---------------------------------------------------------------------------
# Sample normalized slices
# ---------------------------------------------------------------------------

TICKERS = [
    Ticker(symbol="BTC", price=42000.0, priceChange=1.5, volume=1.2e9, high=42500.0, low=41000.0,
           priceFormatted="$42,000.00", volumeFormatted="$1.20B"),
    Ticker(symbol="ETH", price=2500.0, priceChange=-0.8, volume=6.5e8, high=2550.0, low=2450.0,
           priceFormatted="$2,500.00", volumeFormatted="$650.0M"),
]

GLOBAL_STATS = GlobalStats(btcDominance=52.31, totalMarketCap=1.65e12, totalVolume24h=8.4e10)

DERIVATIVES = [
    Derivative(symbol="BTC", fundingRate=0.0001, openInterest=3.2e9, volume24h=9.1e9, spread=0.01),
]

MACRO_EVENTS = [
    CalendarEvent(id="tv-2024-01-02-0", event_date="2024-01-02", event_time="14:30", currency="USD",
                  event_name="Nonfarm Payrolls", impact=ImpactLevel.HIGH, source=EventSource.TRADINGVIEW),
]

CRYPTO_EVENTS = [
    CalendarEvent(id="cmc-2024-01-01-0", event_date="2024-01-01", event_time=None, currency="ETH",
                  event_name="Mainnet Upgrade", impact=ImpactLevel.MEDIUM,
                  source=EventSource.COINMARKETCAL),
]

COIN_PRICES = [
    CoinPrice(id="bitcoin", symbol="btc", image="https://img/btc.png",
              current_price=42000.0, price_change_percentage_24h=1.5),
]

NEWS = [
    NewsArticle(id="1", title="Bitcoin ETF inflows rise", url="https://news/1", source="CoinDesk",
                published_on=1700000000),
]


def ok(value: Any) -> FetchResult:
    return FetchResult.success(value)


def failed(provider: str = "upstream") -> FetchResult:
    return FetchResult.failure(ProviderError(f"{provider} returned HTTP 503", provider, 503))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryFallbackStore:
    return InMemoryFallbackStore()


def _adapter(result: FetchResult) -> AsyncMock:
    adapter = AsyncMock()
    adapter.fetch = AsyncMock(return_value=result)
    return adapter


@pytest.fixture
def adapters() -> Dict[str, Any]:
    """Mocked adapters that all succeed with the sample slices; the LLM is unconfigured."""
    llm = MagicMock()
    llm.name = "llm_gateway"
    llm.is_configured = False
    llm.fetch = AsyncMock(return_value=failed("llm_gateway"))
    llm.translate_batch = AsyncMock(return_value=ok({}))

    return {
        "tickers": _adapter(ok(list(TICKERS))),
        "global_stats": _adapter(ok(GLOBAL_STATS)),
        "derivatives": _adapter(ok(list(DERIVATIVES))),
        "coin_markets": _adapter(ok(list(COIN_PRICES))),
        "simple_prices": _adapter(ok({
            "bitcoin": AssetQuote(price=42000.0, change24h=1.234),
            "pax-gold": AssetQuote(price=2050.5, change24h=-0.5),
        })),
        "macro_calendar": _adapter(ok([e.copy() for e in MACRO_EVENTS])),
        "crypto_calendar": _adapter(ok([e.copy() for e in CRYPTO_EVENTS])),
        "llm": llm,
        "news": _adapter(ok(list(NEWS))),
        "history": _adapter(ok([])),
    }


@pytest.fixture
def aggregator(store, adapters) -> MarketAggregator:
    return MarketAggregator(store=store, **adapters)


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient whose requests are answered by ``handler``."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return factory


@pytest.fixture
def sample() -> SimpleNamespace:
    """Sample slices and FetchResult builders."""
    return SimpleNamespace(
        tickers=TICKERS,
        global_stats=GLOBAL_STATS,
        derivatives=DERIVATIVES,
        macro_events=MACRO_EVENTS,
        crypto_events=CRYPTO_EVENTS,
        coin_prices=COIN_PRICES,
        news=NEWS,
        ok=ok,
        failed=failed,
    )

"""
FastAPI endpoints for Crypto Market Feed Service.
Every data endpoint answers 200 with a structurally valid payload, degraded if need be.
"""

from datetime import datetime, timezone
from typing import Any, Callable, List
from fastapi import APIRouter, Depends, Request

from ..api.schemas import (
    CalendarEvent, CoinPrice, DataKind, HealthResponse, MarketSnapshot, NewsArticle,
    PricePoint, ScenarioBundle
)
from ..core.config import provider_config, settings
from ..core.logging_config import create_logger
from ..services.cache import FallbackStore
from ..services.data_aggregator import MarketAggregator

logger = create_logger(__name__)

# Create API router
router = APIRouter()


def get_aggregator(request: Request) -> MarketAggregator:
    return request.app.state.aggregator


def get_store(request: Request) -> FallbackStore:
    return request.app.state.store


async def _serve(
    key: str,
    produce: Callable[[], Any],
    store: FallbackStore,
    parse: Callable[[Any], Any],
    default: Callable[[], Any]
) -> Any:
    """Run ``produce``; on any error serve the value stored under ``key`` or the empty default."""
    try:
        return await produce()
    except Exception as e:
        logger.error("Aggregation failed, serving fallback", extra={
            "key": key,
            "error": str(e)
        })

    cached = await store.get(key)
    if cached is not None:
        try:
            return parse(cached)
        except (TypeError, ValueError) as e:
            logger.warning("Stored fallback unreadable", extra={"key": key, "error": str(e)})
    return default()


@router.get("/market-data", response_model=MarketSnapshot)
async def get_market_data(
    aggregator: MarketAggregator = Depends(get_aggregator),
    store: FallbackStore = Depends(get_store)
):
    """
    Market snapshot: tracked tickers, derivatives, BTC dominance and global totals.
    Clients poll this every 30 seconds.
    """
    return await _serve(
        provider_config.CACHE_KEYS[DataKind.MARKET.value],
        aggregator.aggregate_market,
        store,
        lambda data: MarketSnapshot(**{**data, 'degraded': True}),
        MarketSnapshot.empty
    )


@router.get("/crypto-prices", response_model=List[CoinPrice])
async def get_crypto_prices(
    aggregator: MarketAggregator = Depends(get_aggregator),
    store: FallbackStore = Depends(get_store)
):
    """Prices for the site's scrolling price ticker."""
    return await _serve(
        provider_config.CACHE_KEYS[DataKind.CRYPTO_PRICES.value],
        aggregator.aggregate_crypto_prices,
        store,
        lambda data: [CoinPrice(**item) for item in data],
        list
    )


@router.get("/fetch-economic-calendar", response_model=List[CalendarEvent])
async def get_economic_calendar(
    aggregator: MarketAggregator = Depends(get_aggregator),
    store: FallbackStore = Depends(get_store)
):
    """Macro and crypto calendar events sorted by date and time."""
    return await _serve(
        provider_config.CACHE_KEYS[DataKind.CALENDAR.value],
        aggregator.aggregate_calendar,
        store,
        lambda data: [CalendarEvent(**item) for item in data],
        list
    )


@router.get("/generate-all-scenarios", response_model=ScenarioBundle, response_model_exclude_none=True)
async def generate_all_scenarios(
    aggregator: MarketAggregator = Depends(get_aggregator),
    store: FallbackStore = Depends(get_store)
):
    """Two BTC and two gold trading scenarios generated by the LLM."""
    return await _serve(
        provider_config.CACHE_KEYS[DataKind.SCENARIOS.value],
        aggregator.aggregate_scenarios,
        store,
        lambda data: ScenarioBundle(**data),
        ScenarioBundle.failed
    )


@router.get("/news", response_model=List[NewsArticle])
async def get_news(
    aggregator: MarketAggregator = Depends(get_aggregator),
    store: FallbackStore = Depends(get_store)
):
    """Popular crypto news from the past week. Clients poll this every 5 minutes."""
    return await _serve(
        provider_config.CACHE_KEYS[DataKind.NEWS.value],
        aggregator.aggregate_news,
        store,
        lambda data: [NewsArticle(**item) for item in data],
        list
    )


@router.get("/price-history/{asset}", response_model=List[PricePoint])
async def get_price_history(
    asset: str,
    aggregator: MarketAggregator = Depends(get_aggregator),
    store: FallbackStore = Depends(get_store)
):
    """Last hour of minute closes for "btc" or "gold"."""
    asset = asset.strip().lower()
    return await _serve(
        provider_config.CACHE_KEYS["price_history"].format(asset=asset),
        lambda: aggregator.price_history(asset),
        store,
        lambda data: [PricePoint(**item) for item in data],
        list
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, store: FallbackStore = Depends(get_store)):
    """
    Health check endpoint.
    Reports fallback store reachability and which optional upstream keys are configured.
    """
    store_healthy = await store.health_check()
    uptime_seconds = (datetime.now(timezone.utc) - request.app.state.startup_time).total_seconds()

    return HealthResponse(
        status="healthy" if store_healthy else "unhealthy",
        version=settings.app_version,
        uptime_seconds=uptime_seconds,
        fallback_store=store.name,
        fallback_store_connected=store_healthy,
        configured_keys={
            "coinmarketcal": bool(settings.coinmarketcal_api_key),
            "firecrawl": bool(settings.firecrawl_api_key),
            "llm": bool(settings.llm_api_key)
        }
    )

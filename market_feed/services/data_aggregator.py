"""
Data aggregator service for Crypto Market Feed.
Fans out to the upstream adapters concurrently and merges their results into one response.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
import httpx

from ..api.schemas import (
    AssetQuote, CalendarEvent, CoinPrice, DataKind, Derivative, GlobalStats,
    MarketSnapshot, NewsArticle, PricePoint, ScenarioBundle, Ticker
)
from ..core.config import provider_config, settings
from ..core.formatting import format_compact, format_price
from ..core.logging_config import create_logger
from ..providers.base import ConfigurationError, FetchResult, ProviderError
from ..providers.binance_provider import BinanceTickerAdapter
from ..providers.coingecko_provider import (
    CoinGeckoDerivativesAdapter, CoinGeckoGlobalAdapter, CoinGeckoMarketsAdapter,
    CoinGeckoSimplePriceAdapter
)
from ..providers.coinmarketcal_provider import CoinMarketCalAdapter
from ..providers.cryptocompare_provider import CryptoCompareHistoryAdapter, CryptoCompareNewsAdapter
from ..providers.firecrawl_provider import FirecrawlExtractClient
from ..providers.llm_provider import LLMGatewayClient, extract_json_object
from ..providers.tradingview_provider import TradingViewCalendarAdapter
from .cache import FallbackStore

logger = create_logger(__name__)

T = TypeVar("T")


def _list_of(model: Any) -> Callable[[Any], List[Any]]:
    def parse(data: Any) -> List[Any]:
        return [model(**item) for item in data]
    return parse


def merge_calendar_events(
    macro_events: List[CalendarEvent],
    crypto_events: List[CalendarEvent]
) -> List[CalendarEvent]:
    """Concatenate macro then crypto events and sort by date and time; a missing time sorts as 00:00."""
    return sorted(macro_events + crypto_events, key=lambda event: event.sort_key())


def build_scenario_prompt(btc: AssetQuote, gold: AssetQuote, generated_at: datetime) -> str:
    """Prompt asking the model for two BTC and two gold scenarios as bare JSON."""
    return f"""You are a professional trading analyst. Given current market data, generate trading scenarios.

Current Data:
- BTC: {format_price(btc.price)} (24h change: {btc.change24h:.2f}%)
- Gold (PAXG): {format_price(gold.price)} (24h change: {gold.change24h:.2f}%)

Generate exactly this JSON (no markdown, no extra text):
{{
  "btc": {{
    "currentPrice": {btc.price},
    "change24h": {btc.change24h:.2f},
    "scenarios": [
      {{
        "id": "btc-1",
        "title": "<scenario title>",
        "bias": "LONG" or "SHORT" or "NEUTRAL",
        "probability": <number 1-100>,
        "condition": "<entry condition in Vietnamese>",
        "action": "<trading action in Vietnamese>",
        "invalidation": "<invalidation level in Vietnamese>",
        "keyLevels": ["$XX,XXX", "$XX,XXX"]
      }}
    ]
  }},
  "gold": {{
    "currentPrice": {gold.price},
    "change24h": {gold.change24h:.2f},
    "scenarios": [
      {{
        "id": "gold-1",
        "title": "<scenario title>",
        "bias": "LONG" or "SHORT" or "NEUTRAL",
        "probability": <number 1-100>,
        "condition": "<entry condition in Vietnamese>",
        "action": "<trading action in Vietnamese>",
        "invalidation": "<invalidation level in Vietnamese>",
        "keyLevels": ["$X,XXX", "$X,XXX"]
      }}
    ]
  }},
  "generatedAt": "{generated_at.isoformat()}"
}}

Generate 2 scenarios for BTC and 2 for Gold. Write conditions/actions/invalidations in Vietnamese. Be specific with price levels."""


class MarketAggregator:
    """
    Orchestrates the upstream adapters for every data kind.

    Every ``aggregate_*`` method returns a structurally complete value and
    never raises. A slice whose adapter fails is replaced by the last value
    stored for it, or by its empty default.
    """

    def __init__(
        self,
        store: FallbackStore,
        tickers: BinanceTickerAdapter,
        global_stats: CoinGeckoGlobalAdapter,
        derivatives: CoinGeckoDerivativesAdapter,
        coin_markets: CoinGeckoMarketsAdapter,
        simple_prices: CoinGeckoSimplePriceAdapter,
        macro_calendar: TradingViewCalendarAdapter,
        crypto_calendar: CoinMarketCalAdapter,
        llm: LLMGatewayClient,
        news: CryptoCompareNewsAdapter,
        history: CryptoCompareHistoryAdapter
    ):
        self.store = store
        self.tickers = tickers
        self.global_stats = global_stats
        self.derivatives = derivatives
        self.coin_markets = coin_markets
        self.simple_prices = simple_prices
        self.macro_calendar = macro_calendar
        self.crypto_calendar = crypto_calendar
        self.llm = llm
        self.news = news
        self.history = history
        self._handlers: Dict[DataKind, Callable[[], Awaitable[Any]]] = {
            DataKind.MARKET: self.aggregate_market,
            DataKind.CRYPTO_PRICES: self.aggregate_crypto_prices,
            DataKind.CALENDAR: self.aggregate_calendar,
            DataKind.SCENARIOS: self.aggregate_scenarios,
            DataKind.NEWS: self.aggregate_news
        }

    async def aggregate(self, kind: DataKind) -> Any:
        """Aggregate one data kind."""
        return await self._handlers[DataKind(kind)]()

    # Fan-out helpers

    async def _settle(self, *calls: Awaitable[FetchResult]) -> List[FetchResult]:
        """Run adapter calls concurrently and wait for all of them, whatever their outcome."""
        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        results: List[FetchResult] = []
        for outcome in outcomes:
            if isinstance(outcome, FetchResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error("Adapter raised across its boundary", extra={"error": str(outcome)})
                results.append(FetchResult.failure(ProviderError(str(outcome), "aggregator")))
            else:
                raise outcome
        return results

    async def _resolve_slice(
        self,
        key: str,
        result: FetchResult[T],
        default: T,
        parse: Callable[[Any], T]
    ) -> Tuple[T, bool]:
        """
        Pick the value for one slice.

        Returns the value and whether it is live. A live value refreshes the
        store; otherwise the stored value is used, then ``default``.
        """
        if result.ok:
            await self.store.put(key, result.value)
            return result.value, True

        cached = await self.store.get(key)
        if cached is not None:
            try:
                value = parse(cached)
            except (TypeError, ValueError) as e:
                logger.warning("Discarding unreadable fallback value", extra={
                    "key": key,
                    "error": str(e)
                })
            else:
                logger.info("Using fallback value", extra={
                    "key": key,
                    "reason": result.error.message if result.error else None
                })
                return value, False

        logger.warning("No fallback value, using empty default", extra={"key": key})
        return default, False

    # Market data

    async def aggregate_market(self) -> MarketSnapshot:
        """Tickers, global stats and derivatives fetched concurrently into one snapshot."""
        tickers_result, global_result, derivatives_result = await self._settle(
            self.tickers.fetch(),
            self.global_stats.fetch(),
            self.derivatives.fetch()
        )

        tickers, tickers_live = await self._resolve_slice(
            provider_config.SLICE_KEYS['tickers'], tickers_result, [], _list_of(Ticker)
        )
        stats, stats_live = await self._resolve_slice(
            provider_config.SLICE_KEYS['global_stats'], global_result, GlobalStats(),
            lambda data: GlobalStats(**data)
        )
        derivatives, derivatives_live = await self._resolve_slice(
            provider_config.SLICE_KEYS['derivatives'], derivatives_result, [], _list_of(Derivative)
        )

        live = (tickers_live, stats_live, derivatives_live)
        snapshot = MarketSnapshot(
            tickers=tickers,
            derivatives=derivatives,
            btcDominance=stats.btcDominance,
            totalMarketCap=stats.totalMarketCap,
            totalVolume24h=stats.totalVolume24h,
            totalMarketCapFormatted=format_compact(stats.totalMarketCap),
            totalVolume24hFormatted=format_compact(stats.totalVolume24h),
            degraded=not all(live)
        )

        if any(live):
            await self.store.put(provider_config.CACHE_KEYS['market'], snapshot)

        logger.info("Market snapshot aggregated", extra={
            "tickers": len(tickers),
            "derivatives": len(derivatives),
            "degraded": snapshot.degraded
        })
        return snapshot

    async def aggregate_crypto_prices(self) -> List[CoinPrice]:
        (result,) = await self._settle(self.coin_markets.fetch())
        prices, _ = await self._resolve_slice(
            provider_config.CACHE_KEYS['crypto_prices'], result, [], _list_of(CoinPrice)
        )
        return prices

    async def aggregate_news(self) -> List[NewsArticle]:
        (result,) = await self._settle(self.news.fetch())
        articles, _ = await self._resolve_slice(
            provider_config.CACHE_KEYS['news'], result, [], _list_of(NewsArticle)
        )
        return articles

    async def price_history(self, asset: str) -> List[PricePoint]:
        """Minute price history for a scenario asset ("btc" or "gold"); unknown assets are empty."""
        asset = asset.lower()
        if asset not in provider_config.SCENARIO_ASSETS:
            return []

        _, symbol = provider_config.SCENARIO_ASSETS[asset]
        (result,) = await self._settle(self.history.fetch(symbol))
        points, _ = await self._resolve_slice(
            provider_config.CACHE_KEYS['price_history'].format(asset=asset),
            result, [], _list_of(PricePoint)
        )
        return points

    # Calendar

    async def aggregate_calendar(self) -> List[CalendarEvent]:
        """Macro and crypto events merged, sorted, and translated when the LLM is configured."""
        macro_result, crypto_result = await self._settle(
            self.macro_calendar.fetch(),
            self.crypto_calendar.fetch()
        )

        macro_events, macro_live = await self._resolve_slice(
            provider_config.SLICE_KEYS['calendar_macro'], macro_result, [], _list_of(CalendarEvent)
        )
        crypto_events, crypto_live = await self._resolve_slice(
            provider_config.SLICE_KEYS['calendar_crypto'], crypto_result, [], _list_of(CalendarEvent)
        )

        events = merge_calendar_events(macro_events, crypto_events)
        events = await self.translate_events(events)

        if macro_live or crypto_live:
            await self.store.put(provider_config.CACHE_KEYS['calendar'], events)

        logger.info("Calendar aggregated", extra={
            "tradingview": len(macro_events),
            "coinmarketcal": len(crypto_events),
            "total": len(events)
        })
        return events

    async def translate_events(self, events: List[CalendarEvent]) -> List[CalendarEvent]:
        """Rewrite event names through the LLM; names without a translation stay as they are."""
        if not events or not self.llm.is_configured:
            return events

        unique_names = list(dict.fromkeys(event.event_name for event in events))
        batch_size = max(1, settings.translation_batch_size)
        batches = [
            unique_names[start:start + batch_size]
            for start in range(0, len(unique_names), batch_size)
        ]

        results = await self._settle(*(self.llm.translate_batch(batch) for batch in batches))

        translations: Dict[str, str] = {}
        for batch, result in zip(batches, results):
            if result.ok:
                translations.update(result.value)
            else:
                logger.warning("Translation batch failed, keeping original names", extra={
                    "batch_size": len(batch),
                    "error": result.error.message if result.error else None
                })

        for event in events:
            event.event_name = translations.get(event.event_name, event.event_name)
        return events

    # Scenarios

    async def aggregate_scenarios(self) -> ScenarioBundle:
        """LLM-generated BTC and gold scenarios; the last good bundle or an error bundle on failure."""
        try:
            bundle = await self._generate_scenarios()
        except (ProviderError, ValueError) as e:
            logger.error("Scenario generation failed", extra={"error": str(e)})

            cached = await self.store.get(provider_config.CACHE_KEYS['scenarios'])
            if cached is not None:
                try:
                    return ScenarioBundle(**cached)
                except (TypeError, ValueError) as parse_error:
                    logger.warning("Discarding unreadable scenario fallback", extra={
                        "error": str(parse_error)
                    })
            return ScenarioBundle.failed()

        await self.store.put(provider_config.CACHE_KEYS['scenarios'], bundle)
        return bundle

    async def _generate_scenarios(self) -> ScenarioBundle:
        btc_id, _ = provider_config.SCENARIO_ASSETS['btc']
        gold_id, _ = provider_config.SCENARIO_ASSETS['gold']

        price_result = await self.simple_prices.fetch([btc_id, gold_id])
        quotes = price_result.value if price_result.ok else {}
        btc = quotes.get(btc_id, AssetQuote())
        gold = quotes.get(gold_id, AssetQuote())

        if not self.llm.is_configured:
            raise ConfigurationError("LLM_API_KEY is not configured", self.llm.name)

        generated_at = datetime.now(timezone.utc)
        reply = await self.llm.fetch(build_scenario_prompt(btc, gold, generated_at))
        if not reply.ok:
            raise reply.error

        data = extract_json_object(reply.value)
        data.pop('generatedAt', None)
        data.pop('error', None)
        bundle = ScenarioBundle(**data)
        if price_result.ok:
            bundle.btc.currentPrice, bundle.btc.change24h = btc.price, round(btc.change24h, 2)
            bundle.gold.currentPrice, bundle.gold.change24h = gold.price, round(gold.change24h, 2)
        bundle.generatedAt = generated_at
        bundle.error = None

        logger.info("Scenarios generated", extra={
            "btc_scenarios": len(bundle.btc.scenarios),
            "gold_scenarios": len(bundle.gold.scenarios)
        })
        return bundle


def create_aggregator(store: FallbackStore, client: Optional[httpx.AsyncClient] = None) -> MarketAggregator:
    """Wire every adapter to one shared HTTP client."""
    extractor = FirecrawlExtractClient(client=client)
    return MarketAggregator(
        store=store,
        tickers=BinanceTickerAdapter(client=client),
        global_stats=CoinGeckoGlobalAdapter(client=client),
        derivatives=CoinGeckoDerivativesAdapter(client=client),
        coin_markets=CoinGeckoMarketsAdapter(client=client),
        simple_prices=CoinGeckoSimplePriceAdapter(client=client),
        macro_calendar=TradingViewCalendarAdapter(extractor=extractor),
        crypto_calendar=CoinMarketCalAdapter(extractor=extractor, client=client),
        llm=LLMGatewayClient(client=client),
        news=CryptoCompareNewsAdapter(client=client),
        history=CryptoCompareHistoryAdapter(client=client)
    )

"""
CoinMarketCal crypto events adapter.
Uses the API-key-gated developer API and falls back to extracting the public events page.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import httpx

from .base import BaseUpstreamAdapter, ConfigurationError, MalformedResponseError, ProviderError
from .firecrawl_provider import FirecrawlExtractClient
from ..api.schemas import CalendarEvent, EventSource
from ..core.config import settings
from ..core.formatting import impact_from_score, normalize_event_date, optional_text
from ..core.logging_config import create_logger

logger = create_logger(__name__)


CRYPTO_EVENTS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "Event date as YYYY-MM-DD"},
                    "title": {"type": "string"},
                    "coins": {"type": "array", "items": {"type": "string"}, "description": "Coin symbols"},
                    "categories": {"type": "array", "items": {"type": "string"}},
                    "confidence": {"type": "number", "description": "Community confidence percentage"}
                },
                "required": ["date", "title"]
            }
        }
    },
    "required": ["events"]
}

CRYPTO_EVENTS_PROMPT = (
    "Extract the upcoming crypto events listed on the page with date, title, "
    "coin symbols, categories and the confidence percentage."
)


def _join_names(values: Any, *keys: str) -> str:
    """Join coin/category entries that are either plain strings or objects with name-like keys."""
    if not isinstance(values, list):
        return ''
    names = []
    for value in values:
        if isinstance(value, dict):
            name = next((value.get(key) for key in keys if value.get(key)), None)
        else:
            name = value
        if name:
            names.append(str(name).strip())
    return ', '.join(name for name in names if name)


def _title_text(title: Any) -> Optional[str]:
    if isinstance(title, dict):
        title = title.get('en') or next(iter(title.values()), None)
    return optional_text(title)


class CoinMarketCalAdapter(BaseUpstreamAdapter[List[CalendarEvent]]):
    """Crypto events (source=coinmarketcal)."""

    def __init__(
        self,
        extractor: Optional[FirecrawlExtractClient] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(
            name="coinmarketcal",
            api_key=api_key if api_key is not None else settings.coinmarketcal_api_key,
            base_url=settings.coinmarketcal_api_url,
            client=client
        )
        self.extractor = extractor

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        if not self.api_key:
            return None
        return {'x-api-key': self.api_key}

    def _date_window(self, today: Optional[datetime] = None) -> Dict[str, str]:
        today = today or datetime.now(timezone.utc)
        start = today - timedelta(days=settings.calendar_days_back)
        end = today + timedelta(days=settings.calendar_days_forward)
        return {
            'max': str(settings.calendar_max_events),
            'dateRangeStart': start.strftime('%Y-%m-%d'),
            'dateRangeEnd': end.strftime('%Y-%m-%d')
        }

    async def _fetch(self) -> List[CalendarEvent]:
        scrape_available = self.extractor is not None and self.extractor.is_configured
        if not self.api_key and not scrape_available:
            raise ConfigurationError(
                "COINMARKETCAL_API_KEY and FIRECRAWL_API_KEY are not configured",
                self.name
            )

        if self.api_key:
            try:
                return await self._fetch_from_api()
            except ProviderError as e:
                if not scrape_available:
                    raise
                logger.warning("CoinMarketCal API failed, trying page extraction", extra={
                    "provider": self.name,
                    "error": e.message
                })
        else:
            logger.info("CoinMarketCal API key missing, using page extraction", extra={
                "provider": self.name
            })

        return await self._fetch_from_page()

    async def _fetch_from_api(self) -> List[CalendarEvent]:
        payload = await self._make_request(
            method="GET",
            url=f"{self.base_url}/events",
            params=self._date_window()
        )

        items = payload
        if isinstance(payload, dict):
            items = payload.get('body') or payload.get('data')
        if not isinstance(items, list):
            raise MalformedResponseError("Unexpected CoinMarketCal response shape", self.name)

        events = self.map_api_events(items)
        logger.info("Retrieved crypto events from CoinMarketCal API", extra={
            "provider": self.name,
            "received": len(items),
            "kept": len(events)
        })
        return events

    async def _fetch_from_page(self) -> List[CalendarEvent]:
        result = await self.extractor.fetch(
            settings.coinmarketcal_site_url,
            CRYPTO_EVENTS_SCHEMA,
            CRYPTO_EVENTS_PROMPT
        )
        if not result.ok:
            raise result.error

        items = result.value.get('events')
        if not isinstance(items, list):
            raise MalformedResponseError("Extraction result has no events list", self.name)

        events = self.map_scraped_events(items)
        logger.info("Retrieved crypto events from CoinMarketCal page", extra={
            "provider": self.name,
            "extracted": len(items),
            "kept": len(events)
        })
        return events

    @staticmethod
    def _build_event(
        index: int,
        event_date: str,
        title: str,
        coins: str,
        categories: str,
        score: Any
    ) -> CalendarEvent:
        name = title[:200] + (f" [{categories}]" if categories else "")
        return CalendarEvent(
            id=f"cmc-{event_date}-{index}",
            event_date=event_date,
            event_time=None,
            currency=coins or None,
            event_name=name,
            impact=impact_from_score(score),
            source=EventSource.COINMARKETCAL
        )

    @classmethod
    def map_api_events(cls, items: List[Any]) -> List[CalendarEvent]:
        """Map developer-API records; records without a date or title are dropped."""
        events = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            event_date = normalize_event_date(str(item.get('date_event') or '')[:10])
            title = _title_text(item.get('title'))
            if not event_date or not title:
                continue
            events.append(cls._build_event(
                index,
                event_date,
                title,
                _join_names(item.get('coins'), 'symbol', 'name'),
                _join_names(item.get('categories'), 'name'),
                item.get('percentage')
            ))
        return events

    @classmethod
    def map_scraped_events(cls, items: List[Any]) -> List[CalendarEvent]:
        """Map rows extracted from the public events page."""
        events = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            event_date = normalize_event_date(item.get('date'))
            title = _title_text(item.get('title'))
            if not event_date or not title:
                continue
            events.append(cls._build_event(
                index,
                event_date,
                title,
                _join_names(item.get('coins'), 'symbol', 'name'),
                _join_names(item.get('categories'), 'name'),
                item.get('confidence')
            ))
        return events

"""
TradingView economic calendar adapter.
Macro events are pulled from the public calendar page through the extraction service.
"""

from typing import Any, Dict, List, Optional

from .base import BaseUpstreamAdapter, MalformedResponseError
from .firecrawl_provider import FirecrawlExtractClient
from ..api.schemas import CalendarEvent, EventSource
from ..core.config import settings
from ..core.formatting import (
    normalize_event_date, normalize_event_time, normalize_impact, optional_text
)
from ..core.logging_config import create_logger

logger = create_logger(__name__)


MACRO_EVENTS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "Event date as YYYY-MM-DD"},
                    "time": {"type": "string", "description": "Event time as HH:MM, empty for all-day"},
                    "currency": {"type": "string", "description": "Currency code, e.g. USD"},
                    "event": {"type": "string", "description": "Event name"},
                    "impact": {"type": "string", "enum": ["high", "medium", "low"]},
                    "actual": {"type": "string"},
                    "forecast": {"type": "string"},
                    "previous": {"type": "string"}
                },
                "required": ["date", "event"]
            }
        }
    },
    "required": ["events"]
}

MACRO_EVENTS_PROMPT = (
    "Extract every economic calendar event shown on the page with its date, time, "
    "currency, event name, impact level and the actual, forecast and previous values."
)


class TradingViewCalendarAdapter(BaseUpstreamAdapter[List[CalendarEvent]]):
    """Macro economic events (source=tradingview)."""

    def __init__(self, extractor: FirecrawlExtractClient, page_url: Optional[str] = None):
        super().__init__(name="tradingview", timeout=settings.extraction_timeout)
        self.extractor = extractor
        self.page_url = page_url or settings.tradingview_calendar_url

    async def _fetch(self) -> List[CalendarEvent]:
        result = await self.extractor.fetch(self.page_url, MACRO_EVENTS_SCHEMA, MACRO_EVENTS_PROMPT)
        if not result.ok:
            raise result.error

        items = result.value.get('events')
        if not isinstance(items, list):
            raise MalformedResponseError("Extraction result has no events list", self.name)

        events = self.map_events(items)
        logger.info("Retrieved macro events", extra={
            "provider": self.name,
            "extracted": len(items),
            "kept": len(events)
        })
        return events

    @staticmethod
    def map_events(items: List[Any]) -> List[CalendarEvent]:
        """Map extracted rows to CalendarEvents; rows without a date or name are dropped."""
        events: List[CalendarEvent] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            event_date = normalize_event_date(item.get('date'))
            event_name = optional_text(item.get('event') or item.get('name'))
            if not event_date or not event_name:
                continue

            currency = optional_text(item.get('currency'), limit=20)
            events.append(CalendarEvent(
                id=f"tv-{event_date}-{len(events)}",
                event_date=event_date,
                event_time=normalize_event_time(item.get('time')),
                currency=currency.upper() if currency else None,
                event_name=event_name,
                impact=normalize_impact(item.get('impact')),
                actual=optional_text(item.get('actual'), limit=50),
                forecast=optional_text(item.get('forecast'), limit=50),
                previous=optional_text(item.get('previous'), limit=50),
                source=EventSource.TRADINGVIEW
            ))
        return events

"""
CryptoCompare adapters.
Popular crypto news and minute price history for the scenario charts.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
import httpx

from .base import BaseUpstreamAdapter, MalformedResponseError, ProviderError
from ..api.schemas import NewsArticle, PricePoint
from ..core.config import settings
from ..core.formatting import to_float
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class CryptoCompareNewsAdapter(BaseUpstreamAdapter[List[NewsArticle]]):
    """Popular English news from the last ``news_max_age_days`` days."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            name="cryptocompare_news",
            base_url=settings.cryptocompare_api_url,
            client=client
        )

    async def _fetch(self) -> List[NewsArticle]:
        payload = await self._make_request(
            method="GET",
            url=f"{self.base_url}/v2/news/",
            params={'lang': 'EN', 'sortOrder': 'popular'}
        )

        items = payload.get('Data') if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise MalformedResponseError("News payload has no Data list", self.name)

        cutoff = datetime.now(timezone.utc) - timedelta(days=settings.news_max_age_days)
        cutoff_ts = int(cutoff.timestamp())

        articles = []
        for item in items:
            if not isinstance(item, dict) or not item.get('title'):
                continue
            published_on = int(to_float(item.get('published_on')))
            if published_on < cutoff_ts:
                continue
            source_info = item.get('source_info') or {}
            articles.append(NewsArticle(
                id=str(item.get('id') or item.get('guid') or item.get('url') or item['title']),
                title=str(item['title']),
                url=str(item.get('url') or ''),
                source=str(source_info.get('name') or item.get('source') or ''),
                imageurl=item.get('imageurl'),
                body=str(item.get('body') or ''),
                categories=str(item.get('categories') or ''),
                published_on=published_on
            ))

        logger.info("Retrieved news from CryptoCompare", extra={
            "provider": self.name,
            "received": len(items),
            "kept": len(articles)
        })
        return articles


class CryptoCompareHistoryAdapter(BaseUpstreamAdapter[List[PricePoint]]):
    """Minute close prices against USD."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            name="cryptocompare_history",
            base_url=settings.cryptocompare_api_url,
            client=client
        )

    async def _fetch(self, symbol: str, limit: int = 60) -> List[PricePoint]:
        payload = await self._make_request(
            method="GET",
            url=f"{self.base_url}/v2/histominute",
            params={'fsym': symbol.upper(), 'tsym': 'USD', 'limit': limit}
        )

        if not isinstance(payload, dict):
            raise MalformedResponseError("History payload is not an object", self.name)
        if payload.get('Response') == 'Error':
            raise ProviderError(f"CryptoCompare error: {payload.get('Message', '')}", self.name)

        rows = (payload.get('Data') or {}).get('Data')
        if not isinstance(rows, list):
            raise MalformedResponseError("History payload has no Data.Data list", self.name)

        points = []
        for row in rows:
            if not isinstance(row, dict) or row.get('time') is None:
                continue
            points.append(PricePoint(
                time=datetime.fromtimestamp(int(to_float(row.get('time'))), tz=timezone.utc),
                price=to_float(row.get('close'))
            ))
        return points

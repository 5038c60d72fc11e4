"""
Firecrawl extraction client.
Schema-guided extraction of structured JSON from a web page.
"""

from typing import Any, Dict, Optional
import httpx

from .base import BaseUpstreamAdapter, MalformedResponseError, ProviderError
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class FirecrawlExtractClient(BaseUpstreamAdapter[Dict[str, Any]]):
    """Scrapes one page and returns the JSON object matching the given schema."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            name="firecrawl",
            api_key=api_key if api_key is not None else settings.firecrawl_api_key,
            base_url=settings.firecrawl_api_url,
            timeout=settings.extraction_timeout,
            client=client
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        if not self.api_key:
            return None
        return {'Authorization': f'Bearer {self.api_key}'}

    async def _fetch(self, url: str, schema: Dict[str, Any], prompt: Optional[str] = None) -> Dict[str, Any]:
        self._require_api_key()

        json_options: Dict[str, Any] = {'schema': schema}
        if prompt:
            json_options['prompt'] = prompt

        logger.info("Extracting structured data", extra={
            "provider": self.name,
            "target_url": url
        })

        payload = await self._make_request(
            method="POST",
            url=f"{self.base_url}/scrape",
            headers={'Content-Type': 'application/json'},
            json_body={
                'url': url,
                'formats': ['json'],
                'jsonOptions': json_options,
                'onlyMainContent': True,
                'waitFor': 5000
            }
        )

        if not isinstance(payload, dict):
            raise MalformedResponseError("Expected a JSON object from /scrape", self.name)
        if payload.get('success') is False:
            raise ProviderError(f"Extraction failed: {payload.get('error', 'unknown error')}", self.name)

        data = payload.get('data') or {}
        extracted = data.get('json') or data.get('extract')
        if not isinstance(extracted, dict):
            raise MalformedResponseError("Extraction returned no JSON object", self.name)
        return extracted

"""
Abstract base class for upstream adapters in Crypto Market Feed.
Each adapter wraps exactly one external API and returns a tagged FetchResult.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar
import httpx

from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)

T = TypeVar("T")


class ProviderError(Exception):
    """Base exception for upstream adapter errors."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        super().__init__(self.message)


class RateLimitError(ProviderError):
    """Exception raised when the upstream rate limit is exceeded."""
    pass


class AuthenticationError(ProviderError):
    """Exception raised when upstream authentication fails."""
    pass


class ConfigurationError(ProviderError):
    """Exception raised when a required API key or setting is missing."""
    pass


class MalformedResponseError(ProviderError):
    """Exception raised when the upstream payload is not the expected JSON shape."""
    pass


@dataclass
class FetchResult(Generic[T]):
    """Outcome of one adapter call: either a value or the error that prevented it."""
    value: Optional[T] = None
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ProviderError) -> "FetchResult[T]":
        return cls(error=error)


class BaseUpstreamAdapter(ABC, Generic[T]):
    """Base class for upstream adapters: one HTTP call, fixed timeout, no retries."""

    def __init__(
        self,
        name: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.name = name
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout if timeout is not None else settings.upstream_timeout
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def connect(self) -> None:
        """Initialize HTTP client connection."""
        if self.client is None:
            timeout = httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0))
            limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)

            self.client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                headers=self._get_default_headers(),
                follow_redirects=True
            )
            self._owns_client = True

            logger.debug("Connected to upstream", extra={"provider": self.name})

    async def disconnect(self) -> None:
        """Close HTTP client connection if this adapter created it."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None
            logger.debug("Disconnected from upstream", extra={"provider": self.name})

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers for requests."""
        return {
            'User-Agent': 'Mozilla/5.0 (compatible; Crypto-Market-Feed/1.0.0)',
            'Accept': 'application/json'
        }

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        """Get authentication headers for this upstream."""
        return None

    def _require_api_key(self) -> str:
        """Return the API key or raise ConfigurationError when it is not set."""
        if not self.api_key:
            raise ConfigurationError(f"{self.name} API key is not configured", self.name)
        return self.api_key

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Make a single HTTP request and return the decoded JSON body."""

        if not self.client:
            await self.connect()

        request_headers = self._get_default_headers()
        auth_headers = self._get_auth_headers()
        if auth_headers:
            request_headers.update(auth_headers)
        if headers:
            request_headers.update(headers)

        logger.debug("Making request to upstream", extra={
            "provider": self.name,
            "method": method,
            "url": url
        })

        try:
            response = await asyncio.wait_for(
                self.client.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=request_headers,
                    json=json_body,
                    timeout=self.timeout
                ),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ProviderError(f"Request timeout for {self.name}", self.name)
        except httpx.HTTPError as e:
            raise ProviderError(f"HTTP error for {self.name}: {str(e)}", self.name)

        if response.status_code == 429:
            raise RateLimitError(f"Rate limited by {self.name}", self.name, response.status_code)

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {self.name}",
                self.name,
                response.status_code
            )

        if not response.is_success:
            raise ProviderError(
                f"{self.name} returned HTTP {response.status_code}: {response.text[:300]}",
                self.name,
                response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON response from {self.name}: {str(e)}", self.name)

        logger.debug("Received response from upstream", extra={
            "provider": self.name,
            "status_code": response.status_code,
            "response_size": len(response.content)
        })
        return data

    @abstractmethod
    async def _fetch(self, *args: Any, **kwargs: Any) -> T:
        """
        Fetch and normalize the upstream payload.

        Raises:
            ProviderError: If the upstream call fails or returns an unusable payload
        """
        pass

    async def fetch(self, *args: Any, **kwargs: Any) -> FetchResult[T]:
        """Fetch the upstream slice. Never raises; failures come back as FetchResult.failure."""
        try:
            value = await self._fetch(*args, **kwargs)
        except ConfigurationError as e:
            logger.warning("Upstream adapter not configured", extra={
                "provider": self.name,
                "error": e.message
            })
            return FetchResult.failure(e)
        except ProviderError as e:
            logger.error("Upstream fetch failed", extra={
                "provider": self.name,
                "status_code": e.status_code,
                "error": e.message
            })
            return FetchResult.failure(e)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Unexpected upstream payload", extra={
                "provider": self.name,
                "error": str(e)
            })
            return FetchResult.failure(
                MalformedResponseError(f"Unexpected payload from {self.name}: {str(e)}", self.name)
            )

        logger.debug("Upstream fetch succeeded", extra={"provider": self.name})
        return FetchResult.success(value)

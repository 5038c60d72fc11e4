"""
Pydantic schemas for Crypto Market Feed Service.
Field names follow the JSON wire format the site consumes.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class DataKind(str, Enum):
    """Data kinds served by the aggregator, one per endpoint."""
    MARKET = "market"
    CRYPTO_PRICES = "crypto_prices"
    CALENDAR = "calendar"
    SCENARIOS = "scenarios"
    NEWS = "news"


class ImpactLevel(str, Enum):
    """Calendar event impact buckets."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EventSource(str, Enum):
    """Calendar data providers."""
    TRADINGVIEW = "tradingview"
    COINMARKETCAL = "coinmarketcal"


class ScenarioBias(str, Enum):
    """Directional bias of a trading scenario."""
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


# Market data

class Ticker(BaseModel):
    """24h spot ticker for one tracked asset."""
    symbol: str = Field(..., description="Base asset, e.g. BTC")
    price: float = Field(0.0, description="Last price")
    priceChange: float = Field(0.0, description="24h change in percent")
    volume: float = Field(0.0, description="24h quote volume")
    high: float = Field(0.0, description="24h high")
    low: float = Field(0.0, description="24h low")
    priceFormatted: str = Field("", description="Display price")
    volumeFormatted: str = Field("", description="Display volume")


class Derivative(BaseModel):
    """Perpetual contract metrics for one base asset."""
    symbol: str = Field(..., description="Base asset, e.g. BTC")
    fundingRate: float = Field(0.0, description="Funding rate (signed)")
    openInterest: float = Field(0.0, description="Open interest in USD")
    volume24h: float = Field(0.0, description="24h volume in USD")
    spread: float = Field(0.0, description="Bid/ask spread")
    openInterestFormatted: str = Field("", description="Display open interest")
    volume24hFormatted: str = Field("", description="Display volume")


class GlobalStats(BaseModel):
    """Global crypto market statistics."""
    btcDominance: float = Field(0.0, description="BTC share of total market cap, 0-100")
    totalMarketCap: float = Field(0.0, description="Total market cap in USD")
    totalVolume24h: float = Field(0.0, description="Total 24h volume in USD")


class MarketSnapshot(BaseModel):
    """Point-in-time composite of market data; always structurally complete."""
    tickers: List[Ticker] = Field(default_factory=list)
    derivatives: List[Derivative] = Field(default_factory=list)
    btcDominance: float = Field(0.0)
    totalMarketCap: float = Field(0.0)
    totalVolume24h: float = Field(0.0)
    totalMarketCapFormatted: str = Field("$0")
    totalVolume24hFormatted: str = Field("$0")
    updatedAt: datetime = Field(default_factory=utc_now)
    degraded: bool = Field(False, description="True when any slice holds cached or default data")

    @classmethod
    def empty(cls) -> "MarketSnapshot":
        return cls(degraded=True)


class CoinPrice(BaseModel):
    """Price ticker entry."""
    id: str
    symbol: str = ""
    image: Optional[str] = None
    current_price: float = 0.0
    price_change_percentage_24h: float = 0.0


class AssetQuote(BaseModel):
    """Current price and 24h change for a scenario asset."""
    price: float = 0.0
    change24h: float = 0.0


# Calendar

class CalendarEvent(BaseModel):
    """Economic or crypto calendar event."""
    id: str
    event_date: str = Field(..., description="ISO date YYYY-MM-DD")
    event_time: Optional[str] = Field(None, description="HH:MM or null")
    currency: Optional[str] = None
    event_name: str
    impact: Optional[ImpactLevel] = None
    actual: Optional[str] = None
    forecast: Optional[str] = None
    previous: Optional[str] = None
    source: EventSource

    def sort_key(self) -> str:
        return f"{self.event_date} {self.event_time or '00:00'}"


# Scenarios

class Scenario(BaseModel):
    """LLM-generated trading scenario."""
    id: str = ""
    title: str = ""
    bias: ScenarioBias = ScenarioBias.NEUTRAL
    probability: int = 50
    condition: str = ""
    action: str = ""
    invalidation: str = ""
    keyLevels: List[str] = Field(default_factory=list)

    @validator('bias', pre=True)
    def normalize_bias(cls, v: Any) -> Any:
        if isinstance(v, ScenarioBias):
            return v
        value = str(v or '').strip().upper()
        if value not in ScenarioBias.__members__:
            return ScenarioBias.NEUTRAL
        return value

    @validator('probability', pre=True)
    def clamp_probability(cls, v: Any) -> int:
        """Read the leading number ("65%" is 65) and clamp it into 1..100; no number means 50."""
        if v is None or isinstance(v, bool):
            return 50
        match = _NUMBER.search(str(v))
        if not match:
            return 50
        return max(1, min(100, int(round(float(match.group(0))))))

    @validator('keyLevels', pre=True)
    def stringify_levels(cls, v: Any) -> List[str]:
        if v is None:
            return []
        return [str(level) for level in v]


class AssetScenarioBundle(BaseModel):
    """Scenarios for a single asset."""
    currentPrice: float = 0.0
    change24h: float = 0.0
    scenarios: List[Scenario] = Field(default_factory=list)


class ScenarioBundle(BaseModel):
    """Response of the scenario generator."""
    btc: AssetScenarioBundle = Field(default_factory=AssetScenarioBundle)
    gold: AssetScenarioBundle = Field(default_factory=AssetScenarioBundle)
    generatedAt: datetime = Field(default_factory=utc_now)
    error: Optional[str] = None

    @classmethod
    def failed(cls, message: str = "Failed to generate scenarios") -> "ScenarioBundle":
        return cls(error=message)


# News and charts

class NewsArticle(BaseModel):
    """Crypto news article."""
    id: str
    title: str
    url: str = ""
    source: str = ""
    imageurl: Optional[str] = None
    body: str = ""
    categories: str = ""
    published_on: int = 0


class PricePoint(BaseModel):
    """Close price at a point in time."""
    time: datetime
    price: float


# Service

class HealthResponse(BaseModel):
    """Model for health check response."""
    status: Literal["healthy", "unhealthy"] = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=utc_now, description="Health check timestamp")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    fallback_store: str = Field(..., description="Fallback store backend")
    fallback_store_connected: bool = Field(..., description="Fallback store reachability")
    configured_keys: Dict[str, bool] = Field(default_factory=dict, description="Which optional API keys are set")


class ErrorResponse(BaseModel):
    """Model for error responses."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")

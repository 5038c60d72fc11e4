"""
Configuration management for Crypto Market Feed Service.
Uses pydantic-settings for environment variable management.
"""

from typing import List, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application metadata
    app_name: str = Field(default="Crypto Market Feed")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)

    # Fallback store backend: "memory" (process-wide dict) or "redis"
    fallback_store_backend: str = Field(default="memory")
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)

    # Upstream base URLs
    binance_api_url: str = Field(default="https://api.binance.com/api/v3")
    coingecko_api_url: str = Field(default="https://api.coingecko.com/api/v3")
    cryptocompare_api_url: str = Field(default="https://min-api.cryptocompare.com/data")
    coinmarketcal_api_url: str = Field(default="https://developers.coinmarketcal.com/v1")
    coinmarketcal_site_url: str = Field(default="https://coinmarketcal.com/en/")
    firecrawl_api_url: str = Field(default="https://api.firecrawl.dev/v1")
    tradingview_calendar_url: str = Field(default="https://www.tradingview.com/economic-calendar/")
    llm_api_url: str = Field(default="https://ai.gateway.lovable.dev/v1")

    # API keys (all optional; a missing key disables only the affected adapter)
    coinmarketcal_api_key: Optional[str] = Field(default=None)
    firecrawl_api_key: Optional[str] = Field(default=None)
    llm_api_key: Optional[str] = Field(default=None)

    # LLM gateway
    llm_model: str = Field(default="google/gemini-2.5-flash-lite")
    llm_temperature: float = Field(default=0.7)
    translation_target_language: str = Field(default="Vietnamese")
    translation_batch_size: int = Field(default=50)

    # Timeouts (in seconds)
    upstream_timeout: float = Field(default=10.0)
    extraction_timeout: float = Field(default=60.0)
    llm_timeout: float = Field(default=45.0)

    # Calendar window
    calendar_days_back: int = Field(default=7)
    calendar_days_forward: int = Field(default=14)
    calendar_max_events: int = Field(default=75)

    # News
    news_max_age_days: int = Field(default=7)

    # Tracked instruments
    ticker_symbols: str = Field(
        default="BTCUSDT,ETHUSDT,BNBUSDT,SOLUSDT,XRPUSDT,DOGEUSDT,ADAUSDT,AVAXUSDT,DOTUSDT,LINKUSDT"
    )
    derivative_symbols: str = Field(default="BTC,ETH,BNB,SOL,XRP,DOGE,ADA,AVAX,DOT,LINK")
    price_coin_ids: str = Field(
        default="bitcoin,ethereum,tether,ripple,binancecoin,usd-coin,solana,tron,dogecoin,bitcoin-cash"
    )

    # Logging configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @validator('ticker_symbols', 'derivative_symbols', 'price_coin_ids')
    def validate_symbol_lists(cls, v: str) -> str:
        """Validate that symbol lists are non-empty comma-separated strings."""
        if not v or not v.strip():
            raise ValueError("symbol lists cannot be empty")
        return v.strip()

    @validator('fallback_store_backend')
    def validate_store_backend(cls, v: str) -> str:
        """Validate fallback store backend."""
        valid_backends = {'memory', 'redis'}
        if v.lower() not in valid_backends:
            raise ValueError(f"fallback_store_backend must be one of: {', '.join(valid_backends)}")
        return v.lower()

    @validator('log_level')
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {'json', 'text'}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(valid_formats)}")
        return v.lower()

    @staticmethod
    def _split(value: str, upper: bool = False) -> List[str]:
        items = [item.strip() for item in value.split(',') if item.strip()]
        return [item.upper() for item in items] if upper else items

    def get_ticker_symbols_list(self) -> List[str]:
        """Get tracked spot pairs (e.g. BTCUSDT) as a list."""
        return self._split(self.ticker_symbols, upper=True)

    def get_derivative_symbols_list(self) -> List[str]:
        """Get tracked derivative base symbols as a list."""
        return self._split(self.derivative_symbols, upper=True)

    def get_price_coin_ids_list(self) -> List[str]:
        """Get CoinGecko coin ids for the price ticker."""
        return self._split(self.price_coin_ids)

    def get_redis_url(self) -> str:
        """Get Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()


class ProviderConfig:
    """Store keys and CORS settings shared by the service layers."""

    # Whole-response keys, one per data kind
    CACHE_KEYS = {
        'market': 'fallback:market',
        'crypto_prices': 'fallback:crypto_prices',
        'calendar': 'fallback:calendar',
        'scenarios': 'fallback:scenarios',
        'news': 'fallback:news',
        'price_history': 'fallback:price_history:{asset}'
    }

    # Per-adapter slice keys
    SLICE_KEYS = {
        'tickers': 'slice:market:tickers',
        'global_stats': 'slice:market:global_stats',
        'derivatives': 'slice:market:derivatives',
        'calendar_macro': 'slice:calendar:tradingview',
        'calendar_crypto': 'slice:calendar:coinmarketcal'
    }

    # Assets available for scenarios and price history: name -> (coingecko id, cryptocompare symbol)
    SCENARIO_ASSETS = {
        'btc': ('bitcoin', 'BTC'),
        'gold': ('pax-gold', 'PAXG')
    }

    CORS_ALLOW_HEADERS = [
        'authorization',
        'x-client-info',
        'apikey',
        'content-type',
        'x-supabase-client-platform',
        'x-supabase-client-platform-version',
        'x-supabase-client-runtime',
        'x-supabase-client-runtime-version'
    ]


provider_config = ProviderConfig()

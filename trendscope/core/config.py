from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

COINGECKO_PUBLIC_URL = "https://api.coingecko.com/api/v3"
COINGECKO_PRO_URL = "https://pro-api.coingecko.com/api/v3"


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    SLACK_WEBHOOK_URL: str | None = None

    # Durable cache
    CACHE_BACKEND: Literal["sql", "file"] = "sql"
    DATABASE_URL: str = "sqlite:///./data/trendscope.db"
    CACHE_DIR: str = "data/cache"

    # Provider credentials (all optional)
    COINGECKO_API_KEY: str | None = None
    TWITTER_BEARER_TOKEN: str | None = None
    SEARCH_INTEREST_ENABLED: bool = True

    # Provider behaviour
    HTTP_TIMEOUT_SECONDS: float = 10.0
    MARKET_MAX_RETRIES: int = 3
    MARKET_RETRY_BACKOFF: float = 2.0
    MARKET_MAX_RETRY_DELAY: float = 30.0
    LISTING_ENRICH_LIMIT: int = 15
    LISTING_ENRICH_DELAY: float = 2.2
    SOCIAL_REQUEST_DELAY: float = 1.0
    SEARCH_GEO: str = "US"

    # Aggregation
    TRENDING_BATCH_SIZE: int = 15
    NEWS_TARGET_COUNT: int = 5

    # Background refresh of the asset kinds
    REFRESH_ENABLED: bool = False
    REFRESH_INTERVAL_SECONDS: int = 5 * 60

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development

    @property
    def social_configured(self) -> bool:
        """True when a usable X/Twitter bearer token is present."""
        return bool(self.TWITTER_BEARER_TOKEN and self.TWITTER_BEARER_TOKEN.strip())

    @property
    def coingecko_base_url(self) -> str:
        return COINGECKO_PRO_URL if self.COINGECKO_API_KEY else COINGECKO_PUBLIC_URL


settings = Settings()

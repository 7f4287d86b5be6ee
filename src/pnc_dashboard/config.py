"""Configuration management via environment variables.

Reads from .env file (via pydantic-settings) with sensible defaults.
All values can be overridden via environment variables.

Required for live data:
    FMP_API_KEY     — Financial Modeling Prep key (statements + quotes)
    EDGAR_IDENTITY  — Your name + email for SEC EDGAR API User-Agent header

Optional:
    FRED_API_KEY       — For macroeconomic context (unemployment, rates, CPI)
    ANTHROPIC_API_KEY  — For Claude-powered narrative insights
    MONGODB_URI        — For a persistent snapshot cache in MongoDB Atlas
    PORT               — Server port (Railway sets this automatically)
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Financial Modeling Prep (primary statements + market quotes)
    fmp_api_key: str = ""
    fmp_base_url: str = "https://financialmodelingprep.com/api/v3"

    # FRED macroeconomic series
    fred_api_key: str = ""
    fred_base_url: str = "https://api.stlouisfed.org/fred"

    # SEC EDGAR API identity (name + email, required by SEC)
    edgar_identity: str = "PNC-Dashboard pnc-dashboard@example.com"

    # Claude API for narrative insights (optional)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"

    # MongoDB for persistent snapshot cache (optional)
    mongodb_uri: str = ""

    # In-memory cache: 1 hour TTL, opportunistic cleanup past 100 entries
    cache_ttl_seconds: float = 3600
    cache_max_entries: int = 100
    cache_prefix: str = "insurance_dashboard_"

    # Statements requested per ticker, and how many become history points
    statement_limit: int = 5
    history_periods: int = 4

    http_timeout_seconds: int = 30

    # Server port (Railway sets PORT env var automatically)
    port: int = 8877
    log_level: str = "INFO"

    # Strip whitespace and quotes from string fields; the .env file often has
    # trailing spaces that break keys and connection strings
    @field_validator(
        "fmp_api_key", "fred_api_key", "anthropic_api_key",
        "mongodb_uri", "edgar_identity", mode="before",
    )
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().strip('"').strip("'").strip()
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


_config: Settings | None = None


def get_config() -> Settings:
    """Get or create the shared Settings singleton."""
    global _config
    if _config is None:
        _config = Settings()
    return _config

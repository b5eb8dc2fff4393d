from typing import List

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Keys must be provided via env / .env (never hardcode secrets in code)
    openai_api_key: str | None = None
    polygon_api_key: str | None = None
    model_name: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    request_timeout: float = 30.0
    response_max_tokens: int = 512

    # Market data
    market_feed_url: str = "https://api.polygon.io/v2"
    watchlist: List[str] = ["SPY", "AGG", "BIL"]
    market_refresh_interval: float = 60.0  # seconds between refresh ticks
    market_fetch_timeout: float = 10.0  # must stay well under the refresh interval

    # Retrieval
    similar_turns_k: int = 5
    match_threshold: float = 0.78  # Minimum cosine similarity (0-1)
    warm_up_limit: int = 50
    index_workers: int = 2

    log_dir: str = "log"

    @model_validator(mode="after")
    def _check_fetch_timeout(self) -> "Settings":
        if self.market_fetch_timeout >= self.market_refresh_interval:
            raise ValueError(
                f"market_fetch_timeout ({self.market_fetch_timeout}s) must be lower than "
                f"market_refresh_interval ({self.market_refresh_interval}s)"
            )
        return self


settings = Settings()  # load once at import

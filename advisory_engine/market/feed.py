"""Market feed client: one HTTP fetch plus a strict parse of the snapshot payload."""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from advisory_engine.app.errors import FetchError
from advisory_engine.app.schemas import Quote
from advisory_engine.app.settings import settings

logger = logging.getLogger(__name__)


class QuoteFeed(Protocol):
    def fetch_quotes(self, symbols: Iterable[str]) -> List[Quote]:
        ...


class _LastTrade(BaseModel):
    p: float = Field(..., ge=0)


class _PrevDay(BaseModel):
    c: float = Field(..., ge=0)


class TickerSnapshot(BaseModel):
    model_config = {"extra": "ignore"}

    ticker: str = Field(..., min_length=1)
    todaysChange: float
    todaysChangePerc: float
    lastTrade: Optional[_LastTrade] = None
    prevDay: Optional[_PrevDay] = None

    def price(self) -> float:
        # Last trade wins; previous close covers pre-market snapshots with no trade yet.
        if self.lastTrade is not None:
            return self.lastTrade.p
        if self.prevDay is not None:
            return self.prevDay.c
        raise FetchError(f"No price in snapshot for {self.ticker}")


class SnapshotPayload(BaseModel):
    model_config = {"extra": "ignore"}

    tickers: List[TickerSnapshot] = Field(..., min_length=1)


def parse_snapshot_payload(payload, symbols: Iterable[str]) -> List[Quote]:
    """Map a raw snapshot payload to quotes, one per requested symbol.

    Anything missing or malformed is a FetchError; numeric fields are never
    defaulted.
    """
    try:
        parsed = SnapshotPayload.model_validate(payload)
    except ValidationError as exc:
        raise FetchError(f"Malformed market payload: {exc.error_count()} validation error(s)") from exc

    fetched_at = datetime.now(timezone.utc)
    by_symbol = {}
    for row in parsed.tickers:
        symbol = row.ticker.upper()
        by_symbol[symbol] = Quote(
            symbol=symbol,
            price=row.price(),
            change=row.todaysChange,
            change_percent=row.todaysChangePerc,
            fetched_at=fetched_at,
        )

    wanted = [s.upper() for s in symbols]
    missing = [s for s in wanted if s not in by_symbol]
    if missing:
        raise FetchError(f"Market payload missing symbols: {', '.join(missing)}")
    return [by_symbol[s] for s in wanted]


class PolygonQuoteFeed:
    """Snapshot client for the Polygon stocks API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.polygon_api_key
        self.base_url = (base_url or settings.market_feed_url).rstrip("/")
        self.timeout = timeout or settings.market_fetch_timeout
        self._transport = transport

    def fetch_quotes(self, symbols: Iterable[str]) -> List[Quote]:
        symbols = list(dict.fromkeys(s.upper() for s in symbols))
        if not symbols:
            raise FetchError("No symbols requested")
        if not self.api_key:
            raise FetchError("Polygon API key not configured")

        url = f"{self.base_url}/snapshot/locale/us/markets/stocks/tickers"
        params = {"tickers": ",".join(symbols), "apiKey": self.api_key}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(url, params=params)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.TimeoutException as exc:
            raise FetchError(f"Market feed timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise FetchError(f"Market feed returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Market feed request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError("Market feed returned non-JSON body") from exc

        quotes = parse_snapshot_payload(payload, symbols)
        logger.debug("Fetched %d quotes from %s", len(quotes), self.base_url)
        return quotes

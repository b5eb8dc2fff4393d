"""Latest-quote cache with a background refresh loop and compiled-in fallback data."""
import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from advisory_engine.app.errors import FetchError
from advisory_engine.app.schemas import MarketSnapshot, Quote
from advisory_engine.app.settings import settings
from advisory_engine.market.feed import QuoteFeed

logger = logging.getLogger(__name__)

# Used until the first successful refresh
FALLBACK_PRICES = {
    "SPY": 500.00,
    "AGG": 108.00,
    "BIL": 91.50,
}


def fallback_snapshot() -> MarketSnapshot:
    now = datetime.now(timezone.utc)
    return MarketSnapshot(
        quotes=tuple(
            Quote(symbol=symbol, price=price, change=0.0, change_percent=0.0, fetched_at=now)
            for symbol, price in FALLBACK_PRICES.items()
        ),
        fetched_at=now,
        source="fallback",
    )


def _check_quotes(quotes: List[Quote], symbols: Iterable[str]) -> None:
    """A snapshot holds exactly one quote per symbol and covers every requested symbol."""
    if not quotes:
        raise FetchError("Market feed returned no quotes")
    received = [q.symbol.upper() for q in quotes]
    duplicates = sorted({s for s in received if received.count(s) > 1})
    if duplicates:
        raise FetchError(f"Market feed returned duplicate symbols: {', '.join(duplicates)}")
    missing = [s for s in dict.fromkeys(s.upper() for s in symbols) if s not in received]
    if missing:
        raise FetchError(f"Market feed missing symbols: {', '.join(missing)}")


class RefreshHandle:
    """Cancellable handle for a running refresh loop."""

    def __init__(self, thread: threading.Thread, stop: threading.Event):
        self._thread = thread
        self._stop = stop

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def cancel(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)


class MarketDataCache:
    def __init__(
        self,
        feed: QuoteFeed,
        watchlist: Iterable[str] | None = None,
        refresh_interval: float | None = None,
    ):
        self.feed = feed
        self.watchlist = [s.upper() for s in (watchlist or settings.watchlist)]
        self.refresh_interval = refresh_interval or settings.market_refresh_interval
        self.last_error: Optional[str] = None
        # Replaced by a single assignment; readers never see a half-built snapshot.
        self._snapshot: MarketSnapshot = fallback_snapshot()
        self._refresh_lock = threading.Lock()

    def get_latest(self) -> MarketSnapshot:
        return self._snapshot

    def refresh(self, symbols: Iterable[str] | None = None) -> MarketSnapshot | None:
        """Fetch once and install a new snapshot. Returns None (and keeps the old one) on failure."""
        symbols = list(symbols) if symbols is not None else self.watchlist
        # Overlapping refreshes would race to install; skip instead of queueing.
        if not self._refresh_lock.acquire(blocking=False):
            logger.info("Refresh already in flight, skipping")
            return None
        try:
            try:
                quotes = self.feed.fetch_quotes(symbols)
                _check_quotes(quotes, symbols)
                snapshot = MarketSnapshot(
                    quotes=tuple(quotes),
                    fetched_at=datetime.now(timezone.utc),
                    source="feed",
                )
            except FetchError as exc:
                self.last_error = str(exc)
                logger.warning("Market refresh failed, keeping %s snapshot: %s", self._snapshot.source, exc)
                return None
            except Exception as exc:  # noqa: BLE001
                self.last_error = str(exc)
                logger.error("Unexpected market refresh failure: %s", exc, exc_info=True)
                return None
            self._snapshot = snapshot
            self.last_error = None
        finally:
            self._refresh_lock.release()

        logger.info("Market snapshot refreshed: %s", ", ".join(snapshot.symbols()))
        return snapshot

    def start(self, interval: float | None = None) -> RefreshHandle:
        """Refresh now and then every `interval` seconds on a daemon thread."""
        period = interval or self.refresh_interval
        stop = threading.Event()

        def _loop() -> None:
            logger.info("Market refresh loop started (every %.1fs)", period)
            while not stop.is_set():
                self.refresh()
                # Each tick is independent: no backoff after failures.
                stop.wait(period)
            logger.info("Market refresh loop stopped")

        thread = threading.Thread(target=_loop, name="market-refresh", daemon=True)
        thread.start()
        return RefreshHandle(thread, stop)

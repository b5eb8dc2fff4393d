import logging
from typing import Callable

from advisory_engine.market.cache import MarketDataCache
from advisory_engine.orchestration.state import ContextState

logger = logging.getLogger(__name__)


def make_market_snapshot_node(cache: MarketDataCache) -> Callable[[ContextState], ContextState]:
    def market_snapshot_node(state: ContextState) -> ContextState:
        # Reads cached state only; never waits on the refresh loop.
        try:
            snapshot = cache.get_latest()
        except Exception as exc:  # noqa: BLE001
            logger.error("Market snapshot read failed: %s", exc, exc_info=True)
            return {"snapshot": None, "market_error": str(exc)}
        return {"snapshot": snapshot, "market_error": None}

    return market_snapshot_node

"""Turns a user question into a grounded context block and records turns back."""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional

from advisory_engine.app.errors import PersistenceError
from advisory_engine.app.schemas import Turn, group_turns_by_day
from advisory_engine.app.settings import settings
from advisory_engine.market.cache import MarketDataCache
from advisory_engine.orchestration.graph import build_workflow
from advisory_engine.orchestration.nodes.assemble import render_context
from advisory_engine.persistence.turn_log import TurnLog
from advisory_engine.rag.vector_store import VectorStore

logger = logging.getLogger(__name__)


class ContextAssembler:
    """Stateless between calls; all state lives in the cache, the store and the log."""

    def __init__(
        self,
        cache: MarketDataCache,
        store: VectorStore,
        turn_log: TurnLog,
        k: int | None = None,
        index_workers: int | None = None,
    ):
        self.cache = cache
        self.store = store
        self.turn_log = turn_log
        self.k = k or settings.similar_turns_k
        self.workflow = build_workflow(cache, store, self.k)
        self._executor = ThreadPoolExecutor(
            max_workers=index_workers or settings.index_workers,
            thread_name_prefix="turn-index",
        )

    def build_context(self, user_id: str, question: str) -> str:
        try:
            result = self.workflow.invoke({"user_id": user_id, "question": question})
        except Exception as exc:  # noqa: BLE001
            logger.error("Context workflow failed for %s, using empty sections: %s", user_id, exc, exc_info=True)
            return render_context(None, [])

        if result.get("market_error"):
            logger.warning("Market section empty: %s", result["market_error"])
        if result.get("retrieval_error"):
            logger.warning("Retrieval section empty: %s", result["retrieval_error"])
        logger.info(
            "Built context for user_id=%s with %d similar turn(s)",
            user_id,
            len(result.get("similar_turns") or []),
        )
        return result["context"]

    def record_turn(self, turn: Turn) -> "Future[Optional[Turn]]":
        """Persist the turn, then index it in the background.

        Raises PersistenceError if the log write fails. Indexing failures are
        logged and never undo the write.
        """
        try:
            self.turn_log.insert(turn)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to persist turn %s for %s: %s", turn.id, turn.user_id, exc)
            raise PersistenceError(f"Could not persist turn {turn.id}") from exc
        return self._executor.submit(self._index_turn, turn)

    def _index_turn(self, turn: Turn) -> Optional[Turn]:
        try:
            return self.store.index_turn(turn)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Turn %s persisted but not indexed: %s", turn.id, exc)
            return None

    def warm_up(self, user_id: str, limit: int | None = None) -> int:
        """Re-index a user's recent turns from the log (e.g. after a restart)."""
        recent = self.turn_log.list_recent(user_id, limit or settings.warm_up_limit)
        return self.store.warm_up(user_id, recent)

    def history(self, user_id: str, limit: int = 100) -> Dict[str, List[Turn]]:
        return group_turns_by_day(self.turn_log.list_recent(user_id, limit))

    def close(self) -> None:
        self._executor.shutdown(wait=True)

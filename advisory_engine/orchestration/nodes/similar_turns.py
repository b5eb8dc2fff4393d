import logging
from typing import Callable

from advisory_engine.orchestration.state import ContextState
from advisory_engine.rag.vector_store import VectorStore

logger = logging.getLogger(__name__)


def make_similar_turns_node(store: VectorStore, k: int) -> Callable[[ContextState], ContextState]:
    def similar_turns_node(state: ContextState) -> ContextState:
        user_id = state["user_id"]
        try:
            turns = store.query_similar(user_id, state["question"], k)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Similar turn retrieval failed for {user_id}: {exc}", exc_info=True)
            return {"similar_turns": [], "retrieval_error": str(exc)}
        return {"similar_turns": turns, "retrieval_error": None}

    return similar_turns_node

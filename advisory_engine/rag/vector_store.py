"""Per-user semantic index over conversation turns."""
import threading
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from langchain_community.vectorstores import FAISS
from langchain_community.vectorstores.utils import DistanceStrategy
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings

from advisory_engine.app.errors import EmbeddingError
from advisory_engine.app.schemas import Turn
from advisory_engine.app.settings import settings
from advisory_engine.rag.logger import get_turn_logger, log_method_entry


def _normalize(vector: List[float]) -> List[float]:
    # Inner product of unit vectors is cosine similarity.
    arr = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr.tolist()
    return (arr / norm).tolist()


class _Partition:
    """One user's index. All access goes through `lock`."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.index: Optional[FAISS] = None
        self.turns: Dict[str, Turn] = {}
        self.dimensions: Optional[int] = None


class VectorStore:
    def __init__(
        self,
        embeddings: Embeddings,
        match_threshold: float | None = None,
        dimensions: int | None = None,
    ):
        self.embeddings = embeddings
        self.match_threshold = settings.match_threshold if match_threshold is None else match_threshold
        self.dimensions = dimensions
        self._partitions: Dict[str, _Partition] = {}
        self._registry_lock = threading.Lock()

    def _partition(self, user_id: str, create: bool = False) -> Optional[_Partition]:
        partition = self._partitions.get(user_id)
        if partition is None and create:
            with self._registry_lock:
                partition = self._partitions.setdefault(user_id, _Partition())
        return partition

    def embed(self, text: str) -> List[float]:
        try:
            vector = self.embeddings.embed_query(text)
        except Exception as exc:  # noqa: BLE001
            raise EmbeddingError(f"Embedding call failed: {exc}") from exc
        if not vector:
            raise EmbeddingError("Embedding call returned an empty vector")
        if self.dimensions is not None and len(vector) != self.dimensions:
            raise EmbeddingError(f"Expected {self.dimensions}-dim embedding, got {len(vector)}")
        return [float(v) for v in vector]

    @log_method_entry(run_type="index")
    def upsert(self, turn: Turn) -> None:
        """Store an embedded turn. Turns already indexed are left as they are."""
        if not turn.embedding:
            raise ValueError(f"Turn {turn.id} has no embedding")
        vector = _normalize(turn.embedding)
        partition = self._partition(turn.user_id, create=True)

        with partition.lock:
            if turn.id in partition.turns:
                return
            if partition.dimensions is not None and len(vector) != partition.dimensions:
                raise ValueError(
                    f"Turn {turn.id} embedding has {len(vector)} dims, index for "
                    f"{turn.user_id} has {partition.dimensions}"
                )
            metadata = {"turn_id": turn.id, "user_id": turn.user_id, "role": turn.role}
            if partition.index is None:
                partition.index = FAISS.from_embeddings(
                    [(turn.content, vector)],
                    embedding=self.embeddings,
                    metadatas=[metadata],
                    ids=[turn.id],
                    distance_strategy=DistanceStrategy.MAX_INNER_PRODUCT,
                )
                partition.dimensions = len(vector)
            else:
                partition.index.add_embeddings([(turn.content, vector)], metadatas=[metadata], ids=[turn.id])
            # Registered last: queries only ever resolve fully stored turns.
            partition.turns[turn.id] = turn

    def index_turn(self, turn: Turn) -> Turn:
        embedded = turn if turn.embedding else turn.with_embedding(self.embed(turn.content))
        self.upsert(embedded)
        return embedded

    def warm_up(self, user_id: str, turns: Iterable[Turn]) -> int:
        """Index any of `turns` not yet stored for `user_id`. Returns how many were added."""
        logger = get_turn_logger(run_type="index")
        partition = self._partition(user_id)
        known = set(partition.turns) if partition is not None else set()
        added = 0
        for turn in turns:
            if turn.user_id != user_id or turn.id in known:
                continue
            try:
                self.index_turn(turn)
                added += 1
            except EmbeddingError as exc:
                logger.warning(f"Skipping turn {turn.id} during warm-up: {exc}")
        logger.info(f"Warm-up indexed {added} turn(s) for user_id: {user_id}")
        return added

    def count(self, user_id: str) -> int:
        partition = self._partition(user_id)
        return len(partition.turns) if partition is not None else 0

    @log_method_entry(run_type="query")
    def query_similar(self, user_id: str, query_text: str, k: int) -> List[Turn]:
        """
        Most similar prior turns for one user, best first.

        Scores are cosine similarities; anything under `match_threshold` is
        dropped and equal scores go to the most recent turn. An unknown user,
        k <= 0, or a failed embedding call all give an empty list.
        """
        logger = get_turn_logger(run_type="query")
        if k <= 0:
            return []
        partition = self._partition(user_id)
        if partition is None or not partition.turns:
            logger.info(f"No indexed turns for user_id: {user_id}")
            return []

        try:
            vector = _normalize(self.embed(query_text))
        except EmbeddingError as exc:
            logger.warning(f"Query embedding failed for user_id: {user_id}, returning no turns: {exc}")
            return []

        with partition.lock:
            if len(vector) != partition.dimensions:
                logger.warning(
                    f"Query embedding has {len(vector)} dims, index for {user_id} has {partition.dimensions}"
                )
                return []
            hits: List[Tuple[Document, float]] = partition.index.similarity_search_with_score_by_vector(
                vector,
                k=len(partition.turns),
            )
            scored: List[Tuple[Turn, float]] = []
            for doc, score in hits:
                turn = partition.turns.get((doc.metadata or {}).get("turn_id"))
                if turn is None or turn.user_id != user_id:
                    logger.error(f"Skipping document with mismatched owner: {doc.metadata}")
                    continue
                if float(score) >= self.match_threshold:
                    scored.append((turn, float(score)))

        scored.sort(key=lambda pair: (-pair[1], -pair[0].created_at.timestamp()))
        result = [turn for turn, _ in scored[:k]]
        logger.info(f"Returning {len(result)} of {len(scored)} matching turns for user_id: {user_id}")
        return result

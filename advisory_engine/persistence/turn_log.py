"""Append-only conversation log collaborator."""
import threading
from typing import Dict, List, Protocol

from advisory_engine.app.schemas import Turn


class TurnLog(Protocol):
    def insert(self, turn: Turn) -> Turn:
        ...

    def list_recent(self, user_id: str, limit: int) -> List[Turn]:
        """Most recent first."""
        ...


class InMemoryTurnLog:
    """Process-local log; turns are never updated or deleted."""

    def __init__(self) -> None:
        self._rows: Dict[str, List[Turn]] = {}
        self._lock = threading.Lock()

    def insert(self, turn: Turn) -> Turn:
        with self._lock:
            rows = self._rows.setdefault(turn.user_id, [])
            if any(row.id == turn.id for row in rows):
                raise ValueError(f"Turn {turn.id} already logged")
            rows.append(turn)
        return turn

    def list_recent(self, user_id: str, limit: int) -> List[Turn]:
        if limit <= 0:
            return []
        with self._lock:
            rows = list(self._rows.get(user_id, []))
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return rows[:limit]

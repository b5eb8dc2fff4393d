"""Test doubles shared across the suite."""
from typing import List

from langchain_core.embeddings import Embeddings

from advisory_engine.app.schemas import Quote

VOCABULARY = ["retire", "bond", "stock", "crypto", "tax", "house"]


class KeywordEmbeddings(Embeddings):
    """One axis per vocabulary word, so similarities are easy to reason about."""

    def __init__(self) -> None:
        self.fail = False
        self.calls = 0

    def embed_query(self, text: str) -> List[float]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        lowered = text.lower()
        return [1.0 if word in lowered else 0.0 for word in VOCABULARY]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_query(text) for text in texts]


class StaticFeed:
    def __init__(self, quotes: List[Quote]) -> None:
        self.quotes = quotes
        self.calls = 0

    def fetch_quotes(self, symbols):
        self.calls += 1
        return list(self.quotes)


class RaisingFeed:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    def fetch_quotes(self, symbols):
        self.calls += 1
        raise self.exc


class FailingTurnLog:
    def insert(self, turn):
        raise ConnectionError("database unavailable")

    def list_recent(self, user_id, limit):
        return []

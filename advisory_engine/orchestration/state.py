"""LangGraph state schema for context assembly."""
from typing import List, Optional, TypedDict

from advisory_engine.app.schemas import MarketSnapshot, Turn


class ContextState(TypedDict, total=False):
    """State schema for the context-assembly workflow."""

    # Input
    user_id: str
    question: str

    # Branch results
    snapshot: Optional[MarketSnapshot]
    market_error: Optional[str]
    similar_turns: List[Turn]
    retrieval_error: Optional[str]

    # Output
    context: str

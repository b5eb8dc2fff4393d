from typing import Iterable, Optional

from advisory_engine.app.schemas import MarketSnapshot, Quote, Turn
from advisory_engine.orchestration.state import ContextState

MARKET_SECTION_LABEL = "Current Market Data:"
HISTORY_SECTION_LABEL = "Previous Conversations:"


def format_quote(quote: Quote) -> str:
    sign = "+" if quote.change_percent > 0 else ""
    return f"{quote.symbol}: ${quote.price:.2f} ({sign}{quote.change_percent:.2f}%)"


def render_context(snapshot: Optional[MarketSnapshot], turns: Iterable[Turn]) -> str:
    # Both labels are always emitted; an empty section is just an empty body.
    market = "\n".join(format_quote(q) for q in snapshot.quotes) if snapshot else ""
    history = "\n".join(turn.content for turn in turns)
    return f"{MARKET_SECTION_LABEL}\n{market}\n\n{HISTORY_SECTION_LABEL}\n{history}\n"


def assemble_node(state: ContextState) -> ContextState:
    return {"context": render_context(state.get("snapshot"), state.get("similar_turns") or [])}

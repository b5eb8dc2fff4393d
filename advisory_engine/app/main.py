import logging
import time
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException

from advisory_engine.allocation.engine import allocation_for_profile, summarize_profile
from advisory_engine.app.errors import GenerationError, PersistenceError
from advisory_engine.app.logging import configure_logging
from advisory_engine.app.schemas import (
    AllocationResult,
    ChatRequest,
    ChatResponse,
    ContextRequest,
    ContextResponse,
    HistoryDay,
    HistoryResponse,
    MarketResponse,
    Profile,
    ProfileSummary,
    Turn,
)
from advisory_engine.app.settings import settings
from advisory_engine.inference.advisor_client import AdvisorClient
from advisory_engine.market.cache import MarketDataCache, RefreshHandle
from advisory_engine.market.feed import PolygonQuoteFeed
from advisory_engine.orchestration.assembler import ContextAssembler
from advisory_engine.persistence.turn_log import InMemoryTurnLog
from advisory_engine.rag.embeddings import default_embeddings
from advisory_engine.rag.vector_store import VectorStore

configure_logging()

app = FastAPI(title="Advisory Context Engine")
logger = logging.getLogger(__name__)

_refresh_handle: RefreshHandle | None = None


@lru_cache(maxsize=1)
def get_assembler() -> ContextAssembler:
    cache = MarketDataCache(PolygonQuoteFeed(), watchlist=settings.watchlist)
    store = VectorStore(default_embeddings(), dimensions=settings.embedding_dimensions)
    return ContextAssembler(cache, store, InMemoryTurnLog())


@lru_cache(maxsize=1)
def get_advisor() -> AdvisorClient:
    return AdvisorClient()


@app.on_event("startup")
def start_market_refresh():
    global _refresh_handle
    _refresh_handle = get_assembler().cache.start()


@app.on_event("shutdown")
def stop_market_refresh():
    if _refresh_handle is not None:
        _refresh_handle.cancel(timeout=settings.market_fetch_timeout)
    get_assembler().close()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/market", response_model=MarketResponse)
def market(assembler: ContextAssembler = Depends(get_assembler)):
    snapshot = assembler.cache.get_latest()
    return MarketResponse(
        source=snapshot.source,
        fetched_at=snapshot.fetched_at,
        quotes=list(snapshot.quotes),
        last_error=assembler.cache.last_error,
    )


@app.post("/allocation", response_model=AllocationResult)
def allocation(profile: Profile):
    return allocation_for_profile(profile)


@app.post("/profile/summary", response_model=ProfileSummary)
def profile_summary(profile: Profile):
    return summarize_profile(profile)


@app.post("/context", response_model=ContextResponse)
def context(payload: ContextRequest, assembler: ContextAssembler = Depends(get_assembler)):
    return ContextResponse(user_id=payload.user_id, context=assembler.build_context(payload.user_id, payload.question))


@app.post("/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    assembler: ContextAssembler = Depends(get_assembler),
    advisor: AdvisorClient = Depends(get_advisor),
):
    start = int(time.time() * 1000)
    question = Turn(user_id=payload.user_id, role="user", content=payload.question)
    context_block = assembler.build_context(payload.user_id, payload.question)

    try:
        answer_text = advisor.reply(context_block, payload.question)
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    answer = Turn(user_id=payload.user_id, role="assistant", content=answer_text)
    try:
        assembler.record_turn(question)
        assembler.record_turn(answer)
    except PersistenceError:
        logger.exception("chat handler could not persist turns")
        raise HTTPException(status_code=503, detail="An error occurred while saving your message. Please try again.")

    return ChatResponse(
        user_id=payload.user_id,
        answer=answer_text,
        question_turn_id=question.id,
        answer_turn_id=answer.id,
        latency_ms=int(time.time() * 1000 - start),
    )


@app.get("/history/{user_id}", response_model=HistoryResponse)
def history(user_id: str, limit: int = 100, assembler: ContextAssembler = Depends(get_assembler)):
    grouped = assembler.history(user_id, limit=limit)
    return HistoryResponse(
        user_id=user_id,
        days=[HistoryDay(date=day, turns=turns) for day, turns in grouped.items()],
    )


@app.post("/warm-up/{user_id}")
def warm_up(user_id: str, assembler: ContextAssembler = Depends(get_assembler)):
    return {"user_id": user_id, "indexed": assembler.warm_up(user_id)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

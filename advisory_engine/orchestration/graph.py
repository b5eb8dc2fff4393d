from langgraph.graph import END, START, StateGraph

from advisory_engine.market.cache import MarketDataCache
from advisory_engine.orchestration.nodes.assemble import assemble_node
from advisory_engine.orchestration.nodes.market_snapshot import make_market_snapshot_node
from advisory_engine.orchestration.nodes.similar_turns import make_similar_turns_node
from advisory_engine.orchestration.state import ContextState
from advisory_engine.rag.vector_store import VectorStore


def build_workflow(cache: MarketDataCache, store: VectorStore, k: int):
    graph = StateGraph(ContextState)

    graph.add_node("market_snapshot", make_market_snapshot_node(cache))
    graph.add_node("similar_turns", make_similar_turns_node(store, k))
    graph.add_node("assemble", assemble_node)

    # The two reads are independent and run as parallel branches.
    graph.add_edge(START, "market_snapshot")
    graph.add_edge(START, "similar_turns")
    graph.add_edge(["market_snapshot", "similar_turns"], "assemble")
    graph.add_edge("assemble", END)

    return graph.compile()

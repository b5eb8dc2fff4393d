"""
Tests for context assembly and the record/retrieve lifecycle.
"""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from advisory_engine.app.errors import FetchError, PersistenceError
from advisory_engine.app.schemas import Quote, Turn
from advisory_engine.market.cache import MarketDataCache
from advisory_engine.orchestration.assembler import ContextAssembler
from advisory_engine.orchestration.nodes.assemble import (
    HISTORY_SECTION_LABEL,
    MARKET_SECTION_LABEL,
    format_quote,
)
from advisory_engine.persistence.turn_log import InMemoryTurnLog
from advisory_engine.rag.vector_store import VectorStore
from tests.fakes import FailingTurnLog, KeywordEmbeddings, RaisingFeed

WATCHLIST = ["SPY", "AGG", "BIL"]


def _sections(context):
    market, history = context.split(HISTORY_SECTION_LABEL)
    market_lines = [line for line in market.replace(MARKET_SECTION_LABEL, "").splitlines() if line.strip()]
    history_lines = [line for line in history.splitlines() if line.strip()]
    return market_lines, history_lines


class TestFormatQuote(unittest.TestCase):
    def test_signs(self):
        self.assertEqual(format_quote(Quote(symbol="SPY", price=512.3, change_percent=0.4123)), "SPY: $512.30 (+0.41%)")
        self.assertEqual(format_quote(Quote(symbol="AGG", price=98, change_percent=-1.2)), "AGG: $98.00 (-1.20%)")
        self.assertEqual(format_quote(Quote(symbol="BIL", price=91.5, change_percent=0)), "BIL: $91.50 (0.00%)")


class AssemblerTestCase(unittest.TestCase):
    def setUp(self):
        self.embeddings = KeywordEmbeddings()
        self.cache = MarketDataCache(RaisingFeed(FetchError("down")), watchlist=WATCHLIST)
        self.store = VectorStore(self.embeddings, match_threshold=0.78)
        self.log = InMemoryTurnLog()
        self.assembler = ContextAssembler(self.cache, self.store, self.log, k=5, index_workers=1)

    def tearDown(self):
        self.assembler.close()


class TestBuildContext(AssemblerTestCase):
    def test_new_user_with_fallback_market(self):
        context = self.assembler.build_context("u1", "How should I invest?")
        self.assertIn(MARKET_SECTION_LABEL, context)
        self.assertIn(HISTORY_SECTION_LABEL, context)

        market, history = _sections(context)
        self.assertEqual(market, ["SPY: $500.00 (0.00%)", "AGG: $108.00 (0.00%)", "BIL: $91.50 (0.00%)"])
        self.assertEqual(history, [])

    def test_includes_similar_turns_in_rank_order(self):
        t0 = datetime(2024, 5, 1, tzinfo=timezone.utc)
        for minutes, content in ((1, "Can I retire at 55?"), (2, "What about crypto?"), (3, "I want to retire soon")):
            self.assembler.record_turn(
                Turn(user_id="u1", role="user", content=content, created_at=t0 + timedelta(minutes=minutes))
            ).result(timeout=10)

        _, history = _sections(self.assembler.build_context("u1", "retire"))
        self.assertEqual(history, ["I want to retire soon", "Can I retire at 55?"])

    def test_failing_collaborators_still_give_both_labels(self):
        cache = MagicMock()
        cache.get_latest.side_effect = RuntimeError("cache exploded")
        store = MagicMock()
        store.query_similar.side_effect = RuntimeError("index corrupted")
        assembler = ContextAssembler(cache, store, InMemoryTurnLog(), k=5, index_workers=1)
        try:
            context = assembler.build_context("u1", "How should I invest?")
        finally:
            assembler.close()

        self.assertEqual(_sections(context), ([], []))
        self.assertTrue(context.startswith(MARKET_SECTION_LABEL))

    def test_embedding_outage_gives_empty_history(self):
        self.assembler.record_turn(Turn(user_id="u1", role="user", content="retire")).result(timeout=10)
        self.embeddings.fail = True
        market, history = _sections(self.assembler.build_context("u1", "retire"))
        self.assertEqual(len(market), 3)
        self.assertEqual(history, [])

    def test_passes_fixed_k(self):
        store = MagicMock()
        store.query_similar.return_value = []
        assembler = ContextAssembler(self.cache, store, InMemoryTurnLog(), k=5, index_workers=1)
        try:
            assembler.build_context("u9", "bonds?")
        finally:
            assembler.close()
        store.query_similar.assert_called_once_with("u9", "bonds?", 5)


class TestRecordTurn(AssemblerTestCase):
    def test_persists_then_indexes(self):
        turn = Turn(user_id="u1", role="assistant", content="Consider a bond ladder.")
        indexed = self.assembler.record_turn(turn).result(timeout=10)
        self.assertEqual(self.log.list_recent("u1", 10), [turn])
        self.assertEqual(indexed.id, turn.id)
        self.assertEqual(self.store.count("u1"), 1)

    def test_persistence_failure_raises_and_skips_index(self):
        assembler = ContextAssembler(self.cache, self.store, FailingTurnLog(), index_workers=1)
        try:
            with self.assertRaises(PersistenceError):
                assembler.record_turn(Turn(user_id="u1", role="user", content="retire"))
        finally:
            assembler.close()
        self.assertEqual(self.store.count("u1"), 0)

    def test_index_failure_keeps_logged_turn(self):
        self.embeddings.fail = True
        turn = Turn(user_id="u1", role="user", content="retire")
        self.assertIsNone(self.assembler.record_turn(turn).result(timeout=10))
        self.assertEqual(self.log.list_recent("u1", 10), [turn])
        self.assertEqual(self.store.count("u1"), 0)


class TestWarmUpAndHistory(AssemblerTestCase):
    def test_warm_up_indexes_logged_turns(self):
        self.log.insert(Turn(user_id="u1", role="user", content="retire"))
        self.log.insert(Turn(user_id="u1", role="assistant", content="bond"))
        self.assertEqual(self.assembler.warm_up("u1"), 2)
        self.assertEqual(self.assembler.warm_up("u1"), 0)

    def test_history_grouped_by_day(self):
        day1 = datetime(2024, 5, 1, 9, tzinfo=timezone.utc)
        day2 = datetime(2024, 5, 2, 9, tzinfo=timezone.utc)
        first = Turn(user_id="u1", role="user", content="a", created_at=day1)
        second = Turn(user_id="u1", role="assistant", content="b", created_at=day1 + timedelta(minutes=1))
        third = Turn(user_id="u1", role="user", content="c", created_at=day2)
        for turn in (third, first, second):
            self.log.insert(turn)

        grouped = self.assembler.history("u1")
        self.assertEqual(list(grouped), ["2024-05-02", "2024-05-01"])
        self.assertEqual(grouped["2024-05-01"], [first, second])

"""
Tests for Retriever

Tests searching, fusion, synthesis and response assembly.
"""

import asyncio
import json
import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock


def make_reminder(id, title, day=None, time=None, completed=False, user_id="user-1"):
    from recall.common.schemas import Reminder
    return Reminder(id=id, user_id=user_id, title=title, date=day, time=time, completed=completed)


def make_candidate(id, title, source, score=None, day=None, time=None, completed=False):
    from recall.common.schemas import CandidateRecord
    return CandidateRecord.from_reminder(
        make_reminder(id, title, day, time, completed), source, score=score
    )


def strategy(source, candidates):
    from recall.retriever.searcher import StrategyResult
    return StrategyResult(source=source, candidates=candidates)


class TestSearcher:
    """Tests for Searcher"""

    @pytest.fixture
    def stores(self):
        from recall.common.stores import ContentMatch, VectorMatch
        store = Mock()
        store.search_title = AsyncMock(return_value=[make_reminder("r4", "Dentist follow-up")])
        store.find_by_date = AsyncMock(return_value=[make_reminder("r1", "Dentist", date(2026, 1, 30), "09:00")])
        store.find_by_range = AsyncMock(return_value=[])
        index = Mock()
        index.match = AsyncMock(return_value=[
            VectorMatch(reminder_id="r2", similarity=0.8, content="Team lunch on Friday, January 30, 2026 (2026-01-30)"),
            VectorMatch(reminder_id="r5", similarity=0.2, content="Gym"),
        ])
        content = Mock()
        content.search_content = AsyncMock(return_value=[
            ContentMatch(reminder_id="r3", content="Pay rent on Friday, January 30, 2026 (2026-01-30) [Home]"),
        ])
        return store, index, content

    @pytest.fixture
    def searcher(self, stores):
        from recall.common.config import RetrieverConfig
        from recall.retriever.searcher import Searcher
        store, index, content = stores
        return Searcher(store, index, content, config=RetrieverConfig(strategy_timeout=0.5))

    @pytest.mark.asyncio
    async def test_unresolved_runs_vector_and_keyword_only(self, searcher, stores):
        from recall.common.schemas import CandidateSource, TemporalRange
        store, _, content = stores

        results = await searcher.search("user-1", "dentist", [0.1], TemporalRange.unresolved())

        assert {r.source for r in results} == {CandidateSource.VECTOR, CandidateSource.KEYWORD}
        store.find_by_date.assert_not_called()
        content.search_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolved_runs_all_four(self, searcher, stores):
        from recall.common.schemas import CandidateSource, TemporalRange
        _, _, content = stores

        results = await searcher.search("user-1", "friday", [0.1], TemporalRange.single(date(2026, 1, 30)))
        by_source = {r.source: r for r in results}

        assert set(by_source) == set(CandidateSource)
        assert by_source[CandidateSource.DATE].candidates[0].score == 1.0
        assert by_source[CandidateSource.KEYWORD_EMBED].candidates[0].score == 0.9
        assert by_source[CandidateSource.KEYWORD_EMBED].candidates[0].title == "Pay rent"
        assert by_source[CandidateSource.KEYWORD].candidates[0].score == 0.7
        content.search_content.assert_awaited_once_with("user-1", "2026-01-30", 5)

    @pytest.mark.asyncio
    async def test_vector_scores_are_similarity_above_threshold(self, searcher):
        from recall.common.schemas import CandidateSource, TemporalRange

        results = await searcher.search("user-1", "lunch", [0.1], TemporalRange.unresolved())
        vector = next(r for r in results if r.source == CandidateSource.VECTOR)

        assert [(c.reminder_id, c.score) for c in vector.candidates] == [("r2", 0.8)]
        assert vector.candidates[0].title == "Team lunch"

    @pytest.mark.asyncio
    async def test_range_uses_find_by_range(self, searcher, stores):
        from recall.common.schemas import TemporalRange
        store, _, _ = stores

        await searcher.search("user-1", "this week", [0.1], TemporalRange.span(date(2026, 1, 28), date(2026, 2, 1)))

        store.find_by_range.assert_awaited_once_with("user-1", date(2026, 1, 28), date(2026, 2, 1))
        store.find_by_date.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_strategy_is_empty_and_logged(self, searcher, stores, caplog):
        import logging
        from recall.common.schemas import CandidateSource, TemporalRange
        store, _, _ = stores
        store.search_title.side_effect = ConnectionError("db down")

        with caplog.at_level(logging.WARNING, logger="recall.retriever.searcher"):
            results = await searcher.search("user-1", "dentist", [0.1], TemporalRange.unresolved())
        keyword = next(r for r in results if r.source == CandidateSource.KEYWORD)
        vector = next(r for r in results if r.source == CandidateSource.VECTOR)

        assert keyword.candidates == []
        assert not keyword.ok
        assert keyword.error.strategy == "keyword"
        assert vector.ok and vector.candidates
        assert "keyword strategy ConnectionError" in caplog.text

    @pytest.mark.asyncio
    async def test_slow_strategy_times_out(self, searcher, stores):
        from recall.common.schemas import CandidateSource, TemporalRange
        _, index, _ = stores

        async def slow(*args, **kwargs):
            await asyncio.sleep(5)
            return []

        index.match.side_effect = slow
        results = await searcher.search("user-1", "dentist", [0.1], TemporalRange.unresolved())
        vector = next(r for r in results if r.source == CandidateSource.VECTOR)

        assert vector.candidates == []
        assert "timed out" in str(vector.error)

    @pytest.mark.asyncio
    async def test_date_strategy_skips_completed(self, searcher, stores):
        from recall.common.schemas import CandidateSource, TemporalRange
        store, _, _ = stores
        friday = date(2026, 1, 30)
        store.find_by_date.return_value = [
            make_reminder(f"c{i}", f"Chore {i}", friday, f"08:0{i}", completed=True) for i in range(10)
        ] + [make_reminder("r1", "Dentist", friday, "18:00")]

        results = await searcher.search("user-1", "friday", [0.1], TemporalRange.single(friday))
        by_date = next(r for r in results if r.source == CandidateSource.DATE)

        assert [c.reminder_id for c in by_date.candidates] == ["r1"]


class TestResultFusion:
    """Tests for ResultFusion"""

    @pytest.fixture
    def store(self):
        store = Mock()
        store.fetch_by_ids = AsyncMock(return_value=[])
        return store

    def test_highest_priority_source_wins(self, store):
        from recall.common.schemas import CandidateSource as S
        from recall.retriever.fusion import ResultFusion

        merged = ResultFusion.merge([
            strategy(S.KEYWORD, [make_candidate("r1", "Dentist", S.KEYWORD)]),
            strategy(S.VECTOR, [make_candidate("r1", "Dentist", S.VECTOR, score=0.95)]),
            strategy(S.DATE, [make_candidate("r1", "Dentist", S.DATE)]),
        ])

        assert len(merged) == 1
        assert merged[0].source == S.DATE
        assert merged[0].score == 1.0

    def test_merge_is_idempotent(self, store):
        from recall.common.schemas import CandidateSource as S
        from recall.retriever.fusion import ResultFusion

        results = [
            strategy(S.DATE, [make_candidate("r1", "Dentist", S.DATE)]),
            strategy(S.VECTOR, [make_candidate("r2", "Lunch", S.VECTOR, score=0.5)]),
        ]
        once = ResultFusion.merge(results)
        twice = ResultFusion.merge(results + results)

        assert [(c.reminder_id, c.score) for c in once] == [(c.reminder_id, c.score) for c in twice]

    def test_failed_strategy_contributes_nothing(self):
        from recall.common.errors import PartialRetrievalError
        from recall.common.schemas import CandidateSource as S
        from recall.retriever.fusion import ResultFusion
        from recall.retriever.searcher import StrategyResult

        merged = ResultFusion.merge([
            StrategyResult(source=S.KEYWORD, error=PartialRetrievalError("keyword")),
            strategy(S.VECTOR, [make_candidate("r2", "Lunch", S.VECTOR, score=0.5)]),
        ])
        assert [c.reminder_id for c in merged] == ["r2"]

    @pytest.mark.asyncio
    async def test_caps_at_ten_sorted_descending(self, store):
        from recall.common.schemas import CandidateSource as S
        from recall.retriever.fusion import ResultFusion

        vector = [make_candidate(f"v{i}", f"Item {i}", S.VECTOR, score=0.3 + i * 0.05) for i in range(11)]
        fusion = ResultFusion(store)

        fused = await fusion.fuse("user-1", [strategy(S.VECTOR, vector)])

        assert len(fused) == 10
        scores = [c.score for c in fused]
        assert scores == sorted(scores, reverse=True)
        assert "v0" not in [c.reminder_id for c in fused]

    @pytest.mark.asyncio
    async def test_caps_mixed_sources_in_priority_then_score_order(self, store):
        from recall.common.schemas import CandidateSource as S
        from recall.retriever.fusion import ResultFusion

        results = [
            strategy(S.KEYWORD, [
                make_candidate(rid, rid, S.KEYWORD) for rid in ("v1", "k1", "k2", "k3")
            ]),
            strategy(S.VECTOR, [
                make_candidate(rid, rid, S.VECTOR, score=score)
                for rid, score in (("e1", 0.95), ("v1", 0.85), ("v2", 0.8), ("v3", 0.75), ("v4", 0.72))
            ]),
            strategy(S.DATE, [make_candidate(rid, rid, S.DATE) for rid in ("d1", "d2", "d3", "d4")]),
            strategy(S.KEYWORD_EMBED, [
                make_candidate(rid, rid, S.KEYWORD_EMBED) for rid in ("d1", "e1", "e2")
            ]),
        ]

        fused = await ResultFusion(store).fuse("user-1", results)
        by_id = {c.reminder_id: c for c in fused}

        assert [c.reminder_id for c in fused] == ["d1", "d2", "d3", "d4", "e1", "e2", "v1", "v2", "v3", "v4"]
        assert [c.score for c in fused] == [1.0, 1.0, 1.0, 1.0, 0.9, 0.9, 0.85, 0.8, 0.75, 0.72]
        assert by_id["d1"].source == S.DATE
        assert by_id["e1"].source == S.KEYWORD_EMBED
        assert by_id["v1"].source == S.VECTOR

    @pytest.mark.asyncio
    async def test_hydration_fills_fields_and_keeps_score(self, store):
        from recall.common.schemas import CandidateRecord, CandidateSource as S, ReminderId
        from recall.retriever.fusion import ResultFusion

        partial = CandidateRecord(reminder_id=ReminderId("r3"), title="Pay rent", source=S.KEYWORD_EMBED, score=0.9)
        store.fetch_by_ids.return_value = [make_reminder("r3", "Pay rent", date(2026, 1, 30), "08:00", completed=True)]

        fused = await ResultFusion(store).fuse("user-1", [strategy(S.KEYWORD_EMBED, [partial])])

        assert fused[0].date == date(2026, 1, 30)
        assert fused[0].time == "08:00"
        assert fused[0].completed
        assert fused[0].score == 0.9
        assert fused[0].source == S.KEYWORD_EMBED
        store.fetch_by_ids.assert_awaited_once_with("user-1", ["r3"])

    @pytest.mark.asyncio
    async def test_hydration_failure_keeps_partial_records(self, store):
        from recall.common.schemas import CandidateSource as S
        from recall.retriever.fusion import ResultFusion

        store.fetch_by_ids.side_effect = RuntimeError("db down")
        candidate = make_candidate("r1", "Dentist", S.DATE, day=date(2026, 1, 30))

        fused = await ResultFusion(store).fuse("user-1", [strategy(S.DATE, [candidate])])

        assert [c.title for c in fused] == ["Dentist"]

    @pytest.mark.asyncio
    async def test_empty_input_skips_hydration(self, store):
        from recall.retriever.fusion import ResultFusion

        assert await ResultFusion(store).fuse("user-1", []) == []
        store.fetch_by_ids.assert_not_called()


class TestAnswerSynthesizer:
    """Tests for AnswerSynthesizer"""

    FRIDAY = date(2026, 1, 30)

    @pytest.fixture
    def llm(self):
        llm = Mock()
        llm.is_available = True
        llm.generate = Mock(return_value=json.dumps({
            "answer": "Your dentist appointment is on Friday at 9am.",
            "follow_up": "Want me to move it?",
            "actions": [{"type": "reschedule"}, "not-an-object"],
        }))
        return llm

    @pytest.fixture
    def synthesizer(self, llm):
        from recall.retriever.synthesizer import AnswerSynthesizer
        return AnswerSynthesizer(llm, timeout=0.5)

    @pytest.mark.asyncio
    async def test_found_single_day(self, synthesizer, llm):
        from recall.common.schemas import AnswerState, CandidateSource as S, TemporalRange

        fused = [make_candidate("r1", "Dentist", S.DATE, day=self.FRIDAY, time="09:00")]
        result = await synthesizer.synthesize("friday", fused, TemporalRange.single(self.FRIDAY))

        assert result.state == AnswerState.DETERMINISTIC_FOUND
        assert result.answer == "2026-01-30: Dentist (09:00)."
        assert result.follow_up == "Want to add another reminder for that day?"
        assert result.date_matches == 1
        assert llm.generate.call_count == 0

    @pytest.mark.asyncio
    async def test_found_range_with_untimed(self, synthesizer, llm):
        from recall.common.schemas import CandidateSource as S, TemporalRange

        fused = [
            make_candidate("r1", "Dentist", S.DATE, day=self.FRIDAY, time="09:00"),
            make_candidate("r2", "Pay rent", S.DATE, day=date(2026, 2, 1)),
            make_candidate("r9", "Old trip", S.VECTOR, score=0.8, day=date(2025, 6, 1)),
        ]
        week = TemporalRange.span(date(2026, 1, 28), date(2026, 2, 1))
        result = await synthesizer.synthesize("this week", fused, week)

        assert result.answer == "Reminders from 2026-01-28 to 2026-02-01: Dentist (09:00), Pay rent."
        assert result.follow_up == "Want me to set a time for any of these or add another reminder?"
        assert [c.reminder_id for c in result.evidence] == ["r1", "r2"]
        assert llm.generate.call_count == 0

    @pytest.mark.asyncio
    async def test_completed_reminders_do_not_count(self, synthesizer, llm):
        from recall.common.schemas import AnswerState, CandidateSource as S, TemporalRange

        fused = [make_candidate("r1", "Dentist", S.DATE, day=self.FRIDAY, time="09:00", completed=True)]
        result = await synthesizer.synthesize("friday", fused, TemporalRange.single(self.FRIDAY))

        assert result.state == AnswerState.DETERMINISTIC_EMPTY
        assert result.answer == "Nothing scheduled for 2026-01-30."
        assert result.evidence == []
        assert llm.generate.call_count == 0

    @pytest.mark.asyncio
    async def test_empty_range(self, synthesizer, llm):
        from recall.common.schemas import TemporalRange

        week = TemporalRange.span(date(2026, 2, 2), date(2026, 2, 8))
        result = await synthesizer.synthesize("next week", [], week)

        assert result.answer == "Nothing scheduled between 2026-02-02 and 2026-02-08."
        assert "add a reminder" in result.follow_up
        assert llm.generate.call_count == 0

    @pytest.mark.asyncio
    async def test_general_uses_generative_answer(self, synthesizer, llm):
        from recall.common.schemas import AnswerState, CandidateSource as S, TemporalRange

        fused = [make_candidate("r1", "Dentist", S.VECTOR, score=0.82, day=self.FRIDAY, time="09:00")]
        result = await synthesizer.synthesize(
            "when is the dentist?", fused, TemporalRange.unresolved(), today=date(2026, 1, 28)
        )

        assert result.state == AnswerState.GENERAL
        assert result.answer == "Your dentist appointment is on Friday at 9am."
        assert result.follow_up == "Want me to move it?"
        assert result.actions == [{"type": "reschedule"}]
        assert result.evidence == fused

        args, kwargs = llm.generate.call_args
        assert args == ("when is the dentist?",)
        assert kwargs["temperature"] == 0.0
        assert kwargs["json_mode"] is True
        assert "2026-01-28" in kwargs["system"]
        assert '"title": "Dentist"' in kwargs["system"]

    @pytest.mark.asyncio
    async def test_non_json_output_falls_back_to_raw_text(self, synthesizer, llm):
        from recall.common.schemas import TemporalRange

        llm.generate.return_value = "You have a dentist appointment on Friday."
        result = await synthesizer.synthesize("dentist?", [], TemporalRange.unresolved())

        assert result.answer == "You have a dentist appointment on Friday."
        assert result.follow_up == "Anything else I can help you with?"
        assert result.actions == []

    @pytest.mark.asyncio
    async def test_missing_answer_field(self, synthesizer, llm):
        from recall.common.schemas import TemporalRange

        llm.generate.return_value = '{"follow_up": "More?", "actions": "none"}'
        result = await synthesizer.synthesize("dentist?", [], TemporalRange.unresolved())

        assert result.answer == "I'm sorry, I couldn't generate an answer."
        assert result.follow_up == "More?"
        assert result.actions == []

    @pytest.mark.asyncio
    async def test_provider_error_apologises(self, synthesizer, llm):
        from recall.common.schemas import TemporalRange
        from recall.retriever.synthesizer import APOLOGY

        llm.generate.side_effect = RuntimeError("rate limited")
        result = await synthesizer.synthesize("dentist?", [], TemporalRange.unresolved())

        assert result.answer == APOLOGY

    @pytest.mark.asyncio
    async def test_timeout_apologises(self, llm):
        import time
        from recall.common.schemas import TemporalRange
        from recall.retriever.synthesizer import APOLOGY, AnswerSynthesizer

        def slow(*args, **kwargs):
            time.sleep(0.3)
            return '{"answer": "late"}'

        llm.generate.side_effect = slow
        result = await AnswerSynthesizer(llm, timeout=0.05).synthesize("dentist?", [], TemporalRange.unresolved())

        assert result.answer == APOLOGY

    @pytest.mark.asyncio
    async def test_without_llm_lists_results(self):
        from recall.common.schemas import AnswerState, CandidateSource as S, TemporalRange
        from recall.retriever.synthesizer import AnswerSynthesizer

        synthesizer = AnswerSynthesizer(None)
        fused = [make_candidate("r1", "Dentist", S.VECTOR, score=0.82, day=self.FRIDAY, time="09:00")]
        result = await synthesizer.synthesize("dentist", fused, TemporalRange.unresolved())

        assert not synthesizer.has_llm
        assert result.state == AnswerState.GENERAL
        assert "1. Dentist (09:00), 2026-01-30" in result.answer


class TestResponseAssembler:
    """Tests for ResponseAssembler"""

    def test_payload_shape(self):
        from recall.common.schemas import AnswerState, CandidateSource as S, TemporalRange
        from recall.retriever.assembler import ResponseAssembler
        from recall.retriever.synthesizer import Synthesis

        friday = date(2026, 1, 30)
        evidence = [make_candidate("r1", "Dentist", S.DATE, day=friday, time="09:00")]
        synthesis = Synthesis(
            state=AnswerState.DETERMINISTIC_FOUND,
            answer="2026-01-30: Dentist (09:00).",
            follow_up="Want to add another reminder for that day?",
            evidence=evidence,
            actions=[{"type": "ignored"}],
            date_matches=1,
        )

        body = ResponseAssembler().assemble("friday", synthesis, TemporalRange.single(friday)).to_dict()

        assert body["answer"] == "2026-01-30: Dentist (09:00)."
        assert body["actions"] == []
        assert body["state"] == "deterministic-found"
        assert body["targetDate"] == "2026-01-30"
        assert body["endDate"] is None
        assert body["reminders_for_target_date"] == 1
        assert body["resolved_range"]["isRange"] is False
        assert body["evidence"][0]["reminder_id"] == "r1"
        assert body["evidence"][0]["date"] == "2026-01-30"
        assert body["evidence"][0]["source"] == "date"

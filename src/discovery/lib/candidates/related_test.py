"""Tests for the related candidate source."""

import pytest

from ...config import CandidateRules
from ...models import RelationEdge
from ..cache import SearchCache
from .related import RelatedCandidateSource


def edge(subject_id, weight, username=None, premium=False):
    return RelationEdge(
        subject_id=subject_id,
        weight=weight,
        username=username or subject_id,
        is_premium=premium,
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source(relations, metrics, clock):
    return RelatedCandidateSource(
        relations, SearchCache(clock=clock), CandidateRules(), metrics
    )


class TestFind:
    @pytest.mark.asyncio
    async def test_orders_by_weight_and_excludes_self(self, source, relations):
        relations.edges["u"] = [edge("a", 0.3), edge("u", 1.0), edge("b", 0.9)]

        found = await source.find("u", 10)

        assert [c.subject_id for c in found] == ["b", "a"]
        assert all(c.source == "related" for c in found)

    @pytest.mark.asyncio
    async def test_term_match_is_case_sensitive(self, source, relations):
        relations.edges["u"] = [edge("a", 0.5, "Anna"), edge("b", 0.4, "joanna")]

        found = await source.find("u", 10, term="anna")

        assert [c.subject_id for c in found] == ["b"]

    @pytest.mark.asyncio
    async def test_case_insensitive_when_configured(self, relations, metrics):
        relations.edges["u"] = [edge("a", 0.5, "Anna"), edge("b", 0.4, "joanna")]
        source = RelatedCandidateSource(
            relations, SearchCache(), CandidateRules(related_term_case_sensitive=False), metrics
        )
        found = await source.find("u", 10, term="anna")
        assert [c.subject_id for c in found] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_premium_capped(self, relations, metrics):
        relations.edges["u"] = [
            edge(f"p{i}", 0.9 - i * 0.01, premium=True) for i in range(5)
        ] + [edge("r1", 0.5), edge("r2", 0.95)]
        source = RelatedCandidateSource(
            relations, SearchCache(), CandidateRules(max_premium=2), metrics
        )

        found = await source.find("u", 10)

        assert [c.subject_id for c in found] == ["r2", "p0", "p1", "r1"]
        assert sum(1 for c in found if c.is_premium) <= 2

    @pytest.mark.asyncio
    async def test_excluded_ids_and_limit(self, source, relations):
        relations.edges["u"] = [edge("a", 0.9), edge("b", 0.8), edge("c", 0.7)]

        found = await source.find("u", 1, exclude_ids=frozenset({"a"}))

        assert [c.subject_id for c in found] == ["b"]

    @pytest.mark.asyncio
    async def test_global_result_cap(self, relations, metrics):
        relations.edges["u"] = [edge(f"s{i}", 1 - i / 100) for i in range(10)]
        source = RelatedCandidateSource(
            relations, SearchCache(), CandidateRules(max_results=3), metrics
        )
        assert len(await source.find("u", 10)) == 3


class TestCache:
    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self, source, relations, metrics):
        relations.edges["u"] = [edge("a", 0.9)]

        await source.find("u", 10)
        await source.find("u", 10, term="a")

        assert len(relations.calls) == 1
        assert metrics.counts["related_cache_misses"] == 1
        assert metrics.counts["related_cache_hits"] == 1
        assert len(metrics.durations["related_search_duration"]) == 2

    @pytest.mark.asyncio
    async def test_cache_expires_after_ten_seconds(self, source, relations, clock):
        relations.edges["u"] = [edge("a", 0.9)]

        await source.find("u", 10)
        clock.now += 10.5
        await source.find("u", 10)

        assert len(relations.calls) == 2

    @pytest.mark.asyncio
    async def test_invalidate(self, source, relations):
        relations.edges["u"] = [edge("a", 0.9)]
        await source.find("u", 10)
        source.invalidate("u")
        await source.find("u", 10)
        assert len(relations.calls) == 2


def test_select_dedups(source):
    from ...models import Candidate

    raw = [
        Candidate(subject_id="a", weight=0.5, username="a"),
        Candidate(subject_id="a", weight=0.4, username="a"),
        Candidate(subject_id="b", weight=0.3, username="b"),
    ]
    selected = source.select(raw, "", 10)
    assert [c.subject_id for c in selected] == ["a", "b"]
    assert selected[0].weight == 0.5

"""Tests for the unknown candidate source."""

import pytest

from ...config import CandidateRules
from .unknown import UnknownCandidateSource


@pytest.fixture
def source(population, metrics):
    return UnknownCandidateSource(population, CandidateRules(max_unknown=3), metrics)


def test_name(source):
    assert source.name == "unknown"


@pytest.mark.asyncio
async def test_weight_is_zero(source, population):
    population.ids = ["a", "b"]

    found = await source.find("u", 10)

    assert [c.subject_id for c in found] == ["a", "b"]
    assert all(c.weight == 0.0 and c.source == "unknown" for c in found)


@pytest.mark.asyncio
async def test_excludes_requester_and_ids(source, population):
    population.ids = ["u", "a", "b", "a"]

    found = await source.find("u", 10, term=" an ", exclude_ids=frozenset({"b"}))

    assert [c.subject_id for c in found] == ["a"]
    _, filters, limit = population.calls[0]
    assert filters == {"term": "an", "exclude_ids": ["b"]}
    assert limit == 3


@pytest.mark.asyncio
async def test_capped_and_timed(source, population, metrics):
    population.ids = [f"s{i}" for i in range(10)]

    found = await source.find("u", 10)

    assert len(found) == 3
    assert len(metrics.durations["unknown_search_duration"]) == 1

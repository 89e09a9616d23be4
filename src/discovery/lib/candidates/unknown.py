"""Unknown candidate source.

Samples the broad user population (username prefix match against the term),
excluding the requester and anything the caller already has.  There is no
weighting signal at retrieval time: every candidate is emitted with weight
``0`` and scored entirely by the ranking engine.  No cache; the population
changes independently of any single user's queries.
"""

import logging
import time

from ...config import CandidateRules
from ...models import Candidate
from ..metrics import MetricsSink, NullMetricsSink
from ..stores import PopulationStore
from .base import CandidateSource, dedup_candidates

logger = logging.getLogger(__name__)


class UnknownCandidateSource(CandidateSource):
    def __init__(
        self,
        population: PopulationStore,
        rules: CandidateRules | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.population = population
        self.rules = rules or CandidateRules()
        self.metrics = metrics or NullMetricsSink()

    @property
    def name(self) -> str:
        return "unknown"

    async def find(
        self,
        user_id: str,
        limit: int,
        *,
        term: str = "",
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[Candidate]:
        start = time.perf_counter()
        limit = min(limit, self.rules.max_unknown)
        filters = {"term": term.strip(), "exclude_ids": sorted(exclude_ids)}

        ids = await self.population.sample(user_id, filters, limit)

        candidates = dedup_candidates([
            Candidate(subject_id=subject_id, weight=0.0, is_premium=False, source="unknown")
            for subject_id in ids
            if subject_id != user_id and subject_id not in exclude_ids
        ])[:limit]

        self.metrics.record_duration(
            "unknown_search_duration", (time.perf_counter() - start) * 1000
        )
        logger.debug("Unknown source returned %d candidates for %s", len(candidates), user_id)
        return candidates

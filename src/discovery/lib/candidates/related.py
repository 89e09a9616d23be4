"""Related candidate source.

Returns subjects connected to the requesting user through a weighted relation
edge:

1. Fetch the user's heaviest edges from the relation store (cached per user
   for a short window to absorb bursts of keystroke-driven searches).
2. De-duplicate, cap premium candidates, re-sort by weight.
3. Keep subjects whose username contains the term, then slice to the cap.
"""

import logging
import time

from ...config import CandidateRules
from ...models import Candidate
from ..cache import SearchCache, related_cache_key
from ..metrics import MetricsSink, NullMetricsSink
from ..stores import RelationStore
from .base import CandidateSource, dedup_candidates

logger = logging.getLogger(__name__)


class RelatedCandidateSource(CandidateSource):
    """Graph-weighted candidates from the relation store."""

    def __init__(
        self,
        relations: RelationStore,
        cache: SearchCache[list[Candidate]],
        rules: CandidateRules | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.relations = relations
        self.cache = cache
        self.rules = rules or CandidateRules()
        self.metrics = metrics or NullMetricsSink()

    @property
    def name(self) -> str:
        return "related"

    async def find(
        self,
        user_id: str,
        limit: int,
        *,
        term: str = "",
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[Candidate]:
        raw = await self.fetch(user_id)
        return self.select(raw, term, limit, exclude_ids=exclude_ids)

    async def fetch(self, user_id: str) -> list[Candidate]:
        """Raw neighbours of ``user_id``, served from the short-lived cache when fresh."""
        start = time.perf_counter()
        key = related_cache_key(user_id)

        cached = self.cache.get(key)
        if cached is not None:
            self.metrics.record_count("related_cache_hits", 1)
            self.metrics.record_duration(
                "related_search_duration", (time.perf_counter() - start) * 1000
            )
            return cached
        self.metrics.record_count("related_cache_misses", 1)

        edges = await self.relations.weighted_neighbors(
            user_id, self.rules.min_relation_weight, self.rules.max_related
        )
        candidates = [
            Candidate(
                subject_id=edge.subject_id,
                weight=edge.weight,
                is_premium=edge.is_premium,
                username=edge.username,
                source="related",
            )
            for edge in edges
            if edge.subject_id != user_id
        ]
        candidates.sort(key=lambda c: -c.weight)

        self.cache.set(key, candidates, ttl=self.rules.related_cache_ttl)
        self.metrics.record_duration(
            "related_search_duration", (time.perf_counter() - start) * 1000
        )
        return candidates

    def select(
        self,
        candidates: list[Candidate],
        term: str,
        limit: int,
        *,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[Candidate]:
        """Apply the post-retrieval filtering rules."""
        unique = dedup_candidates(candidates)

        premium = [c for c in unique if c.is_premium]
        regular = [c for c in unique if not c.is_premium]
        if len(premium) > self.rules.max_premium:
            premium = sorted(premium, key=lambda c: -c.weight)[: self.rules.max_premium]

        merged = sorted(premium + regular, key=lambda c: -c.weight)
        matching = [
            c for c in merged
            if c.subject_id not in exclude_ids and self._matches(c.username, term)
        ]
        return matching[: min(limit, self.rules.max_results)]

    def _matches(self, username: str | None, term: str) -> bool:
        if not term:
            return True
        if not username:
            return False
        if self.rules.related_term_case_sensitive:
            return term in username
        return term.lower() in username.lower()

    def invalidate(self, user_id: str) -> None:
        self.cache.delete(related_cache_key(user_id))

    def clear(self) -> None:
        self.cache.clear()

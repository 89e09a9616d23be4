"""People search: one request/response cycle.

    validate → rate limit → cache → candidate sources (related first)
             → mix/cap → hydration → filters → ranking → page → cache

Everything after the guards runs under a wall-clock timeout.  Failures never
escape as exceptions: they are counted and returned as an
:class:`~discovery.models.ErrorResponse`.
"""

import asyncio
import logging
import time
import uuid

from ..config import CacheConfig, CandidateRules, SearchConfig, SecurityConfig
from ..errors import SearchTimeout, ValidationError, as_discovery_error
from ..models import (
    Candidate,
    ErrorDetail,
    ErrorResponse,
    HydratedCandidate,
    PaginationInfo,
    RankingResult,
    SearchCriteria,
    SearchFilters,
    SearchMetadata,
    SearchRequest,
    SearchResponse,
    Sorting,
    Suggestion,
    SuggestionResponse,
)
from ..security import RateLimiter, check_permission, normalize_term, validate_search_term
from .cache import SearchCache, search_cache_key, suggestion_cache_key
from .candidates import RelatedCandidateSource, UnknownCandidateSource, dedup_candidates, mix_candidates
from .hydration import HydrationService
from .metrics import MetricsSink, NullMetricsSink
from .ranking import RankingEngine, match_strength
from .stores import ProfileStore

logger = logging.getLogger(__name__)

SOURCES_BY_SEARCH_TYPE = {
    "all": ("related", "unknown"),
    "verified": ("related", "unknown"),
    "nearby": ("related", "unknown"),
    "related": ("related",),
    "unknown": ("unknown",),
}


def apply_filters(candidates: list[HydratedCandidate], filters: SearchFilters) -> list[HydratedCandidate]:
    excluded = set(filters.exclude_user_ids)
    kept = []
    for c in candidates:
        if c.subject_id in excluded:
            continue
        if c.is_verified and not filters.include_verified:
            continue
        if not c.is_verified and not filters.include_unverified:
            continue
        if not filters.include_blocked and (c.is_blocked or c.you_blocked or c.blocked_you):
            continue
        if not filters.include_muted and c.is_muted:
            continue
        if filters.min_followers is not None and c.follower_count < filters.min_followers:
            continue
        if filters.max_followers is not None and c.follower_count > filters.max_followers:
            continue
        if filters.min_engagement_rate is not None and c.engagement_rate < filters.min_engagement_rate:
            continue
        if filters.max_engagement_rate is not None and c.engagement_rate > filters.max_engagement_rate:
            continue
        if (
            filters.max_distance_km is not None
            and c.distance_km is not None
            and c.distance_km > filters.max_distance_km
        ):
            continue
        kept.append(c)
    return kept


def apply_sorting(results: list[RankingResult], sorting: Sorting) -> list[RankingResult]:
    """Re-order ranked results by a secondary field.  ``rank`` is left as ranked.

    Relevance keeps the ranking order.  Results without a distance always come
    last when sorting by distance.
    """
    if sorting.field == "relevance":
        return results

    reverse = sorting.direction == "desc"
    if sorting.field == "followers":
        return sorted(results, key=lambda r: r.subject.follower_count, reverse=reverse)
    if sorting.field == "engagement":
        return sorted(results, key=lambda r: r.subject.engagement_rate, reverse=reverse)

    with_distance = [r for r in results if r.subject.distance_km is not None]
    without = [r for r in results if r.subject.distance_km is None]
    with_distance.sort(key=lambda r: r.subject.distance_km, reverse=reverse)
    return with_distance + without


class SearchOrchestrator:
    def __init__(
        self,
        related: RelatedCandidateSource,
        unknown: UnknownCandidateSource,
        hydration: HydrationService,
        ranking: RankingEngine,
        profiles: ProfileStore,
        cache: SearchCache | None = None,
        rate_limiter: RateLimiter | None = None,
        search_config: SearchConfig | None = None,
        cache_config: CacheConfig | None = None,
        security_config: SecurityConfig | None = None,
        rules: CandidateRules | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.sources = {related.name: related, unknown.name: unknown}
        self.related = related
        self.unknown = unknown
        self.hydration = hydration
        self.ranking = ranking
        self.profiles = profiles
        self.cache = cache
        self.search_config = search_config or SearchConfig()
        self.cache_config = cache_config or CacheConfig()
        self.security_config = security_config or SecurityConfig()
        self.rate_limiter = rate_limiter or RateLimiter(self.security_config)
        self.rules = rules or CandidateRules()
        self.metrics = metrics or NullMetricsSink()

    def source_names(self) -> list[str]:
        return list(self.sources)

    # -- cache -----------------------------------------------------------

    def _cache_get(self, key: str):
        if self.cache is None or not self.cache_config.enabled:
            return None
        try:
            return self.cache.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            self.metrics.record_error(f"cache read failed: {exc}")
            return None

    def _cache_set(self, key: str, value, ttl: float) -> None:
        if self.cache is None or not self.cache_config.enabled:
            return
        try:
            self.cache.set(key, value, ttl=ttl)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
            self.metrics.record_error(f"cache write failed: {exc}")

    def _error_response(self, exc: BaseException, query_id: str | None) -> ErrorResponse:
        err = as_discovery_error(exc)
        if err is not exc:
            logger.exception("Unexpected failure in query %s", query_id)
        self.metrics.record_error(f"{err.kind}: {err.message}")
        return ErrorResponse(
            error=ErrorDetail(type=err.kind, message=err.message, details=err.details),
            query_id=query_id,
        )

    # -- search ----------------------------------------------------------

    async def search(self, request: SearchRequest) -> SearchResponse | ErrorResponse:
        query_id = uuid.uuid4().hex
        start = time.perf_counter()
        try:
            term = validate_search_term(request.term, self.security_config)
            if not request.searcher_user_id.strip():
                raise ValidationError("Searcher user id is required")
            check_permission(request.search_context, request.security_context)
            ip_address = request.security_context.ip_address if request.security_context else None
            self.rate_limiter.acquire(request.searcher_user_id, ip_address)

            limit = min(
                request.pagination.limit or self.search_config.default_limit,
                self.search_config.max_limit,
            )
            try:
                response = await asyncio.wait_for(
                    self._search(request, term, limit, query_id, start),
                    timeout=self.search_config.timeout,
                )
            except asyncio.TimeoutError:
                raise SearchTimeout(
                    "Search timed out", {"timeout_seconds": self.search_config.timeout}
                ) from None
        except Exception as exc:
            return self._error_response(exc, query_id)

        self.metrics.record_duration("search_duration", (time.perf_counter() - start) * 1000)
        return response

    async def _search(
        self,
        request: SearchRequest,
        term: str,
        limit: int,
        query_id: str,
        start: float,
    ) -> SearchResponse:
        key = search_cache_key(request, limit)
        cached = self._cache_get(key)
        if cached is not None:
            self.metrics.record_count("search_cache_hits", 1)
            return cached.model_copy(update={
                "search_metadata": SearchMetadata(
                    query_id=query_id,
                    duration_ms=(time.perf_counter() - start) * 1000,
                    cache_hit=True,
                    search_type=request.search_type,
                ),
            })
        self.metrics.record_count("search_cache_misses", 1)

        user_id = request.searcher_user_id
        exclude_ids = frozenset(request.filters.exclude_user_ids)
        names = SOURCES_BY_SEARCH_TYPE[request.search_type]
        limits = {"related": self.rules.max_related, "unknown": self.rules.max_unknown}
        # Each source skips the subjects the sources before it returned.
        found: dict[str, list[Candidate]] = {}
        covered = set(exclude_ids)
        for name in names:
            found[name] = await self.sources[name].find(
                user_id, limits[name], term=term, exclude_ids=frozenset(covered)
            )
            covered.update(c.subject_id for c in found[name])

        mix_start = time.perf_counter()
        combined = mix_candidates(
            found.get("related", []),
            found.get("unknown", []),
            self.rules.mix_coefficient,
            self.rules.max_candidates,
        )
        self.metrics.record_duration("mixing_duration", (time.perf_counter() - mix_start) * 1000)

        related = [c for c in combined if c.source == "related"]
        unknown = [c for c in combined if c.source != "related"]
        groups = await self.hydration.hydrate_groups(
            user_id, {"related": related, "unknown": unknown}
        )

        hydrated = apply_filters(groups["related"] + groups["unknown"], request.filters)
        ranked = self.ranking.rank(
            hydrated, SearchCriteria(term=term, search_type=request.search_type)
        )
        ranked = apply_sorting(ranked, request.sorting)
        self.metrics.record_count("final_candidates_count", len(ranked))

        offset = request.pagination.offset
        total = len(ranked)
        response = SearchResponse(
            users=ranked[offset:offset + limit],
            pagination=PaginationInfo(
                total=total,
                limit=limit,
                offset=offset,
                has_next=offset + limit < total,
                has_previous=offset > 0,
            ),
            search_metadata=SearchMetadata(
                query_id=query_id,
                duration_ms=(time.perf_counter() - start) * 1000,
                cache_hit=False,
                search_type=request.search_type,
            ),
        )
        self._cache_set(key, response, self.cache_config.search_ttl)
        return response

    # -- suggestions -----------------------------------------------------

    async def suggest(
        self, partial_term: str, user_id: str, limit: int = 10
    ) -> SuggestionResponse | ErrorResponse:
        """Username and name completions for a partially typed term."""
        start = time.perf_counter()
        try:
            normalized = normalize_term(partial_term or "")
            if len(normalized) > self.security_config.max_suggestion_length:
                raise ValidationError(
                    "Suggestion term is too long",
                    {"max_length": self.security_config.max_suggestion_length},
                )
            if len(normalized) < self.security_config.min_suggestion_length:
                return SuggestionResponse(suggestions=[], total_count=0, cache_hit=False)
            if not (user_id or "").strip():
                raise ValidationError("User id is required")
            validate_search_term(normalized, self.security_config)

            key = suggestion_cache_key(user_id, normalized, limit)
            cached = self._cache_get(key)
            if cached is not None:
                return cached.model_copy(update={"cache_hit": True})

            suggestions = await self._suggestions(user_id, normalized, limit)
        except Exception as exc:
            return self._error_response(exc, None)

        response = SuggestionResponse(
            suggestions=suggestions, total_count=len(suggestions), cache_hit=False
        )
        self._cache_set(key, response, self.cache_config.suggestion_ttl)
        self.metrics.record_duration("suggestion_duration", (time.perf_counter() - start) * 1000)
        return response

    async def _suggestions(self, user_id: str, term: str, limit: int) -> list[Suggestion]:
        related = await self.related.fetch(user_id)
        unknown = await self.unknown.find(
            user_id,
            limit * 2,
            term=term,
            exclude_ids=frozenset(c.subject_id for c in related),
        )
        candidates = dedup_candidates(related + unknown)[: self.rules.max_candidates]
        ids = [c.subject_id for c in candidates]
        by_id = {p.subject_id: p for p in await self.profiles.get_profiles(ids)}

        suggestions: list[Suggestion] = []
        for profile in (by_id[i] for i in ids if i in by_id):
            by_username = match_strength(profile.username, term)
            by_name = match_strength(profile.display_name, term)
            if by_username == 0 and by_name == 0:
                continue
            if by_username >= by_name:
                text, kind, confidence = profile.username, "username", by_username
            else:
                text, kind, confidence = profile.display_name, "name", by_name
            suggestions.append(
                Suggestion(
                    term=text,
                    type=kind,
                    confidence=confidence,
                    subject_id=profile.subject_id,
                    is_verified=profile.is_verified,
                    follower_count=profile.follower_count,
                )
            )
        suggestions.sort(key=lambda s: (-s.confidence, -s.follower_count))
        return suggestions[:limit]

    def cache_stats(self):
        return self.cache.stats() if self.cache is not None else None

"""Content recommendations from matched clusters.

Pipeline:
    user_id → embedding + interests → matched clusters
            → active member assignments → factor breakdown → ranked content

Members are scored with :meth:`RankingEngine.score`, so recommendations and
people search share one scoring contract.
"""

import asyncio
import logging
import time

from ...config import ClusterMatchConfig
from ...models import (
    ClusterAssignment,
    ContentRecommendation,
    FactorBreakdown,
    RecommendationContext,
    RecommendationResponse,
    ScoredCluster,
    UserProfile,
)
from ..embeddings import magnitude
from ..metrics import MetricsSink, NullMetricsSink
from ..ranking import RankingEngine
from ..stores import ClusterStore
from .clusters import ClusterMatcher
from .embeddings import UserEmbeddingService

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class RecommendationEngine:
    def __init__(
        self,
        clusters: ClusterStore,
        user_embeddings: UserEmbeddingService,
        matcher: ClusterMatcher | None = None,
        ranking: RankingEngine | None = None,
        config: ClusterMatchConfig | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.clusters = clusters
        self.user_embeddings = user_embeddings
        self.config = config or ClusterMatchConfig()
        self.matcher = matcher or ClusterMatcher(self.config)
        self.ranking = ranking or RankingEngine()
        self.metrics = metrics or NullMetricsSink()

    async def profile_for(self, user_id: str) -> UserProfile:
        embedding = await self.user_embeddings.get(user_id)
        vector = embedding.vector if magnitude(embedding.vector) > 0 else None
        return UserProfile(
            user_id=user_id,
            embedding=vector,
            interests=embedding.metadata.interests,
        )

    async def recommend(
        self,
        user_id: str,
        limit: int = 20,
        exclude_ids=(),
        context: RecommendationContext | None = None,
    ) -> RecommendationResponse:
        start = time.perf_counter()
        excluded = set(exclude_ids)

        profile = await self.profile_for(user_id)
        clusters = await self.clusters.list_clusters()
        matched = self.matcher.match(profile, clusters, context)

        scored: list[ContentRecommendation] = []
        for match in matched:
            members = [m for m in sorted(match.cluster.member_ids) if m not in excluded]
            assignments = await self._active_assignments(match.cluster.id, members)
            cluster_scored = []
            for assignment in assignments:
                breakdown = self._breakdown(match, assignment)
                cluster_scored.append(
                    ContentRecommendation(
                        content_id=assignment.subject_id,
                        cluster_id=match.cluster.id,
                        score=self.ranking.score(breakdown),
                        rank=0,
                        factor_breakdown=breakdown,
                        reason=f"{match.reason}:{match.cluster.id}",
                    )
                )
            # Keep the best-scoring members of each cluster.
            cluster_scored.sort(key=lambda r: -r.score)
            scored.extend(cluster_scored[: self.config.members_per_cluster])

        scored.sort(key=lambda r: -r.score)
        seen: set[str] = set()
        recommendations: list[ContentRecommendation] = []
        for rec in scored:
            if rec.content_id in seen:
                continue
            seen.add(rec.content_id)
            recommendations.append(rec.model_copy(update={"rank": len(recommendations) + 1}))
            if len(recommendations) >= limit:
                break

        self.metrics.record_duration(
            "recommendation_duration", (time.perf_counter() - start) * 1000
        )
        logger.debug("Recommended %d items for %s from %d clusters",
                     len(recommendations), user_id, len(matched))
        return RecommendationResponse(
            recommendations=recommendations,
            clusters=[m.cluster.id for m in matched],
        )

    async def _active_assignments(
        self, cluster_id: str, members: list[str]
    ) -> list[ClusterAssignment]:
        """The active assignment of each member to ``cluster_id``, in member order.

        Lookups run concurrently, ``assignment_concurrency`` at a time.
        """
        step = self.config.assignment_concurrency
        found: list[ClusterAssignment] = []
        for i in range(0, len(members), step):
            chunk = members[i:i + step]
            results = await asyncio.gather(*[
                self.clusters.assignments_for(content_id) for content_id in chunk
            ])
            for content_id, assignments in zip(chunk, results):
                for a in assignments:
                    if a.cluster_id == cluster_id and a.is_active:
                        found.append(a.model_copy(update={"subject_id": content_id}))
                        break
        return found

    @staticmethod
    def _breakdown(match: ScoredCluster, assignment: ClusterAssignment) -> FactorBreakdown:
        return FactorBreakdown(
            relevance=_clamp(match.score * assignment.similarity),
            social=0.0,
            engagement=_clamp(assignment.engagement_score),
            proximity=0.5,
            verification=0.0,
            content=_clamp(assignment.relevance_score),
        )

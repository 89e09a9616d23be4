"""Matching a user profile against precomputed content clusters."""

import logging

from ...config import ClusterMatchConfig
from ...models import ContentCluster, RecommendationContext, ScoredCluster, UserProfile
from ..embeddings import cosine_similarity

logger = logging.getLogger(__name__)


def time_boost(hour: int) -> float:
    if 18 <= hour <= 22:
        return 1.0
    if 9 <= hour < 18:
        return 0.7
    return 0.4


def day_boost(day: int) -> float:
    """0 is Sunday, 6 is Saturday."""
    return 1.0 if day in (0, 6) else 0.8


def context_boost(context: RecommendationContext | None) -> float | None:
    """Mean of the available time and day boosts, or None without context."""
    if context is None:
        return None
    boosts = []
    if context.hour_of_day is not None:
        boosts.append(time_boost(context.hour_of_day))
    if context.day_of_week is not None:
        boosts.append(day_boost(context.day_of_week))
    if not boosts:
        return None
    return sum(boosts) / len(boosts)


def interest_overlap(interests: list[str], tags: list[str]) -> float:
    if not interests or not tags:
        return 0.0
    wanted = {i.lower() for i in interests}
    available = {t.lower() for t in tags}
    return len(wanted & available) / max(len(interests), len(tags))


class ClusterMatcher:
    """Scores clusters by a blend of embedding similarity, interest overlap
    and context, keeping the best ``max_clusters`` above the threshold.

    Signals that are absent (no embedding, no interests, no context) drop out
    of the blend and the remaining ratios are re-normalized.  With neither an
    embedding nor interests the user is cold: clusters are ranked by size and
    density instead and the threshold is not applied.
    """

    def __init__(self, config: ClusterMatchConfig | None = None):
        self.config = config or ClusterMatchConfig()

    def match(
        self,
        profile: UserProfile,
        clusters: list[ContentCluster],
        context: RecommendationContext | None = None,
    ) -> list[ScoredCluster]:
        if not clusters:
            return []
        if not profile.embedding and not profile.interests:
            return self.default_clusters(clusters, context)

        boost = context_boost(context)
        cfg = self.config
        scored: list[ScoredCluster] = []
        for cluster in clusters:
            similarity = 0.0
            overlap = interest_overlap(profile.interests, cluster.tags)
            terms: list[tuple[float, float]] = []
            if profile.embedding:
                similarity = cosine_similarity(profile.embedding, cluster.centroid)
                terms.append((cfg.embedding_weight, max(0.0, similarity)))
            if profile.interests:
                terms.append((cfg.interest_weight, overlap))
            if boost is not None:
                terms.append((cfg.context_weight, boost))

            total_weight = sum(w for w, _ in terms)
            score = sum(w * v for w, v in terms) / total_weight if total_weight else 0.0
            scored.append(
                ScoredCluster(
                    cluster=cluster,
                    score=score,
                    similarity=similarity,
                    interest_overlap=overlap,
                    context_boost=boost or 0.0,
                    reason="embedding" if profile.embedding else "profile",
                )
            )

        kept = [s for s in scored if s.score >= cfg.min_match_threshold]
        kept.sort(key=lambda s: -s.score)
        return kept[: cfg.max_clusters]

    def default_clusters(
        self,
        clusters: list[ContentCluster],
        context: RecommendationContext | None = None,
    ) -> list[ScoredCluster]:
        """Cold-start ranking: largest, then densest clusters first."""
        ordered = sorted(clusters, key=lambda c: (-c.size, -c.density, c.id))
        boost = context_boost(context)
        return [
            ScoredCluster(
                cluster=cluster,
                score=max(0.5 - idx * 0.05, 0.2),
                context_boost=boost or 0.0,
                reason="default",
            )
            for idx, cluster in enumerate(ordered[: self.config.max_clusters])
        ]

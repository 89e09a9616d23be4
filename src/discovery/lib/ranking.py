"""Multi-factor ranking of hydrated candidates.

Each candidate gets six factors in ``[0, 1]``:

* relevance    – how well username, display name and description match the term
* social       – relationship with the requester plus a follower-count bonus
* engagement   – engagement rate plus activity (content volume)
* proximity    – closeness relative to ``max_distance_km`` (0.5 when unknown)
* verification – verified badge plus reputation
* content      – content volume

The score is the weighted sum of the factors times 100, clamped to
``[0, 100]``.  The same :meth:`RankingEngine.score` contract is used by the
recommendation engine for cluster members.
"""

import logging
import math
import time
from typing import Callable

from pydantic import BaseModel

from ..config import ContextualMultipliers, RankingFactors, RankingThresholds, RankingWeights
from ..models import FactorBreakdown, HydratedCandidate, RankingResult, SearchCriteria
from .metrics import MetricsSink, NullMetricsSink

logger = logging.getLogger(__name__)

FACTOR_NAMES = ("relevance", "social", "engagement", "proximity", "verification", "content")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def match_strength(text: str | None, term: str) -> float:
    """1.0 exact, 0.8 prefix, 0.6 substring, 0 otherwise (case-insensitive)."""
    if not text or not term:
        return 0.0
    text = text.lower()
    if text == term:
        return 1.0
    if text.startswith(term):
        return 0.8
    if term in text:
        return 0.6
    return 0.0


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

class ScoreDistribution(BaseModel):
    excellent: int = 0
    good: int = 0
    average: int = 0
    poor: int = 0


class FactorAverage(BaseModel):
    factor: str
    average: float


class RankingReport(BaseModel):
    total_results: int
    high_quality_count: int
    influencer_count: int
    average_score: float
    score_distribution: ScoreDistribution
    top_factors: list[FactorAverage]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class RankingEngine:
    def __init__(
        self,
        weights: RankingWeights | None = None,
        factors: RankingFactors | None = None,
        thresholds: RankingThresholds | None = None,
        multipliers: ContextualMultipliers | None = None,
        max_distance_km: float = 100.0,
        metrics: MetricsSink | None = None,
    ):
        self.weights = weights or RankingWeights()
        self.factors = factors or RankingFactors()
        self.thresholds = thresholds or RankingThresholds()
        self.multipliers = multipliers or ContextualMultipliers()
        self.max_distance_km = max_distance_km
        self.metrics = metrics or NullMetricsSink()

    # -- factors ---------------------------------------------------------

    def factors_for(self, c: HydratedCandidate, criteria: SearchCriteria) -> FactorBreakdown:
        return FactorBreakdown(
            relevance=self._relevance(c, criteria.term),
            social=self._social(c),
            engagement=self._engagement(c),
            proximity=self._proximity(c),
            verification=self._verification(c),
            content=self._content(c),
        )

    def _relevance(self, c: HydratedCandidate, term: str) -> float:
        term = term.strip().lower()
        if not term:
            # Nothing to match against; retrieval weight stands in.
            return _clamp(c.weight)

        f = self.factors
        score = match_strength(c.username, term) * f.username_match
        score += match_strength(c.display_name, term) * f.name_match
        if c.description and term in c.description.lower():
            score += f.description_match * 0.4
        return _clamp(score)

    def _social(self, c: HydratedCandidate) -> float:
        f = self.factors
        score = 0.0
        if c.you_follow and c.follows_you:
            score += f.relationship_strength
        elif c.follows_you:
            score += f.relationship_strength * 0.7
        elif c.you_follow:
            score += f.relationship_strength * 0.5

        if c.is_blocked or c.you_blocked:
            return 0.0
        if c.is_muted:
            score *= 0.3

        followers = min(1.0, math.log10(c.follower_count + 1) / 5)
        score += followers * f.followers_count * 0.3
        return _clamp(score)

    def _engagement(self, c: HydratedCandidate) -> float:
        f = self.factors
        score = c.engagement_rate * f.engagement_rate
        activity = min(1.0, math.log10(c.content_count + 1) / 3)
        score += activity * f.activity_level
        if not c.is_active:
            score *= 0.1
        return _clamp(score)

    def _proximity(self, c: HydratedCandidate) -> float:
        if c.distance_km is None:
            return 0.5
        normalized = min(1.0, c.distance_km / self.max_distance_km)
        return _clamp((1 - normalized) * self.factors.distance)

    def _verification(self, c: HydratedCandidate) -> float:
        f = self.factors
        score = f.verification_status if c.is_verified else 0.0
        score += (c.reputation_score / 100) * f.verification_status * 0.5
        return _clamp(score)

    def _content(self, c: HydratedCandidate) -> float:
        return _clamp(min(1.0, math.log10(c.content_count + 1) / 4) * self.factors.content_count)

    def score(self, factors: FactorBreakdown) -> float:
        w = self.weights
        weighted = (
            factors.relevance * w.relevance
            + factors.social * w.social
            + factors.engagement * w.engagement
            + factors.proximity * w.proximity
            + factors.verification * w.verification
            + factors.content * w.content
        )
        return _clamp(weighted * 100, 0.0, 100.0)

    # -- ranking ---------------------------------------------------------

    def rank(
        self, candidates: list[HydratedCandidate], criteria: SearchCriteria
    ) -> list[RankingResult]:
        """Score, order and threshold ``candidates``.

        Ties keep the input (retrieval) order; ranks are 1..N without gaps.
        """
        start = time.perf_counter()

        scored = []
        for c in candidates:
            breakdown = self.factors_for(c, criteria)
            scored.append((c, self.score(breakdown), breakdown))
        # sorted() is stable, so equal scores keep retrieval order.
        scored.sort(key=lambda item: -item[1])

        scored = self._adjust(scored, criteria)
        scored = [item for item in scored if item[1] >= self.thresholds.min_score]

        results = [
            RankingResult(subject=c, score=s, factor_breakdown=b, rank=i)
            for i, (c, s, b) in enumerate(scored, start=1)
        ]
        self.metrics.record_duration("ranking_duration", (time.perf_counter() - start) * 1000)
        return results

    def _adjust(self, scored: list, criteria: SearchCriteria) -> list:
        m = self.multipliers
        adjust: Callable[[float, FactorBreakdown], float]
        keep: Callable[[HydratedCandidate], bool] = lambda c: True

        if criteria.search_type == "related":
            adjust = lambda s, b: s * (1 + b.social * m.related_social)
        elif criteria.search_type == "unknown":
            adjust = lambda s, b: s * (1 + (b.proximity + b.engagement) * m.unknown_proximity_engagement)
        elif criteria.search_type == "verified":
            keep = lambda c: c.is_verified
            adjust = lambda s, b: s * (1 + b.verification * m.verified_verification)
        elif criteria.search_type == "nearby":
            keep = lambda c: c.distance_km is not None
            adjust = lambda s, b: s * (1 + b.proximity * m.nearby_proximity)
        else:
            return scored

        adjusted = [(c, adjust(s, b), b) for c, s, b in scored if keep(c)]
        adjusted.sort(key=lambda item: -item[1])
        return adjusted

    # -- read-only views -------------------------------------------------

    def high_quality(self, results: list[RankingResult]) -> list[RankingResult]:
        t = self.thresholds
        return [
            r for r in results
            if r.score >= t.high_quality_threshold
            and r.subject.is_verified
            and r.subject.engagement_rate > t.high_quality_min_engagement
            and r.subject.follower_count > t.high_quality_min_followers
        ]

    def influencers(self, results: list[RankingResult]) -> list[RankingResult]:
        t = self.thresholds
        return [
            r for r in results
            if r.score >= t.influencer_threshold
            and r.subject.follower_count > t.influencer_min_followers
            and r.subject.engagement_rate > t.influencer_min_engagement
        ]

    def report(self, results: list[RankingResult]) -> RankingReport:
        total = len(results)
        distribution = ScoreDistribution(
            excellent=sum(1 for r in results if r.score > 80),
            good=sum(1 for r in results if 60 <= r.score <= 80),
            average=sum(1 for r in results if 40 <= r.score < 60),
            poor=sum(1 for r in results if r.score < 40),
        )
        averages = [
            FactorAverage(
                factor=name,
                average=(sum(getattr(r.factor_breakdown, name) for r in results) / total) if total else 0.0,
            )
            for name in FACTOR_NAMES
        ]
        averages.sort(key=lambda a: -a.average)
        return RankingReport(
            total_results=total,
            high_quality_count=len(self.high_quality(results)),
            influencer_count=len(self.influencers(results)),
            average_score=(sum(r.score for r in results) / total) if total else 0.0,
            score_distribution=distribution,
            top_factors=averages,
        )

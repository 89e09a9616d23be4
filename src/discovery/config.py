"""Service configuration.

All tunables are explicit, validated pydantic structs so that a bad weight
table or an inverted limit fails at startup instead of producing odd rankings.
Defaults mirror the values the service has been running with; a handful of
operational knobs can be overridden from the environment (see
:func:`load_settings`).
"""

import logging
import math
import os

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

class RankingWeights(BaseModel):
    """Relative weight of each ranking factor in the final score."""

    relevance: float = Field(0.4, ge=0, le=1)
    social: float = Field(0.25, ge=0, le=1)
    engagement: float = Field(0.2, ge=0, le=1)
    proximity: float = Field(0.1, ge=0, le=1)
    verification: float = Field(0.03, ge=0, le=1)
    content: float = Field(0.02, ge=0, le=1)

    @model_validator(mode="after")
    def _check_sum(self) -> "RankingWeights":
        total = (
            self.relevance + self.social + self.engagement
            + self.proximity + self.verification + self.content
        )
        if abs(total - 1.0) > 0.01:
            raise ValueError(f"ranking weights must sum to 1.0 (got {total:.3f})")
        return self


class RankingFactors(BaseModel):
    """Per-signal multipliers used inside the individual factors."""

    username_match: float = Field(0.4, ge=0, le=1)
    name_match: float = Field(0.3, ge=0, le=1)
    description_match: float = Field(0.2, ge=0, le=1)
    followers_count: float = Field(0.3, ge=0, le=1)
    engagement_rate: float = Field(0.4, ge=0, le=1)
    verification_status: float = Field(0.3, ge=0, le=1)
    content_count: float = Field(0.2, ge=0, le=1)
    distance: float = Field(0.3, ge=0, le=1)
    relationship_strength: float = Field(0.5, ge=0, le=1)
    activity_level: float = Field(0.2, ge=0, le=1)


class RankingThresholds(BaseModel):
    min_score: float = Field(0.0, ge=0, le=100)
    high_quality_threshold: float = Field(70.0, ge=0, le=100)
    influencer_threshold: float = Field(60.0, ge=0, le=100)
    high_quality_min_engagement: float = 0.05
    high_quality_min_followers: int = 100
    influencer_min_engagement: float = 0.03
    influencer_min_followers: int = 1000


class ContextualMultipliers(BaseModel):
    """Score multipliers applied per search type after the base ranking."""

    related_social: float = 0.3
    unknown_proximity_engagement: float = 0.2
    verified_verification: float = 0.5
    nearby_proximity: float = 0.6


# ---------------------------------------------------------------------------
# Retrieval and hydration
# ---------------------------------------------------------------------------

class CandidateRules(BaseModel):
    max_related: int = Field(100, ge=1)
    max_unknown: int = Field(100, ge=1)
    min_relation_weight: float = Field(0.0, ge=0)
    max_premium: int = Field(5, ge=0)
    max_results: int = Field(100, ge=1)
    max_candidates: int = Field(200, ge=1)
    related_cache_ttl: float = Field(10.0, gt=0)
    related_term_case_sensitive: bool = True
    # Share of the candidate set reserved for related candidates.
    mix_coefficient: float = Field(0.5, ge=0, le=1)


class HydrationConfig(BaseModel):
    batch_size: int = Field(10, ge=1)
    max_concurrent_batches: int = Field(3, ge=1)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class CacheConfig(BaseModel):
    max_size: int = Field(1000, ge=1)
    search_ttl: float = Field(300.0, gt=0)
    suggestion_ttl: float = Field(120.0, gt=0)
    sweep_interval: float = Field(60.0, gt=0)
    enabled: bool = True


# ---------------------------------------------------------------------------
# Embeddings and clusters
# ---------------------------------------------------------------------------

class InteractionWeights(BaseModel):
    """Weight of one interaction of each type in an embedding."""

    view: float = 0.1
    like: float = 0.3
    comment: float = 0.5
    share: float = 0.7
    save: float = 0.6
    default: float = 0.2

    def weight_for(self, interaction_type: str) -> float:
        if interaction_type in type(self).model_fields and interaction_type != "default":
            return getattr(self, interaction_type)
        return self.default


class EmbeddingParams(BaseModel):
    dimension: int = Field(128, ge=1)
    history_limit: int = Field(100, ge=1)
    history_window: float = Field(30 * 24 * 3600.0, gt=0)
    freshness_window: float = Field(24 * 3600.0, gt=0)
    decay_hours: float = Field(24.0, gt=0)
    learning_rate: float = Field(0.5, gt=0, le=1)
    max_interests: int = Field(10, ge=1)
    interaction_weights: InteractionWeights = Field(default_factory=InteractionWeights)


class ClusterMatchConfig(BaseModel):
    min_match_threshold: float = Field(0.2, ge=0, le=1)
    max_clusters: int = Field(3, ge=1)
    embedding_weight: float = Field(0.5, ge=0, le=1)
    interest_weight: float = Field(0.3, ge=0, le=1)
    context_weight: float = Field(0.2, ge=0, le=1)
    members_per_cluster: int = Field(50, ge=1)
    assignment_concurrency: int = Field(10, ge=1)

    @model_validator(mode="after")
    def _check_ratios(self) -> "ClusterMatchConfig":
        total = self.embedding_weight + self.interest_weight + self.context_weight
        if total <= 0:
            raise ValueError("cluster match ratios must not all be zero")
        if abs(total - 1.0) > 0.001:
            logger.warning("Cluster match ratios sum to %.3f; normalizing", total)
            self.embedding_weight /= total
            self.interest_weight /= total
            self.context_weight /= total
        return self


# ---------------------------------------------------------------------------
# Request handling
# ---------------------------------------------------------------------------

class SecurityConfig(BaseModel):
    min_term_length: int = Field(1, ge=1)
    max_term_length: int = Field(100, ge=1)
    max_suggestion_length: int = Field(50, ge=1)
    min_suggestion_length: int = Field(2, ge=1)
    suspicious_patterns: list[str] = Field(default_factory=lambda: [
        "<script", "</script>", "javascript:", "vbscript:", "data:",
        "onload", "onerror", "onclick", "onmouseover", "onfocus",
        "union select", "drop table", "insert into", "delete from", "--", ";--",
    ])
    rate_limit_per_user: int = Field(100, ge=1)
    rate_limit_per_ip: int = Field(1000, ge=1)
    rate_limit_window: float = Field(3600.0, gt=0)


class SearchConfig(BaseModel):
    default_limit: int = Field(20, ge=1)
    max_limit: int = Field(100, ge=1)
    timeout: float = Field(30.0, gt=0)
    max_distance_km: float = Field(100.0, gt=0)

    @model_validator(mode="after")
    def _check_limits(self) -> "SearchConfig":
        if self.max_limit > 1000:
            raise ValueError("max_limit cannot exceed 1000")
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit cannot exceed max_limit")
        return self


class Settings(BaseModel):
    elasticsearch_url: str = "http://localhost:9200"
    elasticsearch_api_key: str | None = None
    log_level: str = "INFO"

    search: SearchConfig = Field(default_factory=SearchConfig)
    weights: RankingWeights = Field(default_factory=RankingWeights)
    factors: RankingFactors = Field(default_factory=RankingFactors)
    thresholds: RankingThresholds = Field(default_factory=RankingThresholds)
    multipliers: ContextualMultipliers = Field(default_factory=ContextualMultipliers)
    candidates: CandidateRules = Field(default_factory=CandidateRules)
    hydration: HydrationConfig = Field(default_factory=HydrationConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    embedding: EmbeddingParams = Field(default_factory=EmbeddingParams)
    clusters: ClusterMatchConfig = Field(default_factory=ClusterMatchConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)


# Environment variable -> (section, field) overrides.
_ENV_OVERRIDES = {
    "SEARCH_TIMEOUT_SECONDS": ("search", "timeout"),
    "SEARCH_CACHE_TTL_SECONDS": ("cache", "search_ttl"),
    "SEARCH_CACHE_MAX_SIZE": ("cache", "max_size"),
    "SEARCH_CACHE_ENABLED": ("cache", "enabled"),
    "HYDRATION_BATCH_SIZE": ("hydration", "batch_size"),
    "HYDRATION_MAX_CONCURRENT_BATCHES": ("hydration", "max_concurrent_batches"),
    "EMBEDDING_DIMENSION": ("embedding", "dimension"),
}


def load_settings(environ=None) -> Settings:
    """Build :class:`Settings` from defaults plus environment overrides.

    Raises ``ValueError`` (pydantic's ``ValidationError`` included) when an
    override is not valid.
    """
    env = os.environ if environ is None else environ
    data: dict = {}
    if env.get("ELASTICSEARCH_URL"):
        data["elasticsearch_url"] = env["ELASTICSEARCH_URL"]
    if env.get("ELASTICSEARCH_API_KEY"):
        data["elasticsearch_api_key"] = env["ELASTICSEARCH_API_KEY"]
    if env.get("LOG_LEVEL"):
        data["log_level"] = env["LOG_LEVEL"].upper()

    for var, (section, field) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        data.setdefault(section, {})[field] = raw

    settings = Settings.model_validate(data)
    if not math.isfinite(settings.search.timeout):
        raise ValueError("SEARCH_TIMEOUT_SECONDS must be finite")
    return settings

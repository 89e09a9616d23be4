from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SearchType = Literal["all", "related", "unknown", "verified", "nearby"]
CandidateKind = Literal["related", "unknown"]
SearchContext = Literal["discovery", "follow_suggestions", "mention", "admin"]


# ---------------------------------------------------------------------------
# Retrieval and enrichment
# ---------------------------------------------------------------------------

class Coordinates(BaseModel):
    lat: float = Field(..., description="Latitude in degrees")
    lon: float = Field(..., description="Longitude in degrees")


class RelationEdge(BaseModel):
    """A weighted edge from the requesting user to another subject."""

    subject_id: str
    weight: float
    username: str | None = None
    is_premium: bool = False


class Candidate(BaseModel):
    """A raw retrieval result, not yet enriched."""

    subject_id: str = Field(..., description="Identifier of the candidate subject")
    weight: float = Field(0.0, description="Retrieval weight (edge weight for related candidates)")
    is_premium: bool = False
    username: str | None = Field(None, description="Username, when the source already knows it")
    source: CandidateKind | None = Field(None, description="Candidate source that produced it")


class Profile(BaseModel):
    """Profile record as returned by the profile store."""

    subject_id: str
    username: str
    display_name: str | None = None
    description: str | None = None
    is_verified: bool = False
    is_muted: bool = False
    is_blocked: bool = False
    is_active: bool = True
    is_premium: bool = False
    follower_count: int = 0
    content_count: int = 0
    engagement_rate: float = 0.0
    reputation_score: float = 0.0
    profile_picture_ref: str | None = None


class HydratedCandidate(BaseModel):
    """A candidate enriched with profile, stats and relationship flags."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    weight: float = 0.0
    is_premium: bool = False
    source: CandidateKind = "related"
    username: str
    display_name: str | None = None
    description: str | None = None
    is_verified: bool = False
    is_muted: bool = False
    is_blocked: bool = False
    is_active: bool = True
    follower_count: int = 0
    content_count: int = 0
    engagement_rate: float = 0.0
    reputation_score: float = 0.0
    you_follow: bool = False
    follows_you: bool = False
    you_blocked: bool = False
    blocked_you: bool = False
    distance_km: float | None = None
    profile_picture_ref: str | None = None


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

class SearchCriteria(BaseModel):
    """The parts of a request the ranking engine looks at."""

    term: str = ""
    search_type: SearchType = "all"


class FactorBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    relevance: float = 0.0
    social: float = 0.0
    engagement: float = 0.0
    proximity: float = 0.0
    verification: float = 0.0
    content: float = 0.0


class RankingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: HydratedCandidate
    score: float = Field(..., ge=0)
    factor_breakdown: FactorBreakdown
    rank: int = Field(..., ge=1)


# ---------------------------------------------------------------------------
# Search request / response
# ---------------------------------------------------------------------------

class SearchFilters(BaseModel):
    include_verified: bool = True
    include_unverified: bool = True
    include_blocked: bool = False
    include_muted: bool = False
    min_followers: int | None = Field(None, ge=0)
    max_followers: int | None = Field(None, ge=0)
    min_engagement_rate: float | None = Field(None, ge=0)
    max_engagement_rate: float | None = Field(None, ge=0)
    max_distance_km: float | None = Field(None, gt=0)
    exclude_user_ids: list[str] = Field(default_factory=list)


class Pagination(BaseModel):
    limit: int | None = Field(None, ge=1, description="Defaults to 20; capped at 100")
    offset: int = Field(0, ge=0)


class Sorting(BaseModel):
    field: Literal["relevance", "followers", "engagement", "distance"] = "relevance"
    direction: Literal["asc", "desc"] = "desc"


class SecurityContext(BaseModel):
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    roles: list[str] = Field(default_factory=list)


class SearchRequest(BaseModel):
    term: str = Field(..., description="Search term as typed by the user")
    searcher_user_id: str = Field(..., description="Identifier of the requesting user")
    search_type: SearchType = "all"
    filters: SearchFilters = Field(default_factory=SearchFilters)
    pagination: Pagination = Field(default_factory=Pagination)
    sorting: Sorting = Field(default_factory=Sorting)
    search_context: SearchContext = "discovery"
    security_context: SecurityContext | None = None


class PaginationInfo(BaseModel):
    total: int
    limit: int
    offset: int
    has_next: bool
    has_previous: bool


class SearchMetadata(BaseModel):
    query_id: str
    duration_ms: float
    cache_hit: bool
    search_type: SearchType = "all"


class SearchResponse(BaseModel):
    success: Literal[True] = True
    users: list[RankingResult]
    pagination: PaginationInfo
    search_metadata: SearchMetadata


class ErrorDetail(BaseModel):
    type: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: ErrorDetail
    query_id: str | None = None


class Suggestion(BaseModel):
    term: str
    type: Literal["username", "name"] = "username"
    confidence: float
    subject_id: str
    is_verified: bool = False
    follower_count: int = 0


class SuggestionResponse(BaseModel):
    success: Literal[True] = True
    suggestions: list[Suggestion]
    total_count: int
    cache_hit: bool


# ---------------------------------------------------------------------------
# Embeddings, clusters, recommendations
# ---------------------------------------------------------------------------

class Interaction(BaseModel):
    actor_id: str
    content_id: str
    type: str = Field(..., description="view, like, comment, share, save, ...")
    created_at: datetime
    topics: list[str] = Field(default_factory=list)


class EmbeddingMetadata(BaseModel):
    interests: list[str] = Field(default_factory=list)
    last_interaction_at: datetime | None = None
    total_interactions: int = 0


class Embedding(BaseModel):
    """A normalized vector describing a user's or a content item's interests."""

    owner_id: str
    kind: Literal["user", "content"] = "user"
    vector: list[float]
    dimension: int
    created_at: datetime
    updated_at: datetime
    metadata: EmbeddingMetadata = Field(default_factory=EmbeddingMetadata)


class ContentCluster(BaseModel):
    id: str
    centroid: list[float]
    member_ids: set[str] = Field(default_factory=set)
    size: int = 0
    density: float = 0.0
    avg_engagement: float = 0.0
    tags: list[str] = Field(default_factory=list)


class ClusterAssignment(BaseModel):
    subject_id: str
    cluster_id: str
    similarity: float = 0.0
    relevance_score: float = 0.0
    engagement_score: float = 0.0
    is_active: bool = True


class UserProfile(BaseModel):
    user_id: str
    embedding: list[float] | None = None
    interests: list[str] = Field(default_factory=list)


class RecommendationContext(BaseModel):
    hour_of_day: int | None = Field(None, ge=0, le=23)
    day_of_week: int | None = Field(None, ge=0, le=6, description="0 = Sunday")


class ScoredCluster(BaseModel):
    cluster: ContentCluster
    score: float
    similarity: float = 0.0
    interest_overlap: float = 0.0
    context_boost: float = 0.0
    reason: Literal["embedding", "profile", "default"] = "embedding"


class ContentRecommendation(BaseModel):
    content_id: str
    cluster_id: str
    score: float
    rank: int
    factor_breakdown: FactorBreakdown
    reason: str


class RecommendationRequest(BaseModel):
    user_id: str
    limit: int = Field(20, ge=1, le=100)
    exclude_ids: list[str] = Field(default_factory=list)
    context: RecommendationContext | None = None


class RecommendationResponse(BaseModel):
    success: Literal[True] = True
    recommendations: list[ContentRecommendation]
    clusters: list[str]

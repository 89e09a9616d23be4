"""Embeddings, cluster matching and content recommendations."""

from .clusters import ClusterMatcher
from .embeddings import ContentEmbeddingService, EmbeddingService, UserEmbeddingService
from .engine import RecommendationEngine

__all__ = [
    "ClusterMatcher",
    "ContentEmbeddingService",
    "EmbeddingService",
    "UserEmbeddingService",
    "RecommendationEngine",
]

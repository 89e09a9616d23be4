"""Store contracts and their Elasticsearch implementations."""

from .base import (
    ClusterStore,
    EmbeddingStore,
    InteractionStore,
    PopulationStore,
    ProfileStore,
    RelationStore,
)
from .elasticsearch import (
    EsClusterStore,
    EsEmbeddingStore,
    EsInteractionStore,
    EsPopulationStore,
    EsProfileStore,
    EsRelationStore,
)

__all__ = [
    "ClusterStore",
    "EmbeddingStore",
    "InteractionStore",
    "PopulationStore",
    "ProfileStore",
    "RelationStore",
    "EsClusterStore",
    "EsEmbeddingStore",
    "EsInteractionStore",
    "EsPopulationStore",
    "EsProfileStore",
    "EsRelationStore",
]

"""Elasticsearch-backed implementations of the store contracts.

Index layout (one document per record):

* ``relations``           ``user_id``, ``related_user_id``, ``weight``,
                          ``related_username``, ``related_is_premium``
* ``users``               ``user_id``, ``username``, ``name``, ``description``,
                          ``verified``, ``muted``, ``blocked``, ``deleted``,
                          ``active``, ``premium``, ``followers_count``,
                          ``content_count``, ``engagement_rate``,
                          ``reputation_score``, ``profile_picture``
* ``coordinates``         ``user_id``, ``latitude``, ``longitude``
* ``follows``             ``user_id``, ``followed_user_id``
* ``blocks``              ``user_id``, ``blocked_user_id``
* ``clusters``            ``cluster_id``, ``centroid``, ``member_ids``, ``size``,
                          ``density``, ``avg_engagement``, ``tags``
* ``cluster_assignments`` ``content_id``, ``cluster_id``, ``similarity``,
                          ``relevance_score``, ``engagement_score``, ``is_active``
* ``interactions``        ``user_id``, ``content_id``, ``type``, ``created_at``,
                          ``topics``
* ``*_embeddings``        ``owner_id``, ``kind``, ``vector`` (base64 float32),
                          ``dimension``, ``created_at``, ``updated_at``, ``metadata``
"""

import logging
from datetime import datetime
from typing import Any

from elastic_transport import TransportError
from elasticsearch import ApiError

from ...errors import StoreUnavailable
from ...models import (
    ClusterAssignment,
    ContentCluster,
    Coordinates,
    Embedding,
    Interaction,
    Profile,
    RelationEdge,
)
from ..elasticsearch import search_hits
from ..embeddings import decode_float32_b64, encode_float32_b64
from .base import (
    ClusterStore,
    EmbeddingStore,
    InteractionStore,
    PopulationStore,
    ProfileStore,
    RelationStore,
)

logger = logging.getLogger(__name__)

MAX_CLUSTERS = 1000


def _vector(value) -> list[float]:
    """Vectors may be stored as base64 float32 or as a plain float array."""
    if isinstance(value, str):
        return decode_float32_b64(value)
    return [float(v) for v in value or []]


class EsRelationStore(RelationStore):
    def __init__(self, es, index: str = "relations"):
        self.es = es
        self.index = index

    async def weighted_neighbors(
        self, user_id: str, min_weight: float, limit: int
    ) -> list[RelationEdge]:
        query = {
            "bool": {
                "filter": [
                    {"term": {"user_id": user_id}},
                    {"range": {"weight": {"gte": min_weight}}},
                ],
                "must_not": [{"term": {"related_user_id": user_id}}],
            }
        }
        hits = await search_hits(
            self.es,
            self.index,
            query=query,
            size=limit,
            sort=[{"weight": "desc"}],
            _source=["related_user_id", "weight", "related_username", "related_is_premium"],
        )
        edges: list[RelationEdge] = []
        for src in hits:
            subject_id = src.get("related_user_id")
            if subject_id is None:
                continue
            edges.append(
                RelationEdge(
                    subject_id=str(subject_id),
                    weight=float(src.get("weight") or 0.0),
                    username=src.get("related_username"),
                    is_premium=bool(src.get("related_is_premium", False)),
                )
            )
        return edges


class EsPopulationStore(PopulationStore):
    def __init__(self, es, index: str = "users"):
        self.es = es
        self.index = index

    async def sample(
        self, exclude_user_id: str, filters: dict[str, Any], limit: int
    ) -> list[str]:
        excluded = [exclude_user_id, *filters.get("exclude_ids", [])]
        query: dict = {
            "bool": {
                "must_not": [
                    {"terms": {"user_id": excluded}},
                    {"term": {"blocked": True}},
                    {"term": {"deleted": True}},
                ],
            }
        }
        term = (filters.get("term") or "").strip()
        if term:
            query["bool"]["must"] = {"match_phrase_prefix": {"username": term}}

        hits = await search_hits(
            self.es, self.index, query=query, size=limit, _source=["user_id"]
        )
        return [str(src["user_id"]) for src in hits if src.get("user_id") is not None]


class EsProfileStore(ProfileStore):
    def __init__(
        self,
        es,
        users_index: str = "users",
        coordinates_index: str = "coordinates",
        follows_index: str = "follows",
        blocks_index: str = "blocks",
    ):
        self.es = es
        self.users_index = users_index
        self.coordinates_index = coordinates_index
        self.follows_index = follows_index
        self.blocks_index = blocks_index

    async def get_profiles(self, ids: list[str]) -> list[Profile]:
        if not ids:
            return []
        hits = await search_hits(
            self.es,
            self.users_index,
            query={"terms": {"user_id": ids}},
            size=len(ids),
        )
        return [self._to_profile(src) for src in hits if src.get("user_id") is not None]

    @staticmethod
    def _to_profile(src: dict) -> Profile:
        return Profile(
            subject_id=str(src["user_id"]),
            username=src.get("username") or "",
            display_name=src.get("name"),
            description=src.get("description"),
            is_verified=bool(src.get("verified", False)),
            is_muted=bool(src.get("muted", False)),
            is_blocked=bool(src.get("blocked", False)),
            is_active=bool(src.get("active", True)),
            is_premium=bool(src.get("premium", False)),
            follower_count=int(src.get("followers_count") or 0),
            content_count=int(src.get("content_count") or 0),
            engagement_rate=float(src.get("engagement_rate") or 0.0),
            reputation_score=float(src.get("reputation_score") or 0.0),
            profile_picture_ref=src.get("profile_picture"),
        )

    async def get_coordinates(self, user_id: str) -> Coordinates | None:
        hits = await search_hits(
            self.es,
            self.coordinates_index,
            query={"term": {"user_id": user_id}},
            size=1,
            _source=["latitude", "longitude"],
        )
        if not hits:
            return None
        src = hits[0]
        if src.get("latitude") is None or src.get("longitude") is None:
            return None
        return Coordinates(lat=float(src["latitude"]), lon=float(src["longitude"]))

    async def _edge_exists(self, index: str, field: str, source_id: str, target_id: str) -> bool:
        query = {
            "bool": {
                "filter": [
                    {"term": {"user_id": source_id}},
                    {"term": {field: target_id}},
                ]
            }
        }
        hits = await search_hits(self.es, index, query=query, size=1, _source=["user_id"])
        return bool(hits)

    async def get_follow_status(self, follower_id: str, followed_id: str) -> bool:
        return await self._edge_exists(
            self.follows_index, "followed_user_id", follower_id, followed_id
        )

    async def get_block_status(self, blocker_id: str, blocked_id: str) -> bool:
        return await self._edge_exists(
            self.blocks_index, "blocked_user_id", blocker_id, blocked_id
        )


class EsClusterStore(ClusterStore):
    def __init__(
        self,
        es,
        clusters_index: str = "clusters",
        assignments_index: str = "cluster_assignments",
    ):
        self.es = es
        self.clusters_index = clusters_index
        self.assignments_index = assignments_index

    async def list_clusters(self) -> list[ContentCluster]:
        hits = await search_hits(
            self.es, self.clusters_index, query={"match_all": {}}, size=MAX_CLUSTERS
        )
        clusters: list[ContentCluster] = []
        for src in hits:
            if src.get("cluster_id") is None:
                continue
            members = {str(m) for m in src.get("member_ids") or []}
            clusters.append(
                ContentCluster(
                    id=str(src["cluster_id"]),
                    centroid=_vector(src.get("centroid")),
                    member_ids=members,
                    size=int(src.get("size") or len(members)),
                    density=float(src.get("density") or 0.0),
                    avg_engagement=float(src.get("avg_engagement") or 0.0),
                    tags=list(src.get("tags") or []),
                )
            )
        return clusters

    async def assignments_for(self, content_id: str) -> list[ClusterAssignment]:
        hits = await search_hits(
            self.es,
            self.assignments_index,
            query={"term": {"content_id": content_id}},
            size=100,
        )
        return [
            ClusterAssignment(
                subject_id=str(src.get("content_id", content_id)),
                cluster_id=str(src["cluster_id"]),
                similarity=float(src.get("similarity") or 0.0),
                relevance_score=float(src.get("relevance_score") or 0.0),
                engagement_score=float(src.get("engagement_score") or 0.0),
                is_active=bool(src.get("is_active", True)),
            )
            for src in hits
            if src.get("cluster_id") is not None
        ]


class EsInteractionStore(InteractionStore):
    def __init__(self, es, index: str = "interactions"):
        self.es = es
        self.index = index

    async def _recent(self, field: str, value: str, since: datetime, limit: int) -> list[Interaction]:
        query = {
            "bool": {
                "filter": [
                    {"term": {field: value}},
                    {"range": {"created_at": {"gte": since.isoformat()}}},
                ]
            }
        }
        hits = await search_hits(
            self.es,
            self.index,
            query=query,
            size=limit,
            sort=[{"created_at": "desc"}],
        )
        return [
            Interaction(
                actor_id=str(src["user_id"]),
                content_id=str(src["content_id"]),
                type=src.get("type") or "view",
                created_at=src["created_at"],
                topics=list(src.get("topics") or []),
            )
            for src in hits
            if src.get("user_id") is not None
            and src.get("content_id") is not None
            and src.get("created_at") is not None
        ]

    async def recent_by_user(self, user_id: str, since: datetime, limit: int) -> list[Interaction]:
        return await self._recent("user_id", user_id, since, limit)

    async def recent_by_content(
        self, content_id: str, since: datetime, limit: int
    ) -> list[Interaction]:
        return await self._recent("content_id", content_id, since, limit)


class EsEmbeddingStore(EmbeddingStore):
    def __init__(self, es, index: str = "user_embeddings"):
        self.es = es
        self.index = index

    async def get(self, owner_id: str) -> Embedding | None:
        hits = await search_hits(
            self.es, self.index, query={"term": {"owner_id": owner_id}}, size=1
        )
        if not hits:
            return None
        src = dict(hits[0])
        src["vector"] = _vector(src.get("vector"))
        return Embedding.model_validate(src)

    async def save(self, embedding: Embedding) -> Embedding:
        document = embedding.model_dump(mode="json")
        document["vector"] = encode_float32_b64(embedding.vector)
        try:
            await self.es.index(index=self.index, id=embedding.owner_id, document=document)
        except (ApiError, TransportError) as exc:
            logger.exception("Failed to store embedding for %s", embedding.owner_id)
            raise StoreUnavailable(
                "Elasticsearch request failed", {"index": self.index}
            ) from exc
        return embedding

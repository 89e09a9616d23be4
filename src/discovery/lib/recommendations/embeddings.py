"""User and content embeddings derived from interaction history.

An embedding is built from a small set of named features (weighted
interaction counts per type, average recency, and for content the topics it
carries), projected into a fixed-dimension vector with
:func:`~discovery.lib.embeddings.project_features` and L2-normalized.

Embeddings older than ``freshness_window`` are regenerated on read; new
interaction signals are blended in with an exponential moving average.
"""

import logging
import math
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal

from ...config import EmbeddingParams
from ...models import Embedding, EmbeddingMetadata, Interaction
from ..embeddings import blend, l2_normalize, project_features
from ..metrics import MetricsSink, NullMetricsSink
from ..stores import EmbeddingStore, InteractionStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


class EmbeddingService(ABC):
    """Shared generate / get / incremental-update logic.

    Subclasses decide which interactions make up the history and may add
    extra features on top of the interaction ones.
    """

    kind: Literal["user", "content"]

    def __init__(
        self,
        embeddings: EmbeddingStore,
        interactions: InteractionStore,
        params: EmbeddingParams | None = None,
        metrics: MetricsSink | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.embeddings = embeddings
        self.interactions = interactions
        self.params = params or EmbeddingParams()
        self.metrics = metrics or NullMetricsSink()
        self._clock = clock

    @abstractmethod
    async def _history(self, owner_id: str, since: datetime, limit: int) -> list[Interaction]:
        ...

    def _extra_features(self, history: list[Interaction]) -> dict[str, float]:
        return {}

    # -- features --------------------------------------------------------

    def features(self, history: list[Interaction], now: datetime) -> dict[str, float]:
        weights = self.params.interaction_weights
        counts = Counter(i.type for i in history)
        features = {
            f"interaction_{itype}": count * weights.weight_for(itype)
            for itype, count in counts.items()
        }
        if history:
            decay = self.params.decay_hours
            total = 0.0
            for i in history:
                hours = (now - _aware(i.created_at)).total_seconds() / 3600
                total += math.exp(-hours / decay)
            features["recency"] = total / len(history)
        features.update(self._extra_features(history))
        return features

    def interests(self, history: list[Interaction]) -> list[str]:
        """Most frequent topics, most frequent first (first seen wins ties)."""
        counts = Counter(topic for i in history for topic in i.topics)
        return [topic for topic, _ in counts.most_common(self.params.max_interests)]

    def vectorize(self, features: dict[str, float]) -> list[float]:
        return l2_normalize(project_features(features, self.params.dimension))

    # -- operations ------------------------------------------------------

    async def generate(self, owner_id: str) -> Embedding:
        now = self._clock()
        since = now - timedelta(seconds=self.params.history_window)
        history = await self._history(owner_id, since, self.params.history_limit)

        vector = self.vectorize(self.features(history, now))
        existing = await self.embeddings.get(owner_id)

        embedding = Embedding(
            owner_id=owner_id,
            kind=self.kind,
            vector=vector,
            dimension=self.params.dimension,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            metadata=EmbeddingMetadata(
                interests=self.interests(history),
                last_interaction_at=history[0].created_at if history else None,
                total_interactions=len(history),
            ),
        )
        saved = await self.embeddings.save(embedding)
        self.metrics.record_count("embedding_generated", 1)
        logger.debug("Generated %s embedding for %s from %d interactions",
                     self.kind, owner_id, len(history))
        return saved

    def is_stale(self, embedding: Embedding) -> bool:
        age = self._clock() - _aware(embedding.updated_at)
        return age.total_seconds() > self.params.freshness_window

    async def get(self, owner_id: str) -> Embedding:
        """Stored embedding, regenerated when missing or stale."""
        embedding = await self.embeddings.get(owner_id)
        if embedding is None or self.is_stale(embedding):
            return await self.generate(owner_id)
        return embedding

    async def update_incremental(self, owner_id: str, signal: list[float]) -> Embedding:
        """Blend ``signal`` into the stored vector.

        A missing or stale embedding is regenerated from history instead.
        """
        existing = await self.embeddings.get(owner_id)
        if existing is None or self.is_stale(existing):
            return await self.generate(owner_id)

        vector = l2_normalize(blend(existing.vector, signal, self.params.learning_rate))
        updated = existing.model_copy(update={"vector": vector, "updated_at": self._clock()})
        return await self.embeddings.save(updated)


class UserEmbeddingService(EmbeddingService):
    """Embeddings from the interactions a user made."""

    kind = "user"

    async def _history(self, owner_id: str, since: datetime, limit: int) -> list[Interaction]:
        return await self.interactions.recent_by_user(owner_id, since, limit)


class ContentEmbeddingService(EmbeddingService):
    """Embeddings from the interactions a content item received, plus its topics."""

    kind = "content"

    async def _history(self, owner_id: str, since: datetime, limit: int) -> list[Interaction]:
        return await self.interactions.recent_by_content(owner_id, since, limit)

    def _extra_features(self, history: list[Interaction]) -> dict[str, float]:
        topics = {topic for i in history for topic in i.topics}
        return {f"topic_{topic}": 1.0 for topic in sorted(topics)}

"""Tests for the user and content embedding services."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from ...config import EmbeddingParams
from ...models import Embedding, Interaction
from ..embeddings import magnitude
from .embeddings import ContentEmbeddingService, UserEmbeddingService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def interaction(kind, hours_ago=1.0, topics=(), actor="u", content="p"):
    return Interaction(
        actor_id=actor,
        content_id=content,
        type=kind,
        created_at=NOW - timedelta(hours=hours_ago),
        topics=list(topics),
    )


@pytest.fixture
def params():
    return EmbeddingParams(dimension=16)


@pytest.fixture
def users(embedding_store, interactions, params, metrics):
    return UserEmbeddingService(embedding_store, interactions, params, metrics, clock=lambda: NOW)


class TestFeatures:
    def test_weighted_counts_and_recency(self, users):
        history = [interaction("like", 0), interaction("like", 24), interaction("poke", 0)]
        features = users.features(history, NOW)

        assert features["interaction_like"] == pytest.approx(2 * 0.3)
        assert features["interaction_poke"] == pytest.approx(0.2)
        assert features["recency"] == pytest.approx((1 + math.exp(-1) + 1) / 3)

    def test_no_history_no_features(self, users):
        assert users.features([], NOW) == {}

    def test_interests_most_frequent_first(self, users):
        history = [
            interaction("view", topics=["music", "art"]),
            interaction("view", topics=["art"]),
            interaction("view", topics=["food"]),
        ]
        assert users.interests(history) == ["art", "music", "food"]


class TestUserEmbeddings:
    @pytest.mark.asyncio
    async def test_generate_is_normalized(self, users, interactions, embedding_store, metrics):
        interactions.by_user["u"] = [interaction("like", 1, ["music"]), interaction("share", 5)]

        embedding = await users.generate("u")

        assert embedding.dimension == 16
        assert len(embedding.vector) == 16
        assert magnitude(embedding.vector) == pytest.approx(1.0)
        assert embedding.kind == "user"
        assert embedding.metadata.interests == ["music"]
        assert embedding.metadata.total_interactions == 2
        assert embedding_store.items["u"] is embedding
        assert metrics.counts["embedding_generated"] == 1

    @pytest.mark.asyncio
    async def test_history_window_and_limit(self, users, interactions, params):
        await users.generate("u")

        _, user_id, since, limit = interactions.calls[0]
        assert user_id == "u"
        assert since == NOW - timedelta(days=30)
        assert limit == params.history_limit

    @pytest.mark.asyncio
    async def test_empty_history_gives_zero_vector(self, users):
        embedding = await users.generate("nobody")
        assert embedding.vector == [0.0] * 16
        assert embedding.metadata.last_interaction_at is None

    @pytest.mark.asyncio
    async def test_deterministic(self, users, interactions):
        interactions.by_user["u"] = [interaction("comment", 2)]
        first = await users.generate("u")
        second = await users.generate("u")
        assert first.vector == second.vector
        assert second.created_at == first.created_at

    @pytest.mark.asyncio
    async def test_get_returns_fresh_embedding(self, users, embedding_store, interactions):
        stored = Embedding(
            owner_id="u", vector=[1.0] + [0.0] * 15, dimension=16,
            created_at=NOW - timedelta(hours=2), updated_at=NOW - timedelta(hours=2),
        )
        embedding_store.items["u"] = stored

        assert await users.get("u") is stored
        assert interactions.calls == []

    @pytest.mark.asyncio
    async def test_get_regenerates_stale_embedding(self, users, embedding_store, interactions):
        embedding_store.items["u"] = Embedding(
            owner_id="u", vector=[1.0] + [0.0] * 15, dimension=16,
            created_at=NOW - timedelta(days=3), updated_at=NOW - timedelta(days=2),
        )
        interactions.by_user["u"] = [interaction("like")]

        embedding = await users.get("u")

        assert embedding.updated_at == NOW
        assert embedding.created_at == NOW - timedelta(days=3)
        assert len(interactions.calls) == 1

    @pytest.mark.asyncio
    async def test_incremental_update_blends(self, users, embedding_store):
        embedding_store.items["u"] = Embedding(
            owner_id="u", vector=[1.0] + [0.0] * 15, dimension=16,
            created_at=NOW, updated_at=NOW - timedelta(hours=1),
        )
        signal = [0.0, 1.0] + [0.0] * 14

        updated = await users.update_incremental("u", signal)

        assert updated.vector[0] == pytest.approx(math.sqrt(0.5))
        assert updated.vector[1] == pytest.approx(math.sqrt(0.5))
        assert magnitude(updated.vector) == pytest.approx(1.0)
        assert updated.updated_at == NOW

    @pytest.mark.asyncio
    async def test_incremental_update_regenerates_when_missing(self, users, interactions):
        interactions.by_user["u"] = [interaction("like")]
        updated = await users.update_incremental("u", [1.0] * 16)
        assert updated.metadata.total_interactions == 1
        assert len(interactions.calls) == 1


class TestContentEmbeddings:
    @pytest.mark.asyncio
    async def test_uses_received_interactions_and_topics(
        self, embedding_store, interactions, params
    ):
        service = ContentEmbeddingService(embedding_store, interactions, params, clock=lambda: NOW)
        interactions.by_content["p"] = [
            interaction("like", topics=["music"], actor="a"),
            interaction("view", topics=["music", "live"], actor="b"),
        ]

        embedding = await service.generate("p")

        assert interactions.calls[0][0] == "content"
        assert embedding.kind == "content"
        assert magnitude(embedding.vector) == pytest.approx(1.0)
        features = service.features(interactions.by_content["p"], NOW)
        assert features["topic_music"] == 1.0
        assert features["topic_live"] == 1.0

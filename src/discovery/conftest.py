"""Shared fakes for the discovery unit tests."""

from collections import defaultdict

import pytest

from .lib.metrics import MetricsSink
from .lib.stores import (
    ClusterStore,
    EmbeddingStore,
    InteractionStore,
    PopulationStore,
    ProfileStore,
    RelationStore,
)
from .models import Coordinates, Profile, RelationEdge


class RecordingMetrics(MetricsSink):
    def __init__(self):
        self.durations: dict[str, list[float]] = defaultdict(list)
        self.counts: dict[str, int] = defaultdict(int)
        self.errors: list[str] = []

    def record_duration(self, name, ms):
        self.durations[name].append(ms)

    def record_count(self, name, n=1):
        self.counts[name] += n

    def record_error(self, message):
        self.errors.append(message)


class FakeRelationStore(RelationStore):
    def __init__(self, edges: dict[str, list[RelationEdge]] | None = None):
        self.edges = edges or {}
        self.calls: list[tuple] = []

    async def weighted_neighbors(self, user_id, min_weight, limit):
        self.calls.append((user_id, min_weight, limit))
        edges = [e for e in self.edges.get(user_id, []) if e.weight >= min_weight]
        return sorted(edges, key=lambda e: -e.weight)[:limit]


class FakePopulationStore(PopulationStore):
    def __init__(self, ids: list[str] | None = None):
        self.ids = ids or []
        self.calls: list[tuple] = []

    async def sample(self, exclude_user_id, filters, limit):
        self.calls.append((exclude_user_id, filters, limit))
        excluded = {exclude_user_id, *filters.get("exclude_ids", [])}
        return [i for i in self.ids if i not in excluded][:limit]


class FakeProfileStore(ProfileStore):
    def __init__(self):
        self.profiles: dict[str, Profile] = {}
        self.coordinates: dict[str, Coordinates] = {}
        self.follows: set[tuple[str, str]] = set()
        self.blocks: set[tuple[str, str]] = set()
        self.profile_calls: list[list[str]] = []

    def add(self, subject_id: str, **fields) -> Profile:
        fields.setdefault("username", subject_id)
        profile = Profile(subject_id=subject_id, **fields)
        self.profiles[subject_id] = profile
        return profile

    async def get_profiles(self, ids):
        self.profile_calls.append(list(ids))
        return [self.profiles[i] for i in ids if i in self.profiles]

    async def get_coordinates(self, user_id):
        return self.coordinates.get(user_id)

    async def get_follow_status(self, follower_id, followed_id):
        return (follower_id, followed_id) in self.follows

    async def get_block_status(self, blocker_id, blocked_id):
        return (blocker_id, blocked_id) in self.blocks


class FakeClusterStore(ClusterStore):
    def __init__(self, clusters=None, assignments=None):
        self.clusters = clusters or []
        self.assignments = assignments or {}

    async def list_clusters(self):
        return list(self.clusters)

    async def assignments_for(self, content_id):
        return list(self.assignments.get(content_id, []))


class FakeInteractionStore(InteractionStore):
    def __init__(self, by_user=None, by_content=None):
        self.by_user = by_user or {}
        self.by_content = by_content or {}
        self.calls: list[tuple] = []

    async def recent_by_user(self, user_id, since, limit):
        self.calls.append(("user", user_id, since, limit))
        return [i for i in self.by_user.get(user_id, []) if i.created_at >= since][:limit]

    async def recent_by_content(self, content_id, since, limit):
        self.calls.append(("content", content_id, since, limit))
        return [i for i in self.by_content.get(content_id, []) if i.created_at >= since][:limit]


class FakeEmbeddingStore(EmbeddingStore):
    def __init__(self):
        self.items = {}
        self.saved = []

    async def get(self, owner_id):
        return self.items.get(owner_id)

    async def save(self, embedding):
        self.items[embedding.owner_id] = embedding
        self.saved.append(embedding)
        return embedding


@pytest.fixture
def metrics():
    return RecordingMetrics()


@pytest.fixture
def relations():
    return FakeRelationStore()


@pytest.fixture
def population():
    return FakePopulationStore()


@pytest.fixture
def profiles():
    return FakeProfileStore()


@pytest.fixture
def interactions():
    return FakeInteractionStore()


@pytest.fixture
def embedding_store():
    return FakeEmbeddingStore()


@pytest.fixture
def cluster_store():
    return FakeClusterStore()

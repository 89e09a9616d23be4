"""Collaborator contracts for the data the discovery core reads.

The core never talks to a database directly; it goes through these
interfaces.  :mod:`.elasticsearch` provides the production implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ...models import (
    ClusterAssignment,
    ContentCluster,
    Coordinates,
    Embedding,
    Interaction,
    Profile,
    RelationEdge,
)


class RelationStore(ABC):
    @abstractmethod
    async def weighted_neighbors(
        self, user_id: str, min_weight: float, limit: int
    ) -> list[RelationEdge]:
        """Subjects linked to ``user_id``, heaviest edge first."""
        ...


class PopulationStore(ABC):
    @abstractmethod
    async def sample(
        self, exclude_user_id: str, filters: dict[str, Any], limit: int
    ) -> list[str]:
        """Subject ids from the broad population, never ``exclude_user_id``.

        Recognised filters: ``term`` (username prefix) and ``exclude_ids``.
        """
        ...


class ProfileStore(ABC):
    @abstractmethod
    async def get_profiles(self, ids: list[str]) -> list[Profile]:
        """Profiles for the ids that exist; missing ids are simply absent."""
        ...

    @abstractmethod
    async def get_coordinates(self, user_id: str) -> Coordinates | None:
        ...

    @abstractmethod
    async def get_follow_status(self, follower_id: str, followed_id: str) -> bool:
        """True when ``follower_id`` follows ``followed_id``."""
        ...

    @abstractmethod
    async def get_block_status(self, blocker_id: str, blocked_id: str) -> bool:
        """True when ``blocker_id`` has blocked ``blocked_id``."""
        ...


class ClusterStore(ABC):
    @abstractmethod
    async def list_clusters(self) -> list[ContentCluster]:
        ...

    @abstractmethod
    async def assignments_for(self, content_id: str) -> list[ClusterAssignment]:
        ...


class InteractionStore(ABC):
    @abstractmethod
    async def recent_by_user(
        self, user_id: str, since: datetime, limit: int
    ) -> list[Interaction]:
        """Interactions made by ``user_id``, newest first."""
        ...

    @abstractmethod
    async def recent_by_content(
        self, content_id: str, since: datetime, limit: int
    ) -> list[Interaction]:
        """Interactions received by ``content_id``, newest first."""
        ...


class EmbeddingStore(ABC):
    @abstractmethod
    async def get(self, owner_id: str) -> Embedding | None:
        ...

    @abstractmethod
    async def save(self, embedding: Embedding) -> Embedding:
        ...

"""Candidate hydration.

Turns raw :class:`~discovery.models.Candidate` records into fully-attributed
:class:`~discovery.models.HydratedCandidate` records:

1. Partition candidates into batches of ``batch_size``.
2. Process batches in chunks of ``max_concurrent_batches``; a chunk starts
   only after the previous one has completed.  Groups hydrated together
   (related and unknown) share the chunks.
3. Per batch: one profile lookup for all ids, plus concurrent per-subject
   relationship lookups (and coordinates for unknown candidates).

Hydration is all-or-nothing.  A missing profile, missing requester
coordinates or a store failure aborts the call and cancels the batches still
in flight; no partial list is returned.
"""

import asyncio
import logging
import time

from ..config import HydrationConfig
from ..errors import DataConsistencyError
from ..models import Candidate, CandidateKind, Coordinates, HydratedCandidate, Profile
from .distance import haversine_km, is_valid_coordinate
from .metrics import MetricsSink, NullMetricsSink
from .stores import ProfileStore

logger = logging.getLogger(__name__)


def _chunks(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


async def gather_or_cancel(aws) -> list:
    """Like ``asyncio.gather``, but cancels the rest once one awaitable fails."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


class HydrationService:
    def __init__(
        self,
        profiles: ProfileStore,
        config: HydrationConfig | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.profiles = profiles
        self.config = config or HydrationConfig()
        self.metrics = metrics or NullMetricsSink()

    def plan_batches(self, n: int) -> list[list[int]]:
        """Batch sizes grouped by concurrency chunk.

        >>> HydrationService(None).plan_batches(25)
        [[10, 10, 5]]
        """
        sizes = [len(b) for b in _chunks(list(range(n)), self.config.batch_size)]
        return _chunks(sizes, self.config.max_concurrent_batches)

    async def hydrate(
        self,
        requester_id: str,
        candidates: list[Candidate],
        kind: CandidateKind,
    ) -> list[HydratedCandidate]:
        hydrated = await self.hydrate_groups(requester_id, {kind: candidates})
        return hydrated[kind]

    async def hydrate_groups(
        self,
        requester_id: str,
        groups: dict[CandidateKind, list[Candidate]],
    ) -> dict[CandidateKind, list[HydratedCandidate]]:
        """Hydrate several candidate groups under one concurrency budget.

        Batches never mix groups, but batches of every group share the
        ``max_concurrent_batches`` chunks.
        """
        hydrated: dict[CandidateKind, list[HydratedCandidate]] = {kind: [] for kind in groups}
        work = [
            (kind, batch)
            for kind, candidates in groups.items()
            for batch in _chunks(candidates, self.config.batch_size)
        ]
        if not work:
            return hydrated

        start = time.perf_counter()
        try:
            origin = None
            if groups.get("unknown"):
                origin = await self.profiles.get_coordinates(requester_id)
                if not is_valid_coordinate(origin):
                    raise DataConsistencyError(
                        "Requester has no location data",
                        {"user_id": requester_id},
                    )

            for chunk in _chunks(work, self.config.max_concurrent_batches):
                results = await gather_or_cancel([
                    self._hydrate_batch(requester_id, batch, kind, origin)
                    for kind, batch in chunk
                ])
                for (kind, _), batch_result in zip(chunk, results):
                    hydrated[kind].extend(batch_result)
        except Exception as exc:
            self.metrics.record_error(f"hydration failed: {exc}")
            logger.warning("Hydration of %d %s candidates for %s failed: %s",
                           sum(len(c) for c in groups.values()), "/".join(groups),
                           requester_id, exc)
            raise

        self.metrics.record_duration("hydration_duration", (time.perf_counter() - start) * 1000)
        self.metrics.record_count("hydration_batches", len(work))
        return hydrated

    async def _hydrate_batch(
        self,
        requester_id: str,
        batch: list[Candidate],
        kind: CandidateKind,
        origin: Coordinates | None,
    ) -> list[HydratedCandidate]:
        ids = [c.subject_id for c in batch]
        profiles = {p.subject_id: p for p in await self.profiles.get_profiles(ids)}

        missing = [i for i in ids if i not in profiles]
        if missing:
            raise DataConsistencyError(
                "Candidate not found in profile store",
                {"subject_ids": missing},
            )

        return await gather_or_cancel([
            self._hydrate_one(requester_id, c, profiles[c.subject_id], kind, origin)
            for c in batch
        ])

    async def _hydrate_one(
        self,
        requester_id: str,
        candidate: Candidate,
        profile: Profile,
        kind: CandidateKind,
        origin: Coordinates | None,
    ) -> HydratedCandidate:
        lookups = [
            self.profiles.get_follow_status(requester_id, candidate.subject_id),
            self.profiles.get_follow_status(candidate.subject_id, requester_id),
            self.profiles.get_block_status(requester_id, candidate.subject_id),
            self.profiles.get_block_status(candidate.subject_id, requester_id),
        ]
        if kind == "unknown":
            lookups.append(self.profiles.get_coordinates(candidate.subject_id))

        you_follow, follows_you, you_blocked, blocked_you, *rest = await gather_or_cancel(lookups)

        distance_km = None
        if origin is not None and rest and is_valid_coordinate(rest[0]):
            distance_km = haversine_km(origin, rest[0])

        return HydratedCandidate(
            subject_id=candidate.subject_id,
            weight=candidate.weight,
            is_premium=candidate.is_premium or profile.is_premium,
            source=kind,
            username=profile.username,
            display_name=profile.display_name,
            description=profile.description,
            is_verified=profile.is_verified,
            is_muted=profile.is_muted,
            is_blocked=profile.is_blocked,
            is_active=profile.is_active,
            follower_count=profile.follower_count,
            content_count=profile.content_count,
            engagement_rate=profile.engagement_rate,
            reputation_score=profile.reputation_score,
            you_follow=bool(you_follow),
            follows_you=bool(follows_you),
            you_blocked=bool(you_blocked),
            blocked_you=bool(blocked_you),
            distance_km=distance_km,
            profile_picture_ref=profile.profile_picture_ref,
        )

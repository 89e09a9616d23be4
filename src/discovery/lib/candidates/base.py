"""Base abstraction for candidate sources.

Each source has a unique name and an async ``find`` method that returns a
bounded list of raw :class:`~discovery.models.Candidate` records.  Sources
are independent strategies: they share no state and are composed by the
search orchestrator, which owns their collaborators (stores, caches, metrics).
"""

import math
from abc import ABC, abstractmethod

from ...models import Candidate


class CandidateSource(ABC):
    """Abstract base class for named candidate sources.

    Subclasses must implement ``name`` (property) and ``find``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name identifying this source (e.g. ``related``)."""
        ...

    @abstractmethod
    async def find(
        self,
        user_id: str,
        limit: int,
        *,
        term: str = "",
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[Candidate]:
        """Produce candidates for the given user.

        Parameters
        ----------
        user_id:
            Identifier of the requesting user.  Never part of the result.
        limit:
            Maximum number of candidates to return.
        term:
            The search term, for sources that filter on it.
        exclude_ids:
            Subjects that must not be returned.

        Returns
        -------
        list[Candidate]
        """
        ...


def dedup_candidates(candidates: list[Candidate]) -> list[Candidate]:
    """Remove duplicate subjects, keeping the first occurrence."""
    seen: set[str] = set()
    deduped: list[Candidate] = []
    for c in candidates:
        if c.subject_id in seen:
            continue
        seen.add(c.subject_id)
        deduped.append(c)
    return deduped


def allocate_counts(weights: list[float], total: int) -> list[int]:
    """Distribute *total* slots across *weights* proportionally.

    Uses largest-remainder allocation, so the counts always sum to *total*.
    """
    weight_sum = sum(weights)
    if weight_sum <= 0:
        return [0] * len(weights)
    raw = [(w / weight_sum) * total for w in weights]
    floors = [math.floor(r) for r in raw]
    remainders = [r - f for r, f in zip(raw, floors)]
    leftover = total - sum(floors)
    for idx in sorted(range(len(weights)), key=lambda i: -remainders[i]):
        if leftover <= 0:
            break
        floors[idx] += 1
        leftover -= 1
    return floors


def mix_candidates(
    related: list[Candidate],
    unknown: list[Candidate],
    coefficient: float,
    cap: int,
) -> list[Candidate]:
    """Combine related and unknown candidates into at most *cap* subjects.

    Related wins duplicates.  ``coefficient`` is the share of the slots
    reserved for related; slots one side cannot fill go to the other.
    Related candidates come first in the result.
    """
    related = dedup_candidates(related)
    seen = {c.subject_id for c in related}
    unknown = dedup_candidates([c for c in unknown if c.subject_id not in seen])

    total = min(cap, len(related) + len(unknown))
    n_related, n_unknown = allocate_counts([coefficient, 1 - coefficient], total)
    if n_related > len(related):
        n_unknown += n_related - len(related)
        n_related = len(related)
    elif n_unknown > len(unknown):
        n_related += n_unknown - len(unknown)
        n_unknown = len(unknown)
    return related[:n_related] + unknown[:n_unknown]

"""Candidate retrieval for people search.

Provides a small :class:`CandidateSource` interface with two independent
strategies, composed by the search orchestrator.
"""

from .base import CandidateSource, allocate_counts, dedup_candidates, mix_candidates
from .related import RelatedCandidateSource
from .unknown import UnknownCandidateSource

__all__ = [
    "CandidateSource",
    "allocate_counts",
    "dedup_candidates",
    "mix_candidates",
    "RelatedCandidateSource",
    "UnknownCandidateSource",
]

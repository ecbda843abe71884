"""Error taxonomy for the evidence scoring engine."""
from __future__ import annotations


class PlancheckError(Exception):
    """Base class for all plancheck errors."""


class CollectionError(PlancheckError):
    """A location in the repository index could not be read.

    Collectors catch this per file, record it on the candidate's evidence and
    keep going with whatever else they found.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class InvalidCandidateError(PlancheckError):
    """A candidate is missing the fields that make up its identity."""

    def __init__(self, candidate_ref: str, reason: str):
        self.candidate_ref = candidate_ref
        self.reason = reason
        super().__init__(f"Invalid candidate {candidate_ref}: {reason}")


class ConfigurationError(PlancheckError):
    """Weights, thresholds or heuristic tables are unusable."""


def as_collection_error(path: str, exc: Exception) -> CollectionError:
    """Normalize a read failure from any index implementation."""
    if isinstance(exc, CollectionError):
        return exc
    if isinstance(exc, UnicodeDecodeError):
        return CollectionError(path, "cannot decode as UTF-8")
    reason = getattr(exc, "strerror", None) or str(exc) or type(exc).__name__
    return CollectionError(path, reason)

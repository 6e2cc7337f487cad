"""Exception types shared across the discovery pipeline."""

from __future__ import annotations


class OpportunityScoutError(Exception):
    """Base class for all pipeline errors."""


class StoreError(OpportunityScoutError):
    """A store operation failed."""


class StoreUnavailableError(StoreError):
    """The store could not be read or written at all.

    Distinct from "no such fingerprint", which is a normal outcome of
    `find_by_fingerprint()` and is reported as `None`.
    """


class DuplicateFingerprintError(StoreError):
    """Insert rejected because a row with this fingerprint already exists."""

    def __init__(self, fingerprint: str):
        super().__init__(f"Opportunity already exists: {fingerprint}")
        self.fingerprint = fingerprint


class RateLimitedError(OpportunityScoutError):
    """A source API answered with a rate-limit response."""

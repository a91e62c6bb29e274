"""
Error taxonomy for match processing.

Callers can rely on these types to decide what to do next:

- ValidationError: the input is malformed; fix it, never retry as-is
- NotFoundError: a referenced player does not exist
- ConflictError: the match id was already processed; carries the prior result
- ConcurrencyError: lock contention or a stale write; safe to retry with backoff
"""

from __future__ import annotations

from typing import Any


class GameRankError(Exception):
    """Base class for all errors raised by the processing core."""


class ValidationError(GameRankError):
    """Match or rating input is malformed or self-contradictory."""


class NotFoundError(GameRankError):
    """A referenced player (or other record) does not exist."""


class ConflictError(GameRankError):
    """A match id has already been processed."""

    def __init__(self, message: str, prior_result: Any | None = None):
        super().__init__(message)
        self.prior_result = prior_result


class ConcurrencyError(GameRankError):
    """A player row could not be locked, or was modified concurrently."""

"""Typed failures raised by the tracking services."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all expected failures."""


class NotFoundError(TrackerError):
    """A referenced item, order, card, component or material does not exist."""


class InvalidStateError(TrackerError):
    """The operation is not permitted in the record's current lifecycle state."""


class ValidationError(TrackerError, ValueError):
    """Malformed input such as a negative quantity or a past due date."""


class ConflictError(TrackerError):
    """The write would violate a uniqueness rule, e.g. a duplicate SKU."""


__all__ = [
    "TrackerError",
    "NotFoundError",
    "InvalidStateError",
    "ValidationError",
    "ConflictError",
]

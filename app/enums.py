"""Shared enums for the pastebin services.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "ErrorKind", "SweeperState"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_str(cls, value: str) -> "HealthStatus":
        """Safely parse from string, falling back to UNHEALTHY for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNHEALTHY


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class ErrorKind(StrEnum):
    """Outcome kinds carried by PasteError across layers."""

    ALLOCATION_UNAVAILABLE = "allocation_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    PARTIAL_DELETE_FAILURE = "partial_delete_failure"


class SweeperState(StrEnum):
    """Lifecycle states of the expiry sweeper loop."""

    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    STOPPED = "stopped"

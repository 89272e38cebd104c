"""
Error hierarchy shared by the prediction client, the proxy and storage.

Every error carries a human readable message plus an optional ``details``
payload (upstream status, upstream body, ...) so that the API layer can turn
it into a JSON body without knowing where it came from.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BgCompareError(Exception):
    """Root exception for the service. Never raised directly."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:  # pragma: no cover - formatting
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class CreationError(BgCompareError):
    """A prediction could not be started (bad key, quota, malformed input)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message, details={"status": status_code, "body": body})
        self.status_code = status_code
        self.body = body


class PollError(BgCompareError):
    """A status check request failed at the transport or HTTP level."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message, details={"status": status_code, "body": body})
        self.status_code = status_code
        self.body = body


class PollTimeout(BgCompareError):
    """Polling gave up after the configured attempt count or deadline."""


class PollCancelled(BgCompareError):
    """Polling stopped because the caller set the cancellation token."""


class JobFailed(BgCompareError):
    """The upstream model reported the job as failed."""


class ProxyError(BgCompareError):
    """Transport failure while forwarding a request upstream."""


class StorageError(BgCompareError):
    """The persistence layer could not be read or written."""


__all__ = [
    "BgCompareError",
    "CreationError",
    "PollError",
    "PollTimeout",
    "PollCancelled",
    "JobFailed",
    "ProxyError",
    "StorageError",
]

"""
exceptions.py – Error types raised by the synchronisation engine.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for every error raised by inventory_sync."""


class ValidationError(SyncError):
    """The record has no usable natural key (``ordencompra``)."""


class ResolutionError(SyncError):
    """A required taxonomy term (make or model) could not be resolved."""


class RequestError(SyncError):
    """A remote API call failed.

    Carries the endpoint, the HTTP status (``None`` for transport failures)
    and the raw response body.
    """

    def __init__(self, endpoint: str, status: Optional[int], body: str = "", message: str = ""):
        self.endpoint = endpoint
        self.status = status
        self.body = body
        if not message:
            message = f"Request to {endpoint} failed"
            if status is not None:
                message += f" with HTTP {status}"
            if body:
                message += f": {body[:500]}"
        super().__init__(message)


class AuthenticationError(RequestError):
    """No JWT token could be obtained from the auth endpoint."""


class MediaError(SyncError):
    """An image could not be downloaded, optimised or uploaded."""


class RunError(SyncError):
    """An unexpected failure aborted a whole batch run."""

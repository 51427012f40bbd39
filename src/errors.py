"""
Exception types shared by the upstream clients and the coalescing cache.

``UpstreamError`` covers every failed fetch (network, non-2xx, malformed
JSON, RPC error objects).  ``FetchTimeoutError`` is raised when a fetch runs
past its allotted time; for caching purposes it behaves like any other
upstream failure.
"""

from typing import Any, Optional


class UpstreamError(Exception):
    """An upstream API or RPC call failed."""

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code

    def to_dict(self) -> dict:
        """JSON-safe error body (``{"error": ..., "details": ...}``)."""
        return {"error": self.message, "details": self.details}


class RpcError(UpstreamError):
    """The RPC backend answered with an error object."""


class FetchTimeoutError(UpstreamError, TimeoutError):
    """A fetch did not settle within its time limit."""

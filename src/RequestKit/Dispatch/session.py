"""Session manager contract consumed by the dispatch facade.

The facade prepares canonical requests and hands them over; everything from
sockets to task lifecycle belongs to the implementation behind this protocol.
:class:`RequestKit.Dispatch.net.HttpxSessionManager` is the bundled one.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from .download import DestinationDecision, ResumeToken
from .models import CanonicalRequest, RequestBody

__all__ = ["OperationHandle", "SessionManager"]


@runtime_checkable
class OperationHandle(Protocol):
    """Opaque handle for one in-flight operation."""

    def result(self, timeout: Optional[float] = None) -> Any:
        """Block until the operation finishes; return its result or raise."""
        ...

    def done(self) -> bool:
        ...

    def cancel(self) -> bool:
        ...


@runtime_checkable
class SessionManager(Protocol):
    """Owner of network I/O. Dispatch calls return without blocking on the network."""

    def dispatch(self, request: CanonicalRequest) -> OperationHandle:
        ...

    def dispatch_upload(self, request: CanonicalRequest, body: RequestBody) -> OperationHandle:
        ...

    def dispatch_download(
        self, request: CanonicalRequest, destination: DestinationDecision
    ) -> OperationHandle:
        ...

    def dispatch_resume(
        self, token: ResumeToken, destination: DestinationDecision
    ) -> OperationHandle:
        ...

# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch.errors",
#   "purpose": "Exception hierarchy shared across request building, encoding, and dispatch",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "construction", "name": "Construction Errors", "anchor": "CON", "kind": "api"},
#     {"id": "dispatch", "name": "Dispatch Errors", "anchor": "DIS", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across request building, encoding, and dispatch.

Failures are grouped by the phase that produces them:

- construction (:class:`InvalidAddress`, :class:`EncodingError`) fails the call
  synchronously and never yields a partial request,
- multipart encoding (:class:`MultipartEncodingError`) is only ever delivered
  through the encoding completion channel,
- dispatch (:class:`DispatchError` and subclasses) originates in the session
  manager and is forwarded untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .download import ResumeToken

__all__ = [
    "RequestKitError",
    "ConfigurationError",
    "InvalidAddress",
    "EncodingError",
    "MultipartEncodingError",
    "DispatchError",
    "DownloadFailure",
    "OperationCancelled",
]


class RequestKitError(RuntimeError):
    """Base exception for request construction, encoding, or dispatch failures."""


class ConfigurationError(RequestKitError):
    """Raised when configuration files or overrides are invalid."""


class InvalidAddress(RequestKitError):
    """Raised when a resource locator cannot resolve to an absolute URI."""

    def __init__(self, message: str, *, address: Optional[str] = None) -> None:
        super().__init__(message)
        self.address = address


class EncodingError(RequestKitError):
    """Raised when parameters cannot be serialized into a request."""

    def __init__(self, message: str, *, encoding: Optional[str] = None) -> None:
        super().__init__(message)
        self.encoding = encoding


class MultipartEncodingError(RequestKitError):
    """Raised inside the multipart coordinator when a part or the disk write fails."""

    def __init__(self, message: str, *, part_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.part_name = part_name


class DispatchError(RequestKitError):
    """Raised when the session manager fails to dispatch or complete an operation."""


class DownloadFailure(DispatchError):
    """Raised when a download attempt or its destination move fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class OperationCancelled(DispatchError):
    """Raised from an operation handle that was cancelled before completion."""

    def __init__(self, message: str, *, resume_token: Optional["ResumeToken"] = None) -> None:
        super().__init__(message)
        self.resume_token = resume_token

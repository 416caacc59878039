"""
Canonical Request Types for the Dispatch Facade

Provides the single mutable request object every entry point normalizes into,
plus the explicit body variants an upload can carry.

Data Flow:
  ResourceLocator → build_request() → CanonicalRequest
  CanonicalRequest → encode() → CanonicalRequest (copy, parameters embedded)
  CanonicalRequest → SessionManager.dispatch*() → OperationHandle

Design Principles:
  - Method is an explicit enum value, never inferred
  - Headers are an ``httpx.Headers`` map (case-insensitive, last write wins)
  - Body variants are constructed explicitly (bytes, file, or stream)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Mapping, Optional, Protocol, Union, runtime_checkable

import httpx

from .locators import absolute_address

__all__ = [
    "HTTPMethod",
    "DataBody",
    "FileBody",
    "StreamBody",
    "RequestBody",
    "CanonicalRequest",
    "RequestConvertible",
]


class HTTPMethod(str, enum.Enum):
    """Standard HTTP verbs."""

    OPTIONS = "OPTIONS"
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    TRACE = "TRACE"
    CONNECT = "CONNECT"

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Body variants
# ============================================================================


@dataclass(frozen=True)
class DataBody:
    """In-memory request body."""

    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FileBody:
    """Request body read from a file on disk."""

    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    @property
    def length(self) -> int:
        return self.path.stat().st_size


@dataclass(frozen=True)
class StreamBody:
    """Request body read from a binary stream.

    ``length`` is attached when known so the session manager can send a
    ``Content-Length`` instead of chunked transfer encoding.
    """

    stream: BinaryIO
    length: Optional[int] = None


RequestBody = Union[DataBody, FileBody, StreamBody]


# ============================================================================
# Canonical request
# ============================================================================


@dataclass
class CanonicalRequest:
    """Method + absolute URL + header map (+ optional body).

    Mutable. The builder owns it until it is handed to the session manager,
    which takes ownership for dispatch.
    """

    method: HTTPMethod
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Optional[RequestBody] = None

    def __post_init__(self) -> None:
        self.method = HTTPMethod(self.method)
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)

    def resolve_address(self) -> str:
        """Return this request's absolute address."""
        return absolute_address(self.url)

    def as_canonical_request(self) -> "CanonicalRequest":
        """Return an independent mutable copy of this request."""
        return self.copy()

    def copy(self) -> "CanonicalRequest":
        return CanonicalRequest(
            method=self.method,
            url=self.url,
            headers=self.headers.copy(),
            body=self.body,
        )

    def set_headers(self, headers: Optional[Mapping[str, str]]) -> None:
        """Overwrite headers by name (case-insensitive)."""
        if not headers:
            return
        for name, value in headers.items():
            self.headers[name] = value

    def set_default_header(self, name: str, value: str) -> None:
        """Set ``name`` only if no header of that name is present."""
        if name not in self.headers:
            self.headers[name] = value

    @property
    def content(self) -> Optional[bytes]:
        """In-memory body bytes, or ``None`` for absent or streamed bodies."""
        if isinstance(self.body, DataBody):
            return self.body.data
        return None


@runtime_checkable
class RequestConvertible(Protocol):
    """Anything that already is, or can produce, a canonical request."""

    def as_canonical_request(self) -> CanonicalRequest:
        """Return an independent mutable request."""
        ...

# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch.api",
#   "purpose": "Public request, upload, and download entry points",
#   "sections": [
#     {"id": "options", "name": "Operation Options", "anchor": "OPT", "kind": "api"},
#     {"id": "dispatcher", "name": "Dispatcher", "anchor": "class-dispatcher", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Public request, upload, and download entry points.

:class:`Dispatcher` wires locators, the request builder, the parameter encoder,
and the multipart coordinator into calls against an explicitly supplied
session manager. Every family comes in two shapes:

- ``(method, locator, ..., options)`` builds a canonical request first,
- ``send*`` accepts anything :class:`RequestConvertible` and works on a copy.

Construction failures (:class:`InvalidAddress`, :class:`EncodingError`) raise
immediately. Multipart outcomes arrive through a future and an optional
completion callback. Session manager failures surface as
:class:`DispatchError`.
"""

from __future__ import annotations

import logging
from concurrent import futures
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Mapping, Optional, Union

from ..concurrency import create_executor
from .builder import build_request
from .config.models import RequestKitConfig
from .download import DestinationDecision, ResumeContinuation, ResumeToken
from .encoding import ParameterEncoding, Parameters, encode
from .errors import DispatchError, RequestKitError
from .locators import ResourceLocator
from .logging_config import mask_sensitive_data
from .models import (
    CanonicalRequest,
    DataBody,
    FileBody,
    HTTPMethod,
    RequestBody,
    RequestConvertible,
    StreamBody,
)
from .multipart import (
    EncodingCompletion,
    EncodingOutcome,
    MultipartEncodingCoordinator,
    MultipartFormData,
)
from .session import OperationHandle, SessionManager

__all__ = [
    "RequestOptions",
    "UploadOptions",
    "MultipartOptions",
    "DownloadOptions",
    "Dispatcher",
]

LOGGER = logging.getLogger(__name__)

Method = Union[HTTPMethod, str]
Headers = Mapping[str, str]


# ============================================================================
# Operation options
# ============================================================================


@dataclass(frozen=True)
class RequestOptions:
    """Options for plain requests.

    Attributes:
        parameters: Parameters to encode; ``None`` (default) sends none.
        encoding: Strategy for ``parameters``; ``None`` (default) picks
            :meth:`ParameterEncoding.for_method`.
        headers: Headers overriding nothing but each other; ``None`` (default)
            adds none.
    """

    parameters: Optional[Parameters] = None
    encoding: Optional[ParameterEncoding] = None
    headers: Optional[Headers] = None


@dataclass(frozen=True)
class UploadOptions:
    """Options for file, data, and stream uploads (``headers`` defaults to none)."""

    headers: Optional[Headers] = None


@dataclass(frozen=True)
class MultipartOptions:
    """Options for multipart uploads.

    Attributes:
        headers: Extra request headers; default none.
        memory_threshold: In-memory encoding limit in bytes; ``None`` (default)
            uses the configured ``multipart.memory_threshold_bytes`` (10 MiB).
        completion: Callback invoked exactly once with the encoding outcome.
    """

    headers: Optional[Headers] = None
    memory_threshold: Optional[int] = None
    completion: Optional[EncodingCompletion] = None


@dataclass(frozen=True)
class DownloadOptions:
    """Options for destination-based downloads; same defaults as :class:`RequestOptions`."""

    parameters: Optional[Parameters] = None
    encoding: Optional[ParameterEncoding] = None
    headers: Optional[Headers] = None


# ============================================================================
# Dispatcher
# ============================================================================


def _canonical(request: RequestConvertible) -> CanonicalRequest:
    if not isinstance(request, RequestConvertible):
        raise TypeError(
            f"Expected a RequestConvertible, got {type(request).__name__}; "
            "use build_request() for locators"
        )
    return request.as_canonical_request()


class Dispatcher:
    """Facade routing canonical requests to a session manager."""

    def __init__(
        self,
        session_manager: SessionManager,
        *,
        config: Optional[RequestKitConfig] = None,
        executor: Optional[futures.Executor] = None,
    ) -> None:
        self.session_manager = session_manager
        self.config = config or RequestKitConfig()
        if executor is None:
            executor, self._owns_executor = create_executor(
                self.config.executor.workers, name="requestkit-multipart"
            )
        else:
            self._owns_executor = False
        self._executor = executor
        self.multipart = MultipartEncodingCoordinator(self.config.multipart, executor)

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the multipart worker pool if this dispatcher created it."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def prepare(
        self,
        method: Method,
        locator: ResourceLocator,
        *,
        parameters: Optional[Parameters] = None,
        encoding: Optional[ParameterEncoding] = None,
        headers: Optional[Headers] = None,
    ) -> CanonicalRequest:
        """Build a canonical request and encode ``parameters`` into it."""
        request = build_request(method, locator, headers)
        if parameters is None:
            return request
        strategy = encoding or ParameterEncoding.for_method(request.method)
        return encode(request, parameters, strategy)

    def _forward(
        self, family: str, call: Callable[..., OperationHandle], request: CanonicalRequest, *args: Any
    ) -> OperationHandle:
        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug(
                "%s %s %s headers=%s",
                family,
                request.method.value,
                request.url,
                mask_sensitive_data(dict(request.headers)),
            )
        try:
            return call(request, *args)
        except RequestKitError:
            raise
        except Exception as exc:
            raise DispatchError(f"{family} dispatch of {request.url} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(
        self, method: Method, locator: ResourceLocator, options: Optional[RequestOptions] = None
    ) -> OperationHandle:
        options = options or RequestOptions()
        return self.send(
            self.prepare(
                method,
                locator,
                parameters=options.parameters,
                encoding=options.encoding,
                headers=options.headers,
            )
        )

    def send(self, request: RequestConvertible) -> OperationHandle:
        return self._forward("request", self.session_manager.dispatch, _canonical(request))

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upload(
        self,
        method: Method,
        locator: ResourceLocator,
        body: RequestBody,
        options: Optional[UploadOptions] = None,
    ) -> OperationHandle:
        options = options or UploadOptions()
        return self.send_upload(build_request(method, locator, options.headers), body)

    def send_upload(self, request: RequestConvertible, body: RequestBody) -> OperationHandle:
        if not isinstance(body, (DataBody, FileBody, StreamBody)):
            raise TypeError(f"Unsupported upload body {type(body).__name__}")
        return self._forward("upload", self.session_manager.dispatch_upload, _canonical(request), body)

    def upload_file(
        self, method: Method, locator: ResourceLocator, path: Any, options: Optional[UploadOptions] = None
    ) -> OperationHandle:
        return self.upload(method, locator, FileBody(path), options)

    def upload_data(
        self, method: Method, locator: ResourceLocator, data: bytes, options: Optional[UploadOptions] = None
    ) -> OperationHandle:
        return self.upload(method, locator, DataBody(bytes(data)), options)

    def upload_stream(
        self,
        method: Method,
        locator: ResourceLocator,
        stream: BinaryIO,
        options: Optional[UploadOptions] = None,
        *,
        length: Optional[int] = None,
    ) -> OperationHandle:
        return self.upload(method, locator, StreamBody(stream, length), options)

    def upload_multipart(
        self,
        method: Method,
        locator: ResourceLocator,
        configure: Callable[[MultipartFormData], None],
        options: Optional[MultipartOptions] = None,
    ) -> "futures.Future[EncodingOutcome]":
        """Encode a multipart body, then upload it.

        Raises:
            InvalidAddress: Synchronously, if the locator is not absolute.
        """
        options = options or MultipartOptions()
        return self.send_multipart(build_request(method, locator, options.headers), configure, options)

    def send_multipart(
        self,
        request: RequestConvertible,
        configure: Callable[[MultipartFormData], None],
        options: Optional[MultipartOptions] = None,
    ) -> "futures.Future[EncodingOutcome]":
        options = options or MultipartOptions()
        canonical = _canonical(request)
        return self.multipart.encode(
            canonical,
            configure,
            memory_threshold=options.memory_threshold,
            completion=options.completion,
            dispatch=lambda encoded: self.send_upload(encoded, encoded.body),
        )

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def download(
        self,
        method: Method,
        locator: ResourceLocator,
        destination: DestinationDecision,
        options: Optional[DownloadOptions] = None,
    ) -> OperationHandle:
        options = options or DownloadOptions()
        request = self.prepare(
            method,
            locator,
            parameters=options.parameters,
            encoding=options.encoding,
            headers=options.headers,
        )
        return self.send_download(request, destination)

    def send_download(
        self, request: RequestConvertible, destination: DestinationDecision
    ) -> OperationHandle:
        if not callable(destination):
            raise TypeError("destination must be a DestinationDecision callable")
        return self._forward(
            "download", self.session_manager.dispatch_download, _canonical(request), destination
        )

    def download_resuming(
        self, token: Union[ResumeToken, bytes], destination: DestinationDecision
    ) -> OperationHandle:
        """Continue an interrupted download from its opaque resume token."""
        if not callable(destination):
            raise TypeError("destination must be a DestinationDecision callable")
        continuation = ResumeContinuation(
            token=token if isinstance(token, ResumeToken) else ResumeToken(token),
            destination=destination,
        )
        LOGGER.debug("resuming download from %d bytes of resume data", len(continuation.token))
        try:
            return self.session_manager.dispatch_resume(continuation.token, continuation.destination)
        except RequestKitError:
            raise
        except Exception as exc:
            raise DispatchError(f"resume dispatch failed: {exc}") from exc

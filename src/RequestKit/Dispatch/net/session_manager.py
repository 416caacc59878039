# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch.net.session_manager",
#   "purpose": "httpx-backed session manager with cancellable, resumable downloads",
#   "sections": [
#     {"id": "operation", "name": "Operation", "anchor": "class-operation", "kind": "class"},
#     {"id": "resumestate", "name": "ResumeState", "anchor": "class-resumestate", "kind": "class"},
#     {"id": "httpxsessionmanager", "name": "HttpxSessionManager", "anchor": "class-httpxsessionmanager", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""httpx-backed session manager with cancellable, resumable downloads.

Each dispatch call returns an :class:`Operation` immediately; the exchange runs
on a worker thread (or inline when the executor policy has zero workers).

Downloads stream into a ``.part`` file. Cancelling through
:meth:`Operation.cancel_producing_resume_data` stops between chunks and yields
a :class:`~RequestKit.Dispatch.download.ResumeToken`: an XML property list
recording the request, the partial file, the byte count and the validators.
:meth:`HttpxSessionManager.dispatch_resume` validates that token up front and
re-issues the request with ``Range``/``If-Range`` (RFC 7233): a 206 appends to
the partial file, a 200 restarts it.
"""

from __future__ import annotations

import logging
import plistlib
import tempfile
import threading
import uuid
from concurrent import futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, Iterator, List, Optional, Tuple

import httpx

from ...concurrency import completed_future, create_executor
from ..config.models import RequestKitConfig
from ..download import (
    DestinationDecision,
    DownloadResult,
    ResponseMetadata,
    ResumeToken,
    apply_destination,
)
from ..errors import DispatchError, DownloadFailure, OperationCancelled, RequestKitError
from ..models import CanonicalRequest, DataBody, FileBody, HTTPMethod, RequestBody, StreamBody
from .client import build_http_client

__all__ = ["Operation", "ResumeState", "HttpxSessionManager", "RESUME_FORMAT"]

LOGGER = logging.getLogger(__name__)

RESUME_FORMAT = "requestkit.resume"
RESUME_VERSION = 1


class Operation:
    """Handle for one dispatched operation."""

    def __init__(self, kind: str, url: str) -> None:
        self.kind = kind
        self.url = url
        self._cancel_event = threading.Event()
        self._future: Optional["futures.Future[Any]"] = None
        self._resume_token: Optional[ResumeToken] = None

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"<Operation {self.kind} {self.url} {state}>"

    def _bind(self, future: "futures.Future[Any]") -> None:
        self._future = future

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def result(self, timeout: Optional[float] = None) -> Any:
        """Block for the outcome.

        Raises:
            DispatchError: Transport, status or destination failure.
            OperationCancelled: The operation was cancelled.
        """
        if self._future is None:
            raise DispatchError(f"{self.kind} of {self.url} was never submitted")
        try:
            return self._future.result(timeout)
        except futures.CancelledError as exc:
            raise OperationCancelled(f"{self.kind} of {self.url} was cancelled") from exc

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def cancel(self) -> bool:
        """Request cancellation; returns False if the operation already finished."""
        if self.done():
            return False
        self._cancel_event.set()
        if self._future is not None:
            self._future.cancel()
        return True

    def cancel_producing_resume_data(self, timeout: Optional[float] = None) -> Optional[ResumeToken]:
        """Cancel a download and return its resume token once the worker stops.

        Returns ``None`` when the operation finished first, was not a download,
        or stopped before receiving any data.
        """
        if not self.cancel():
            return self._resume_token
        if self._future is not None and not self._future.cancelled():
            futures.wait([self._future], timeout=timeout)
        return self._resume_token


@dataclass(frozen=True)
class ResumeState:
    """Decoded contents of a resume token issued by this session manager."""

    url: str
    method: str
    headers: List[Tuple[str, str]]
    temporary_file: Path
    bytes_received: int
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def to_token(self) -> ResumeToken:
        payload = {
            "format": RESUME_FORMAT,
            "version": RESUME_VERSION,
            "url": self.url,
            "method": self.method,
            "headers": [list(pair) for pair in self.headers],
            "temporary_file": str(self.temporary_file),
            "bytes_received": self.bytes_received,
        }
        if self.etag:
            payload["etag"] = self.etag
        if self.last_modified:
            payload["last_modified"] = self.last_modified
        return ResumeToken(plistlib.dumps(payload, fmt=plistlib.FMT_XML))

    @classmethod
    def from_token(cls, token: ResumeToken) -> "ResumeState":
        """Decode and validate ``token``.

        Raises:
            DispatchError: If the token is corrupt, foreign, or stale.
        """
        try:
            payload = plistlib.loads(bytes(token))
        except Exception as exc:
            raise DispatchError(f"Resume data is not readable: {exc}") from exc
        if not isinstance(payload, dict) or payload.get("format") != RESUME_FORMAT:
            raise DispatchError("Resume data was not produced by this session manager")
        if payload.get("version") != RESUME_VERSION:
            raise DispatchError(f"Unsupported resume data version {payload.get('version')!r}")
        try:
            state = cls(
                url=str(payload["url"]),
                method=HTTPMethod(str(payload["method"])).value,
                headers=[(str(name), str(value)) for name, value in payload["headers"]],
                temporary_file=Path(payload["temporary_file"]),
                bytes_received=int(payload["bytes_received"]),
                etag=payload.get("etag"),
                last_modified=payload.get("last_modified"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DispatchError(f"Resume data is incomplete: {exc}") from exc
        if not state.temporary_file.is_file():
            raise DispatchError(f"Resume data is stale: {state.temporary_file} no longer exists")
        if state.temporary_file.stat().st_size != state.bytes_received:
            raise DispatchError("Resume data is stale: partial file size does not match")
        return state


def _iter_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk


def _check_content_range(response: httpx.Response, url: str, offset: int) -> None:
    content_range = response.headers.get("content-range", "")
    if not content_range.startswith(f"bytes {offset}-"):
        raise DownloadFailure(
            f"Resumed download of {url} answered Content-Range {content_range!r}, "
            f"expected offset {offset}",
            status_code=response.status_code,
            url=url,
        )


@dataclass
class _PreparedBody:
    content: Any = None
    length: Optional[int] = None
    handles: List[BinaryIO] = field(default_factory=list)

    def close(self) -> None:
        for handle in self.handles:
            handle.close()


class HttpxSessionManager:
    """Session manager that performs I/O with an ``httpx.Client``."""

    def __init__(
        self,
        config: Optional[RequestKitConfig] = None,
        *,
        client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        executor: Optional[futures.Executor] = None,
    ) -> None:
        self.config = config or RequestKitConfig()
        self._owns_client = client is None
        self.client = client or build_http_client(self.config.http, transport=transport)
        if executor is None:
            executor, self._owns_executor = create_executor(
                self.config.executor.workers, name="requestkit-session"
            )
        else:
            self._owns_executor = False
        self._executor = executor

    def __enter__(self) -> "HttpxSessionManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
        if self._owns_client:
            self.client.close()

    # ------------------------------------------------------------------
    # SessionManager protocol
    # ------------------------------------------------------------------

    def dispatch(self, request: CanonicalRequest) -> Operation:
        return self._submit("request", request.url, self._send, request, request.body)

    def dispatch_upload(self, request: CanonicalRequest, body: RequestBody) -> Operation:
        return self._submit("upload", request.url, self._send, request, body)

    def dispatch_download(
        self, request: CanonicalRequest, destination: DestinationDecision
    ) -> Operation:
        return self._submit("download", request.url, self._download, request, destination, None)

    def dispatch_resume(self, token: ResumeToken, destination: DestinationDecision) -> Operation:
        state = ResumeState.from_token(token)
        request = CanonicalRequest(
            method=HTTPMethod(state.method),
            url=state.url,
            headers=httpx.Headers(state.headers),
        )
        return self._submit("download", state.url, self._download, request, destination, state)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _submit(self, kind: str, url: str, fn: Callable[..., Any], *args: Any) -> Operation:
        operation = Operation(kind, url)
        LOGGER.debug("dispatching %s %s", kind, url)
        if self._executor is None:
            operation._bind(completed_future(self._guarded, fn, operation, *args))
        else:
            operation._bind(self._executor.submit(self._guarded, fn, operation, *args))
        return operation

    @staticmethod
    def _guarded(fn: Callable[..., Any], operation: Operation, *args: Any) -> Any:
        try:
            return fn(operation, *args)
        except RequestKitError:
            raise
        except httpx.HTTPError as exc:
            raise DispatchError(f"{operation.kind} of {operation.url} failed: {exc}") from exc
        except OSError as exc:
            raise DispatchError(f"{operation.kind} of {operation.url} failed: {exc}") from exc

    def _prepare_body(self, body: Optional[RequestBody]) -> _PreparedBody:
        chunk_size = self.config.download.chunk_size_bytes
        if body is None:
            return _PreparedBody()
        if isinstance(body, DataBody):
            return _PreparedBody(content=body.data, length=body.length)
        if isinstance(body, FileBody):
            handle = body.path.open("rb")
            return _PreparedBody(
                content=_iter_chunks(handle, chunk_size), length=body.length, handles=[handle]
            )
        if isinstance(body, StreamBody):
            return _PreparedBody(
                content=_iter_chunks(body.stream, chunk_size),
                length=body.length,
                handles=[body.stream],
            )
        raise DispatchError(f"Unsupported request body {type(body).__name__}")

    def _build(
        self, request: CanonicalRequest, prepared: _PreparedBody, extra: Optional[dict] = None
    ) -> httpx.Request:
        headers = request.headers.copy()
        if prepared.length is not None and "content-length" not in headers:
            headers["Content-Length"] = str(prepared.length)
        for name, value in (extra or {}).items():
            headers[name] = value
        return self.client.build_request(
            request.method.value, request.url, headers=headers, content=prepared.content
        )

    def _send(
        self, operation: Operation, request: CanonicalRequest, body: Optional[RequestBody]
    ) -> httpx.Response:
        prepared = self._prepare_body(body)
        try:
            response = self.client.send(self._build(request, prepared))
        finally:
            prepared.close()
        if operation.cancel_requested:
            raise OperationCancelled(f"{operation.kind} of {operation.url} was cancelled")
        return response

    def _partial_path(self) -> Path:
        root = self.config.download.temp_dir
        directory = (Path(root) if root else Path(tempfile.gettempdir())) / "requestkit" / "downloads"
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{uuid.uuid4().hex}.part"

    def _download(
        self,
        operation: Operation,
        request: CanonicalRequest,
        destination: DestinationDecision,
        state: Optional[ResumeState],
    ) -> DownloadResult:
        partial = state.temporary_file if state else self._partial_path()
        offset = state.bytes_received if state else 0
        extra = {}
        if state and offset:
            extra["Range"] = f"bytes={offset}-"
            validator = state.etag or state.last_modified
            if validator:
                extra["If-Range"] = validator

        prepared = self._prepare_body(request.body)
        try:
            response = self.client.send(self._build(request, prepared, extra), stream=True)
            try:
                if not 200 <= response.status_code < 300:
                    raise DownloadFailure(
                        f"Download of {request.url} failed with HTTP {response.status_code}",
                        status_code=response.status_code,
                        url=request.url,
                    )
                if response.status_code != 206:
                    offset = 0
                elif offset:
                    _check_content_range(response, request.url, offset)
                received, interrupted = self._write_partial(operation, response, partial, offset)
                if interrupted:
                    self._cancelled(operation, request, response, partial, received)
                metadata = ResponseMetadata(
                    url=str(response.url),
                    status_code=response.status_code,
                    headers=response.headers,
                )
            finally:
                response.close()
        except OperationCancelled:
            raise
        except Exception:
            partial.unlink(missing_ok=True)
            raise
        finally:
            prepared.close()

        try:
            final = apply_destination(destination, partial, metadata)
        except DownloadFailure:
            partial.unlink(missing_ok=True)
            raise
        LOGGER.info("Downloaded %s → %s (%d bytes)", request.url, final, received)
        return DownloadResult(destination=final, metadata=metadata)

    def _write_partial(
        self, operation: Operation, response: httpx.Response, partial: Path, offset: int
    ) -> Tuple[int, bool]:
        """Append (or restart) the partial file; returns (bytes on disk, interrupted)."""
        received = offset
        mode = "ab" if offset else "wb"
        with partial.open(mode) as handle:
            for chunk in response.iter_bytes(chunk_size=self.config.download.chunk_size_bytes):
                if operation.cancel_requested:
                    return received, True
                handle.write(chunk)
                received += len(chunk)
        return received, False

    def _cancelled(
        self,
        operation: Operation,
        request: CanonicalRequest,
        response: httpx.Response,
        partial: Path,
        received: int,
    ) -> None:
        accepts_ranges = "bytes" in response.headers.get("accept-ranges", "").lower()
        if received and (accepts_ranges or response.status_code == 206):
            state = ResumeState(
                url=request.url,
                method=request.method.value,
                headers=[(k, v) for k, v in request.headers.multi_items() if k.lower() != "range"],
                temporary_file=partial,
                bytes_received=received,
                etag=response.headers.get("etag"),
                last_modified=response.headers.get("last-modified"),
            )
            operation._resume_token = state.to_token()
        else:
            partial.unlink(missing_ok=True)
        raise OperationCancelled(
            f"download of {request.url} was cancelled", resume_token=operation._resume_token
        )

# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch.multipart",
#   "purpose": "Multipart form-data accumulation and threshold-based encoding",
#   "sections": [
#     {"id": "multipartpart", "name": "MultipartPart", "anchor": "class-multipartpart", "kind": "class"},
#     {"id": "multipartformdata", "name": "MultipartFormData", "anchor": "class-multipartformdata", "kind": "class"},
#     {"id": "outcomes", "name": "Encoding Outcomes", "anchor": "OUT", "kind": "api"},
#     {"id": "multipartencodingcoordinator", "name": "MultipartEncodingCoordinator", "anchor": "class-multipartencodingcoordinator", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Multipart form-data accumulation and threshold-based encoding.

Architecture:
1. The caller's ``configure`` callback appends parts to a :class:`MultipartFormData`.
2. :class:`MultipartEncodingCoordinator` sums the part body sizes and compares
   them with the memory threshold (10 MiB by default).
3. At or below the threshold the body is encoded in memory (``DataBody``);
   above it the encoding streams to a private temporary file and the request
   carries a ``StreamBody`` over that file with the encoded length.
4. The outcome is delivered exactly once: to the completion callback and as
   the result of the returned future.

Size hints decide the threshold; while encoding, every part with a hint is
checked against the bytes actually read and a mismatch fails the encoding.
The temporary file of a successful disk encoding is left for the caller to
remove once the upload has consumed it; failed encodings remove it.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
import tempfile
import uuid
from concurrent import futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Union

from ..concurrency import completed_future
from .config.models import MultipartPolicy
from .errors import MultipartEncodingError, RequestKitError
from .models import CanonicalRequest, DataBody, StreamBody
from .session import OperationHandle

__all__ = [
    "MultipartPart",
    "MultipartFormData",
    "MultipartEncodingSuccess",
    "MultipartEncodingFailure",
    "EncodingOutcome",
    "EncodingCompletion",
    "MultipartEncodingCoordinator",
]

LOGGER = logging.getLogger(__name__)

CRLF = b"\r\n"
DEFAULT_MIME_TYPE = "application/octet-stream"

PartSource = Union[bytes, Path, BinaryIO]


def _quote_param(value: str) -> str:
    return value.replace("\r", "%0D").replace("\n", "%0A").replace('"', "%22")


def _mime_type_for(file_name: str) -> str:
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or DEFAULT_MIME_TYPE


@dataclass
class MultipartPart:
    """One named body part: bytes, a file, or a binary stream."""

    name: str
    source: PartSource
    content_type: Optional[str] = None
    size_hint: Optional[int] = None
    file_name: Optional[str] = None

    def header_bytes(self) -> bytes:
        disposition = f'form-data; name="{_quote_param(self.name)}"'
        if self.file_name is not None:
            disposition += f'; filename="{_quote_param(self.file_name)}"'
        lines = [f"Content-Disposition: {disposition}"]
        if self.content_type:
            lines.append(f"Content-Type: {self.content_type}")
        return "".join(f"{line}\r\n" for line in lines).encode("utf-8") + CRLF

    def body_length(self) -> Optional[int]:
        """Size hint, else the measured size; ``None`` if it cannot be known."""
        if self.size_hint is not None:
            return self.size_hint
        if isinstance(self.source, (bytes, bytearray)):
            return len(self.source)
        if isinstance(self.source, Path):
            return self.source.stat().st_size
        seekable = getattr(self.source, "seekable", None)
        if seekable is not None and seekable():
            position = self.source.tell()
            end = self.source.seek(0, io.SEEK_END)
            self.source.seek(position)
            return end - position
        return None

    def write_body(self, out: BinaryIO, chunk_size: int) -> int:
        """Copy the body into ``out``; returns the number of bytes written."""
        if isinstance(self.source, (bytes, bytearray)):
            out.write(self.source)
            written = len(self.source)
        elif isinstance(self.source, Path):
            with self.source.open("rb") as handle:
                written = _copy(handle, out, chunk_size)
        else:
            written = _copy(self.source, out, chunk_size)
        if self.size_hint is not None and written != self.size_hint:
            raise MultipartEncodingError(
                f"Body part {self.name!r} declared {self.size_hint} bytes but produced {written}",
                part_name=self.name,
            )
        return written


def _copy(source: BinaryIO, out: BinaryIO, chunk_size: int) -> int:
    written = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            return written
        out.write(chunk)
        written += len(chunk)


class MultipartFormData:
    """Accumulates body parts and encodes them as ``multipart/form-data``."""

    def __init__(self, boundary: Optional[str] = None) -> None:
        self.boundary = boundary or f"requestkit.boundary.{uuid.uuid4().hex[:16]}"
        self.parts: List[MultipartPart] = []

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def content_length(self) -> Optional[int]:
        """Sum of part body sizes (boundaries and part headers excluded).

        ``None`` when a part's size cannot be determined up front.

        Raises:
            MultipartEncodingError: If a file part cannot be stat'ed.
        """
        total = 0
        for part in self.parts:
            try:
                length = part.body_length()
            except OSError as exc:
                raise MultipartEncodingError(
                    f"Cannot size body part {part.name!r}: {exc}", part_name=part.name
                ) from exc
            if length is None:
                return None
            total += length
        return total

    def append(self, part: MultipartPart) -> None:
        self.parts.append(part)

    def append_data(
        self,
        data: bytes,
        name: str,
        *,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> None:
        self.append(
            MultipartPart(
                name=name,
                source=bytes(data),
                content_type=mime_type,
                file_name=file_name,
            )
        )

    def append_file(
        self,
        path: Union[str, Path],
        name: str,
        *,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> None:
        """Append a file part; name and MIME type default from the path.

        Raises:
            MultipartEncodingError: If ``path`` is not a readable regular file.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise MultipartEncodingError(
                f"Body part {name!r} is not a readable file: {file_path}", part_name=name
            )
        if not os.access(file_path, os.R_OK):
            raise MultipartEncodingError(
                f"Body part {name!r} is not readable: {file_path}", part_name=name
            )
        resolved_name = file_name or file_path.name
        self.append(
            MultipartPart(
                name=name,
                source=file_path,
                content_type=mime_type or _mime_type_for(resolved_name),
                file_name=resolved_name,
            )
        )

    def append_stream(
        self,
        stream: BinaryIO,
        name: str,
        *,
        length: Optional[int] = None,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> None:
        self.append(
            MultipartPart(
                name=name,
                source=stream,
                content_type=mime_type or (DEFAULT_MIME_TYPE if file_name else None),
                size_hint=length,
                file_name=file_name,
            )
        )

    def write_to(self, out: BinaryIO, chunk_size: int = 1 << 20) -> int:
        """Write the full encoding to ``out``; returns the encoded length."""
        boundary = self.boundary.encode("ascii")
        written = 0
        for index, part in enumerate(self.parts):
            prefix = b"--" + boundary + CRLF if index == 0 else CRLF + b"--" + boundary + CRLF
            headers = part.header_bytes()
            out.write(prefix)
            out.write(headers)
            try:
                body = part.write_body(out, chunk_size)
            except OSError as exc:
                raise MultipartEncodingError(
                    f"Cannot read body part {part.name!r}: {exc}", part_name=part.name
                ) from exc
            written += len(prefix) + len(headers) + body
        closing = (CRLF if self.parts else b"") + b"--" + boundary + b"--" + CRLF
        out.write(closing)
        return written + len(closing)

    def encode(self, chunk_size: int = 1 << 20) -> bytes:
        buffer = io.BytesIO()
        self.write_to(buffer, chunk_size)
        return buffer.getvalue()

    def write_encoded_data(self, path: Union[str, Path], chunk_size: int = 1 << 20) -> int:
        """Write the encoding to a new file at ``path`` (must not exist).

        Raises:
            MultipartEncodingError: If the file exists or cannot be written.
        """
        target = Path(path)
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except OSError as exc:
            raise MultipartEncodingError(f"Cannot create {target}: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as handle:
                return self.write_to(handle, chunk_size)
        except OSError as exc:
            raise MultipartEncodingError(f"Cannot write multipart body to {target}: {exc}") from exc


# ============================================================================
# Encoding outcomes
# ============================================================================


@dataclass(frozen=True)
class MultipartEncodingSuccess:
    """Encoded request, ready for (or already handed to) an upload."""

    encoded_request: CanonicalRequest
    stream_length: int
    temporary_file: Optional[Path] = None
    operation: Optional[OperationHandle] = field(default=None, compare=False)

    ok = True

    @property
    def streaming_from_disk(self) -> bool:
        return self.temporary_file is not None


@dataclass(frozen=True)
class MultipartEncodingFailure:
    """Encoding (or the upload dispatch that follows it) failed."""

    reason: Exception

    ok = False


EncodingOutcome = Union[MultipartEncodingSuccess, MultipartEncodingFailure]
EncodingCompletion = Callable[[EncodingOutcome], None]
ConfigureForm = Callable[[MultipartFormData], None]
UploadDispatch = Callable[[CanonicalRequest], OperationHandle]


# ============================================================================
# Coordinator
# ============================================================================


class MultipartEncodingCoordinator:
    """Decides in-memory vs. disk-streamed encoding and reports the outcome once."""

    def __init__(
        self,
        policy: Optional[MultipartPolicy] = None,
        executor: Optional[futures.Executor] = None,
    ) -> None:
        self.policy = policy or MultipartPolicy()
        self._executor = executor

    @property
    def temporary_directory(self) -> Path:
        root = Path(self.policy.temp_dir) if self.policy.temp_dir else Path(tempfile.gettempdir())
        return root / "requestkit" / "multipart"

    def encode(
        self,
        request: CanonicalRequest,
        configure: ConfigureForm,
        *,
        memory_threshold: Optional[int] = None,
        completion: Optional[EncodingCompletion] = None,
        dispatch: Optional[UploadDispatch] = None,
    ) -> "futures.Future[EncodingOutcome]":
        """Encode a multipart body for ``request`` off the calling thread.

        Args:
            request: Base request; copied, never mutated.
            configure: Appends parts to the form.
            memory_threshold: Byte limit for in-memory encoding; defaults to
                the policy value.
            completion: Called exactly once with the outcome, possibly on a
                worker thread.
            dispatch: Optional upload hook run on success; its handle becomes
                ``operation`` on the success outcome.

        Returns:
            Future resolving to the same outcome passed to ``completion``. It
            never raises.
        """
        threshold = (
            self.policy.memory_threshold_bytes if memory_threshold is None else memory_threshold
        )
        args = (request.copy(), configure, threshold, completion, dispatch)
        if self._executor is None:
            return completed_future(self._run, *args)
        try:
            return self._executor.submit(self._run, *args)
        except RuntimeError as exc:
            LOGGER.warning("multipart executor unavailable, encoding inline: %s", exc)
            return completed_future(self._run, *args)

    def _run(
        self,
        request: CanonicalRequest,
        configure: ConfigureForm,
        threshold: int,
        completion: Optional[EncodingCompletion],
        dispatch: Optional[UploadDispatch],
    ) -> EncodingOutcome:
        outcome = self._encode(request, configure, threshold, dispatch)
        if completion is not None:
            try:
                completion(outcome)
            except Exception:
                LOGGER.exception("multipart encoding completion callback raised")
        return outcome

    def _encode(
        self,
        request: CanonicalRequest,
        configure: ConfigureForm,
        threshold: int,
        dispatch: Optional[UploadDispatch],
    ) -> EncodingOutcome:
        form = MultipartFormData()
        temporary: Optional[Path] = None
        stream: Optional[BinaryIO] = None
        chunk_size = self.policy.chunk_size_bytes
        try:
            configure(form)
            length = form.content_length
            request.headers["Content-Type"] = form.content_type

            if length is not None and length <= threshold:
                data = form.encode(chunk_size)
                stream_length = len(data)
                request.body = DataBody(data)
            else:
                temporary = self._new_temporary_file()
                stream_length = form.write_encoded_data(temporary, chunk_size)
                stream = temporary.open("rb")
                request.body = StreamBody(stream, stream_length)
            request.headers["Content-Length"] = str(stream_length)

            LOGGER.debug(
                "multipart body encoded: parts=%d content_length=%s encoded=%d disk=%s",
                len(form.parts),
                length,
                stream_length,
                temporary is not None,
            )
            operation = dispatch(request) if dispatch is not None else None
            return MultipartEncodingSuccess(
                encoded_request=request,
                stream_length=stream_length,
                temporary_file=temporary,
                operation=operation,
            )
        except Exception as exc:
            self._discard(stream, temporary)
            return MultipartEncodingFailure(reason=_as_failure(exc))

    def _new_temporary_file(self) -> Path:
        directory = self.temporary_directory
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MultipartEncodingError(f"Cannot create {directory}: {exc}") from exc
        return directory / uuid.uuid4().hex

    @staticmethod
    def _discard(stream: Optional[BinaryIO], temporary: Optional[Path]) -> None:
        if stream is not None:
            stream.close()
        if temporary is not None:
            try:
                temporary.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Failed to remove partial multipart file %s: %s", temporary, exc)


def _as_failure(exc: Exception) -> Exception:
    if isinstance(exc, RequestKitError):
        return exc
    failure = MultipartEncodingError(f"Multipart encoding failed: {exc}")
    failure.__cause__ = exc
    return failure

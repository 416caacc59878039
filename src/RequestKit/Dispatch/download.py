"""Download destination decisions and resume continuations.

A fresh download hands the session manager a :data:`DestinationDecision`; the
session manager evaluates it once per completed download (through
:func:`apply_destination`) and moves the temporary file to the decided path.

A resumed download hands over an opaque :class:`ResumeToken` plus the same
destination contract. The token is never inspected here.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from email.message import Message
from pathlib import Path, PurePosixPath
from typing import Callable, Mapping, Optional, Union
from urllib.parse import unquote, urlsplit

import httpx

from .errors import DownloadFailure

__all__ = [
    "ResponseMetadata",
    "DestinationDecision",
    "DownloadResult",
    "ResumeToken",
    "ResumeContinuation",
    "fixed_destination",
    "suggested_download_destination",
    "suggested_filename",
    "apply_destination",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_FILENAME = "download"


def suggested_filename(url: str, headers: Optional[Mapping[str, str]] = None) -> str:
    """Return the server-suggested file name for a response.

    ``Content-Disposition`` wins; otherwise the URL's last path segment, then
    :data:`DEFAULT_FILENAME`. Directory components are always stripped.
    """
    disposition = httpx.Headers(headers).get("content-disposition") if headers else None
    if disposition:
        message = Message()
        message["content-disposition"] = disposition
        name = message.get_filename()
        if name:
            base = PurePosixPath(name.replace("\\", "/")).name
            if base not in ("", ".", ".."):
                return base
    segment = PurePosixPath(unquote(urlsplit(url).path)).name
    if segment and segment not in (".", ".."):
        return segment
    return DEFAULT_FILENAME


@dataclass(frozen=True)
class ResponseMetadata:
    """What the destination decision knows about a completed response."""

    url: str
    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)

    @property
    def suggested_filename(self) -> str:
        return suggested_filename(self.url, self.headers)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")


DestinationDecision = Callable[[Path, ResponseMetadata], Path]


@dataclass(frozen=True)
class DownloadResult:
    """Final location of a completed download and its response metadata."""

    destination: Path
    metadata: ResponseMetadata


def fixed_destination(path: Union[str, Path]) -> DestinationDecision:
    """Decision that always answers ``path``."""
    target = Path(path)

    def decide(temporary: Path, metadata: ResponseMetadata) -> Path:
        return target

    return decide


def suggested_download_destination(directory: Union[str, Path]) -> DestinationDecision:
    """Decision placing the file in ``directory`` under its suggested name."""
    base = Path(directory)

    def decide(temporary: Path, metadata: ResponseMetadata) -> Path:
        return base / metadata.suggested_filename

    return decide


def apply_destination(
    decision: DestinationDecision, temporary: Path, metadata: ResponseMetadata
) -> Path:
    """Evaluate ``decision`` once and move ``temporary`` to the decided path.

    Raises:
        DownloadFailure: If the decision raises or is not a path, or the move fails.
    """
    try:
        target = decision(Path(temporary), metadata)
    except DownloadFailure:
        raise
    except Exception as exc:
        raise DownloadFailure(
            f"Destination decision failed: {exc}",
            status_code=metadata.status_code,
            url=metadata.url,
        ) from exc
    if not isinstance(target, (str, os.PathLike)):
        raise DownloadFailure(
            f"Destination decision returned {type(target).__name__}, expected a path",
            url=metadata.url,
        )
    target = Path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(temporary), str(target))
    except OSError as exc:
        raise DownloadFailure(
            f"Cannot move downloaded file to {target}: {exc}",
            status_code=metadata.status_code,
            url=metadata.url,
        ) from exc
    LOGGER.debug("moved download %s -> %s", temporary, target)
    return target


@dataclass(frozen=True)
class ResumeToken:
    """Opaque resume data captured from a cancelled download."""

    data: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.data, (bytes, bytearray, memoryview)):
            raise TypeError("ResumeToken data must be bytes")
        object.__setattr__(self, "data", bytes(self.data))

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ResumeContinuation:
    """A resume token paired with the destination contract of a fresh download."""

    token: ResumeToken
    destination: DestinationDecision

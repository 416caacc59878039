"""
Bundled session manager for RequestKit Dispatch.

Architecture:
- One ``httpx.Client`` per session manager, owned by the caller
- Explicit timeouts, pool limits, TLS flag passed through from config
- Worker pool from ``RequestKit.concurrency`` (inline when workers=0)
- Downloads stream to ``.part`` files and resume with Range/If-Range
"""

from .client import build_http_client
from .session_manager import RESUME_FORMAT, HttpxSessionManager, Operation, ResumeState

__all__ = [
    "build_http_client",
    "HttpxSessionManager",
    "Operation",
    "ResumeState",
    "RESUME_FORMAT",
]

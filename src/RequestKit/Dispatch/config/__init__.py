"""
RequestKit Dispatch Configuration Package

Public API for loading and validating dispatch configuration.

Example:
    from RequestKit.Dispatch.config import load_config

    config = load_config(
        path="requestkit.yaml",
        overrides={"multipart": {"memory_threshold_bytes": 1048576}},
    )
"""

from .loader import export_config_schema, load_config
from .models import (
    MULTIPART_MEMORY_THRESHOLD,
    DownloadPolicy,
    ExecutorPolicy,
    HttpClientConfig,
    LoggingConfig,
    MultipartPolicy,
    RequestKitConfig,
)

__all__ = [
    # Models
    "RequestKitConfig",
    "HttpClientConfig",
    "MultipartPolicy",
    "DownloadPolicy",
    "ExecutorPolicy",
    "LoggingConfig",
    "MULTIPART_MEMORY_THRESHOLD",
    # Loading
    "load_config",
    "export_config_schema",
]

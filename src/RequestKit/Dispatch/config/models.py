"""
Pydantic v2 Configuration Models for RequestKit Dispatch

Provides strict, typed configuration for the dispatch subsystems:
- HTTP client settings for the bundled session manager (timeouts, pool, TLS flag)
- Multipart encoding policy (memory threshold, temporary directory)
- Download policy (chunk size, temporary directory)
- Worker pool sizing
- Logging
- Top-level RequestKitConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and programmatic overrides follow: file < env < overrides precedence.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

#: Default in-memory multipart encoding limit (10 MiB).
MULTIPART_MEMORY_THRESHOLD = 10 * 1024 * 1024


class HttpClientConfig(BaseModel):
    """Configuration for the httpx client behind the bundled session manager."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(default="RequestKit/Dispatch", description="User-Agent string")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    timeout_write_s: float = Field(default=60.0, description="Write timeout in seconds")
    timeout_pool_s: float = Field(default=10.0, description="Pool acquire timeout in seconds")
    max_connections: int = Field(default=20, description="Connection pool size")
    max_keepalive_connections: int = Field(default=10, description="Keepalive pool size")
    keepalive_expiry_s: float = Field(default=30.0, description="Idle keepalive expiry")
    http2: bool = Field(default=False, description="Negotiate HTTP/2 (requires h2)")
    verify_tls: bool = Field(default=True, description="Passed through to httpx")
    trust_env: bool = Field(default=True, description="Honour proxy environment variables")
    follow_redirects: bool = Field(default=True, description="Follow 3xx responses")

    @field_validator("timeout_connect_s", "timeout_read_s", "timeout_write_s", "timeout_pool_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("max_connections", "max_keepalive_connections")
    @classmethod
    def validate_pool(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Pool sizes must be >= 1")
        return v


class MultipartPolicy(BaseModel):
    """Configuration for multipart form-data encoding."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    memory_threshold_bytes: int = Field(
        default=MULTIPART_MEMORY_THRESHOLD,
        description="Bodies up to this size are encoded in memory; larger ones stream to disk",
    )
    temp_dir: Optional[str] = Field(
        default=None, description="Root for disk-streamed encodings (None = system temp dir)"
    )
    chunk_size_bytes: int = Field(default=1 << 20, description="Copy chunk size")

    @field_validator("memory_threshold_bytes")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("memory_threshold_bytes must be >= 0")
        return v

    @field_validator("chunk_size_bytes")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chunk_size_bytes must be > 0")
        return v


class DownloadPolicy(BaseModel):
    """Configuration for downloads performed by the bundled session manager."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    chunk_size_bytes: int = Field(default=1 << 16, description="Stream chunk size")
    temp_dir: Optional[str] = Field(
        default=None, description="Directory for in-progress downloads (None = system temp dir)"
    )

    @field_validator("chunk_size_bytes")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chunk_size_bytes must be > 0")
        return v


class ExecutorPolicy(BaseModel):
    """Worker pool sizing for off-thread work."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    workers: int = Field(default=4, description="Threads; 0 runs work inline")

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 0:
            raise ValueError("workers must be >= 0")
        return v


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Root level for the RequestKit logger"
    )
    log_dir: Optional[str] = Field(default=None, description="JSON log directory (None = off)")
    max_log_size_mb: float = Field(default=5.0, description="Rotate after this size")
    backup_count: int = Field(default=5, description="Rotated files to keep")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @field_validator("max_log_size_mb")
    @classmethod
    def validate_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("max_log_size_mb must be > 0")
        return v


class RequestKitConfig(BaseModel):
    """Root configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    http: HttpClientConfig = Field(default_factory=HttpClientConfig)
    multipart: MultipartPolicy = Field(default_factory=MultipartPolicy)
    download: DownloadPolicy = Field(default_factory=DownloadPolicy)
    executor: ExecutorPolicy = Field(default_factory=ExecutorPolicy)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()

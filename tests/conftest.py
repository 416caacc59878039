"""
Pytest Configuration

Adds ``src`` to ``sys.path``, registers the shared HTTP mocking fixtures, and
loads a deterministic Hypothesis profile for property-based tests.

Usage:
    pytest -m "not network"  # skip MockTransport-backed session tests
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from hypothesis import HealthCheck, settings

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tests.fixtures.http_mocking import (  # noqa: E402,F401
    dispatch_config,
    http_mock,
    http_routes,
    session_manager,
)

settings.register_profile(
    "requestkit",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    database=None,
)
settings.load_profile("requestkit")


@pytest.fixture(autouse=True)
def _reset_requestkit_logger():
    """Drop handlers installed by ``setup_logging`` between tests."""
    yield
    logger = logging.getLogger("RequestKit")
    for handler in list(logger.handlers):
        if getattr(handler, "_requestkit_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)

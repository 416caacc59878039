"""Canonical request builder."""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Union

import httpx

from .errors import InvalidAddress
from .locators import ResourceLocator, absolute_address
from .models import CanonicalRequest, HTTPMethod

__all__ = ["build_request", "merge_headers"]

LOGGER = logging.getLogger(__name__)

HeaderInput = Union[Mapping[str, str], httpx.Headers]


def merge_headers(
    base: Optional[HeaderInput], override: Optional[HeaderInput]
) -> httpx.Headers:
    """Merge two header maps; ``override`` wins on case-insensitive name clashes."""
    merged = httpx.Headers(base or {})
    for name, value in (override or {}).items():
        merged[name] = value
    return merged


def build_request(
    method: Union[HTTPMethod, str],
    locator: ResourceLocator,
    headers: Optional[HeaderInput] = None,
) -> CanonicalRequest:
    """Build a canonical request from a method, a locator and optional headers.

    Args:
        method: HTTP method; always set explicitly on the request.
        locator: Any :class:`ResourceLocator` variant.
        headers: Caller headers. They overwrite existing headers of the same
            name; nothing is defaulted.

    Returns:
        A new :class:`CanonicalRequest` with no body.

    Raises:
        InvalidAddress: If the locator does not resolve to an absolute URI.
        ValueError: If ``method`` is not a standard HTTP verb.
    """
    verb = HTTPMethod(method.upper() if isinstance(method, str) else method)
    if not isinstance(locator, ResourceLocator):
        raise InvalidAddress(
            f"Expected a ResourceLocator, got {type(locator).__name__}; "
            "wrap raw strings in AddressString"
        )
    url = absolute_address(locator.resolve_address())
    request = CanonicalRequest(method=verb, url=url, headers=merge_headers(None, headers))
    LOGGER.debug("built request %s %s", verb.value, url)
    return request

"""Resource locators: explicit input shapes that resolve to one address string.

Every locator variant exposes :meth:`ResourceLocator.resolve_address`. Callers
construct the variant explicitly; raw strings are wrapped in
:class:`AddressString` rather than accepted implicitly.

``AddressString`` performs no validation (a malformed address fails later, at
request-build time). Structured variants derive an absolute address and raise
:class:`~RequestKit.Dispatch.errors.InvalidAddress` when one cannot be formed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable
from urllib.parse import quote, urlencode

import httpx

from .errors import InvalidAddress

__all__ = [
    "ResourceLocator",
    "AddressString",
    "URLComponents",
    "absolute_address",
]


@runtime_checkable
class ResourceLocator(Protocol):
    """Anything that can yield an absolute address string."""

    def resolve_address(self) -> str:
        """Return the address string used to build a request."""
        ...


def absolute_address(value: str) -> str:
    """Return ``value`` unchanged if it parses as an absolute URI.

    Raises:
        InvalidAddress: If ``value`` is not a string, cannot be parsed, or lacks
            a scheme or host.
    """
    if not isinstance(value, str):
        raise InvalidAddress(f"Address must be a string, got {type(value).__name__}")
    try:
        parsed = httpx.URL(value)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise InvalidAddress(f"Malformed address {value!r}: {exc}", address=value) from exc
    if not parsed.is_absolute_url:
        raise InvalidAddress(f"Address {value!r} is not an absolute URI", address=value)
    return value


@dataclass(frozen=True)
class AddressString:
    """A raw address string, returned as-is."""

    value: str

    def resolve_address(self) -> str:
        return self.value


QueryItems = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


@dataclass(frozen=True)
class URLComponents:
    """Structured URI components assembled into an absolute address.

    ``path`` is percent-encoded (``/`` preserved); ``query`` may be a mapping or
    a sequence of pairs and is form-encoded in the given order.
    """

    scheme: str
    host: str
    path: str = ""
    port: Optional[int] = None
    query: Optional[QueryItems] = None
    fragment: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def resolve_address(self) -> str:
        if not self.scheme or not self.host:
            raise InvalidAddress(
                "URL components need both a scheme and a host to form an absolute address"
            )
        netloc = self.host
        if ":" in self.host and not self.host.startswith("["):
            netloc = f"[{self.host}]"
        if self.port is not None:
            netloc = f"{netloc}:{self.port}"
        if self.username:
            userinfo = quote(self.username, safe="")
            if self.password is not None:
                userinfo = f"{userinfo}:{quote(self.password, safe='')}"
            netloc = f"{userinfo}@{netloc}"

        path = quote(self.path, safe="/%:@!$&'()*+,;=-._~")
        if path and not path.startswith("/"):
            path = f"/{path}"

        address = f"{self.scheme.lower()}://{netloc}{path}"
        if self.query:
            items = self.query.items() if isinstance(self.query, Mapping) else self.query
            address = f"{address}?{urlencode(list(items))}"
        if self.fragment:
            address = f"{address}#{quote(self.fragment, safe='')}"
        return absolute_address(address)

# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch.encoding",
#   "purpose": "Parameter encoding strategies applied to canonical requests",
#   "sections": [
#     {"id": "parameterencoding", "name": "ParameterEncoding", "anchor": "class-parameterencoding", "kind": "class"},
#     {"id": "query-components", "name": "query_components", "anchor": "function-query-components", "kind": "function"},
#     {"id": "query-string", "name": "query_string", "anchor": "function-query-string", "kind": "function"},
#     {"id": "encode", "name": "encode", "anchor": "function-encode", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Parameter encoding strategies applied to canonical requests.

Responsibilities
----------------
- Define the closed set of strategies (``query``, ``url_encoded_body``,
  ``json``, ``property_list``, ``custom``) as :class:`ParameterEncoding`.
- Serialize parameter mappings into RFC 3986 percent-encoded ``key=value``
  pairs via :func:`query_string`.
- Apply exactly one strategy to a copy of a request through :func:`encode`.

Rules
-----
- Absent parameters (``None``) leave the request unchanged for every strategy.
- ``Content-Type`` headers are only set when the caller has not set one.
- The caller's request object is never mutated; failures surface as
  :class:`~RequestKit.Dispatch.errors.EncodingError` (or the custom function's
  own exception) with no partially encoded request left behind.
"""

from __future__ import annotations

import json
import logging
import plistlib
from dataclasses import dataclass
from typing import Any, Callable, List, Literal, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlsplit, urlunsplit

from .errors import EncodingError
from .models import CanonicalRequest, DataBody, HTTPMethod

__all__ = [
    "Parameters",
    "CustomEncoder",
    "ParameterEncoding",
    "query_components",
    "query_string",
    "escape",
    "encode",
]

LOGGER = logging.getLogger(__name__)

Parameters = Mapping[str, Any]
CustomEncoder = Callable[[CanonicalRequest, Parameters], Union[CanonicalRequest, Exception]]
EncodingKind = Literal["query", "url_encoded_body", "json", "property_list", "custom"]

#: RFC 3986 section 2.3 unreserved characters (besides ALPHA / DIGIT).
UNRESERVED = "-._~"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"
PLIST_CONTENT_TYPE = "application/x-plist"

_QUERY_METHODS = frozenset({HTTPMethod.GET, HTTPMethod.HEAD, HTTPMethod.DELETE})


@dataclass(frozen=True)
class ParameterEncoding:
    """One parameter encoding strategy.

    Construct through the class methods; ``kind`` is the variant tag.
    """

    kind: EncodingKind
    function: Optional[CustomEncoder] = None
    json_options: Tuple[Tuple[str, Any], ...] = ()
    plist_format: plistlib.PlistFormat = plistlib.FMT_BINARY

    @classmethod
    def query(cls) -> "ParameterEncoding":
        return cls("query")

    @classmethod
    def url_encoded_body(cls) -> "ParameterEncoding":
        return cls("url_encoded_body")

    @classmethod
    def json(cls, **dumps_options: Any) -> "ParameterEncoding":
        """JSON body; keyword options are passed to :func:`json.dumps`."""
        return cls("json", json_options=tuple(sorted(dumps_options.items())))

    @classmethod
    def property_list(
        cls, fmt: plistlib.PlistFormat = plistlib.FMT_BINARY
    ) -> "ParameterEncoding":
        return cls("property_list", plist_format=fmt)

    @classmethod
    def custom(cls, function: CustomEncoder) -> "ParameterEncoding":
        if not callable(function):
            raise TypeError("custom encoding requires a callable")
        return cls("custom", function=function)

    @classmethod
    def for_method(cls, method: Union[HTTPMethod, str]) -> "ParameterEncoding":
        """Query string for GET/HEAD/DELETE, form-encoded body otherwise."""
        if HTTPMethod(method.upper()) in _QUERY_METHODS:
            return cls.query()
        return cls.url_encoded_body()


# ============================================================================
# Query serialization
# ============================================================================


def escape(value: str) -> str:
    """Percent-encode everything except RFC 3986 unreserved characters."""
    return quote(value, safe=UNRESERVED)


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def query_components(key: str, value: Any) -> List[Tuple[str, str]]:
    """Flatten one parameter into escaped ``(key, value)`` pairs.

    Mappings nest as ``key[sub]`` and sequences as ``key[]``.
    """
    components: List[Tuple[str, str]] = []
    if isinstance(value, Mapping):
        for nested_key in sorted(value, key=str):
            components.extend(query_components(f"{key}[{nested_key}]", value[nested_key]))
    elif isinstance(value, (list, tuple)):
        for item in value:
            components.extend(query_components(f"{key}[]", item))
    else:
        components.append((escape(key), escape(_scalar(value))))
    return components


def query_string(parameters: Parameters) -> str:
    """Serialize ``parameters`` as ``&``-joined pairs with keys sorted."""
    components: List[Tuple[str, str]] = []
    for key in sorted(parameters, key=str):
        components.extend(query_components(str(key), parameters[key]))
    return "&".join(f"{key}={value}" for key, value in components)


def _append_query(url: str, query: str) -> str:
    parts = urlsplit(url)
    merged = f"{parts.query}&{query}" if parts.query else query
    return urlunsplit((parts.scheme, parts.netloc, parts.path, merged, parts.fragment))


# ============================================================================
# Encoder
# ============================================================================


def _to_text(parameters: Parameters, kind: str) -> str:
    try:
        return query_string(parameters)
    except (TypeError, UnicodeDecodeError) as exc:
        raise EncodingError(f"Cannot form-encode parameters: {exc}", encoding=kind) from exc


def _reject_plist_null(value: Any, path: str = "") -> None:
    """Raise TypeError for ``None`` anywhere in ``value``, in either plist format."""
    if value is None:
        raise TypeError(f"None is not a property list value (at {path or '<root>'})")
    if isinstance(value, Mapping):
        for key, item in value.items():
            _reject_plist_null(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _reject_plist_null(item, f"{path}[{index}]")


def encode(
    request: CanonicalRequest,
    parameters: Optional[Parameters],
    encoding: ParameterEncoding,
) -> CanonicalRequest:
    """Embed ``parameters`` into a copy of ``request`` using one strategy.

    Args:
        request: Request to encode into. Never mutated.
        parameters: Parameter mapping, or ``None`` for no parameters.
        encoding: The single strategy to apply.

    Returns:
        ``request`` itself when ``parameters`` is ``None``; otherwise a new
        request with the parameters embedded.

    Raises:
        EncodingError: If serialization fails.
        Exception: Whatever a ``custom`` function raises or returns as its
            failure, unchanged.
    """
    if parameters is None:
        return request

    encoded = request.copy()
    kind = encoding.kind

    if kind == "query":
        if parameters:
            encoded.url = _append_query(encoded.url, _to_text(parameters, kind))
    elif kind == "url_encoded_body":
        encoded.body = DataBody(_to_text(parameters, kind).encode("utf-8"))
        encoded.set_default_header("Content-Type", FORM_CONTENT_TYPE)
    elif kind == "json":
        try:
            payload = json.dumps(parameters, **dict(encoding.json_options))
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"Cannot JSON-encode parameters: {exc}", encoding=kind) from exc
        encoded.body = DataBody(payload.encode("utf-8"))
        encoded.set_default_header("Content-Type", JSON_CONTENT_TYPE)
    elif kind == "property_list":
        try:
            _reject_plist_null(parameters)
            payload_bytes = plistlib.dumps(dict(parameters), fmt=encoding.plist_format)
        except (TypeError, ValueError, OverflowError) as exc:
            raise EncodingError(
                f"Cannot property-list-encode parameters: {exc}", encoding=kind
            ) from exc
        encoded.body = DataBody(payload_bytes)
        encoded.set_default_header("Content-Type", PLIST_CONTENT_TYPE)
    elif kind == "custom":
        if encoding.function is None:
            raise EncodingError("custom encoding has no function", encoding=kind)
        encoded = encoding.function(encoded, parameters)
        if isinstance(encoded, Exception):
            raise encoded
        if not isinstance(encoded, CanonicalRequest):
            raise EncodingError(
                f"custom encoder returned {type(encoded).__name__}, expected CanonicalRequest",
                encoding=kind,
            )
    else:
        raise EncodingError(f"Unknown parameter encoding {kind!r}", encoding=kind)

    LOGGER.debug("encoded parameters with %s for %s %s", kind, encoded.method.value, encoded.url)
    return encoded

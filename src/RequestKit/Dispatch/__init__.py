# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch",
#   "purpose": "Public API for request construction and dispatch",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for RequestKit request construction and dispatch.

Typical usage::

    from RequestKit.Dispatch import AddressString, Dispatcher, HttpxSessionManager

    with HttpxSessionManager() as session, Dispatcher(session) as dispatcher:
        handle = dispatcher.request("GET", AddressString("https://example.org/items"))
        response = handle.result()
"""

from .api import Dispatcher, DownloadOptions, MultipartOptions, RequestOptions, UploadOptions
from .builder import build_request, merge_headers
from .download import (
    DestinationDecision,
    DownloadResult,
    ResponseMetadata,
    ResumeContinuation,
    ResumeToken,
    fixed_destination,
    suggested_download_destination,
    suggested_filename,
)
from .encoding import ParameterEncoding, encode, query_string
from .errors import (
    ConfigurationError,
    DispatchError,
    DownloadFailure,
    EncodingError,
    InvalidAddress,
    MultipartEncodingError,
    OperationCancelled,
    RequestKitError,
)
from .locators import AddressString, ResourceLocator, URLComponents
from .models import (
    CanonicalRequest,
    DataBody,
    FileBody,
    HTTPMethod,
    RequestBody,
    RequestConvertible,
    StreamBody,
)
from .multipart import (
    EncodingOutcome,
    MultipartEncodingCoordinator,
    MultipartEncodingFailure,
    MultipartEncodingSuccess,
    MultipartFormData,
    MultipartPart,
)
from .net import HttpxSessionManager, Operation
from .session import OperationHandle, SessionManager

__all__ = [
    # Facade
    "Dispatcher",
    "RequestOptions",
    "UploadOptions",
    "MultipartOptions",
    "DownloadOptions",
    # Construction
    "HTTPMethod",
    "ResourceLocator",
    "AddressString",
    "URLComponents",
    "CanonicalRequest",
    "RequestConvertible",
    "build_request",
    "merge_headers",
    "ParameterEncoding",
    "encode",
    "query_string",
    # Bodies
    "RequestBody",
    "DataBody",
    "FileBody",
    "StreamBody",
    # Multipart
    "MultipartPart",
    "MultipartFormData",
    "MultipartEncodingCoordinator",
    "MultipartEncodingSuccess",
    "MultipartEncodingFailure",
    "EncodingOutcome",
    # Downloads
    "DestinationDecision",
    "DownloadResult",
    "ResponseMetadata",
    "ResumeToken",
    "ResumeContinuation",
    "fixed_destination",
    "suggested_download_destination",
    "suggested_filename",
    # Sessions
    "SessionManager",
    "OperationHandle",
    "HttpxSessionManager",
    "Operation",
    # Errors
    "RequestKitError",
    "ConfigurationError",
    "InvalidAddress",
    "EncodingError",
    "MultipartEncodingError",
    "DispatchError",
    "DownloadFailure",
    "OperationCancelled",
]

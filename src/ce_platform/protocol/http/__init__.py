"""HTTP protocol binding."""

from ce_platform.protocol.http.message import HTTPMessage
from ce_platform.protocol.http.protocol import HTTPProtocol, RequestInfo, status_for
from ce_platform.protocol.http.result import RETRIABLE_STATUS_CODES, HTTPResult
from ce_platform.protocol.http.write import HTTPWriter, write_headers_and_body, write_request

__all__ = [
    "RETRIABLE_STATUS_CODES",
    "HTTPMessage",
    "HTTPProtocol",
    "HTTPResult",
    "HTTPWriter",
    "RequestInfo",
    "status_for",
    "write_headers_and_body",
    "write_request",
]

"""HTTP status codes as protocol results."""

from __future__ import annotations

from ce_platform.protocol.result import Result, ResultKind

# 404 Not Found, 425 Too Early, 429 Too Many Requests, 503 Service Unavailable,
# 504 Gateway Timeout
RETRIABLE_STATUS_CODES = frozenset({404, 425, 429, 503, 504})


def kind_for_status(status_code: int) -> ResultKind:
    if 200 <= status_code < 300:
        return ResultKind.ACK
    if status_code in RETRIABLE_STATUS_CODES:
        return ResultKind.RETRIABLE
    return ResultKind.NACK


class HTTPResult(Result):
    """A result carrying the peer's HTTP status code."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(
            kind_for_status(status_code),
            message or f"{status_code}",
            metadata={"status_code": status_code},
        )

"""Error taxonomy shared by the event model, bindings and protocols."""

from __future__ import annotations


class ValidationError(ValueError):
    """An event is malformed or misses a required attribute.

    ``errors`` maps attribute (or extension) name to the reason it failed.
    """

    def __init__(self, errors: dict[str, str] | None = None, **kwargs: str) -> None:
        self.errors: dict[str, str] = {**(errors or {}), **kwargs}
        super().__init__(self._render())

    @classmethod
    def single(cls, field: str, reason: str) -> ValidationError:
        return cls({field: reason})

    @property
    def field(self) -> str:
        """The first failing field."""
        return next(iter(self.errors), "")

    @property
    def reason(self) -> str:
        return self.errors.get(self.field, "")

    def _render(self) -> str:
        return "\n".join(f"{k}: {v}" for k, v in sorted(self.errors.items()))


class NotStructuredError(Exception):
    """The message cannot be read in structured mode."""

    def __init__(self, msg: str = "message is not in structured mode") -> None:
        super().__init__(msg)


class NotBinaryError(Exception):
    """The message cannot be read in binary mode."""

    def __init__(self, msg: str = "message is not in binary mode") -> None:
        super().__init__(msg)


class UnknownEncodingError(Exception):
    """The message is neither structured nor binary."""

    def __init__(self, msg: str = "unknown message encoding") -> None:
        super().__init__(msg)


class ContextCancelledError(Exception):
    """The operation's context was cancelled."""

    def __init__(self, msg: str = "context canceled") -> None:
        super().__init__(msg)


class DeadlineExceededError(ContextCancelledError):
    """The operation's context deadline passed."""

    def __init__(self, msg: str = "context deadline exceeded") -> None:
        super().__init__(msg)

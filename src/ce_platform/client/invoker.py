"""Receiver callback introspection.

``start_receiver`` accepts plain or async callables in several shapes::

    fn()                      fn(ctx)
    fn(event)                 fn(ctx, event)
    fn(message)               fn(ctx, message)

returning ``None``, a ``Result`` (or any exception), an ``Event`` or an
``(Event | None, Result | None)`` pair.  The shape is resolved once, at
registration, from the signature and its annotations.
"""

from __future__ import annotations

import inspect
import types
import typing
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from ce_platform.binding.message import Message
from ce_platform.context import Context
from ce_platform.event.event import Event

_CTX_NAMES = frozenset({"ctx", "context"})
_MESSAGE_NAMES = frozenset({"message", "msg"})


class ParamKind(StrEnum):
    CONTEXT = "context"
    EVENT = "event"
    MESSAGE = "message"


_NAMED_KINDS = {
    "Context": ParamKind.CONTEXT,
    "Event": ParamKind.EVENT,
    "Message": ParamKind.MESSAGE,
}


def _annotation_kind(annotation: Any) -> ParamKind | None:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return None
    if isinstance(annotation, str):
        name = annotation.rsplit(".", 1)[-1]
        if name in _NAMED_KINDS:
            return _NAMED_KINDS[name]
    elif isinstance(annotation, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _annotation_kind(args[0])
    elif isinstance(annotation, type):
        if issubclass(annotation, Context):
            return ParamKind.CONTEXT
        if issubclass(annotation, Event):
            return ParamKind.EVENT
        if annotation is Message or getattr(annotation, "_is_protocol", False):
            return ParamKind.MESSAGE
    msg = f"unsupported receiver parameter type: {annotation!r}"
    raise TypeError(msg)


def _param_kind(param: inspect.Parameter) -> ParamKind:
    kind = _annotation_kind(param.annotation)
    if kind is not None:
        return kind
    if param.name in _CTX_NAMES:
        return ParamKind.CONTEXT
    if param.name in _MESSAGE_NAMES:
        return ParamKind.MESSAGE
    return ParamKind.EVENT


_RETURN_TYPES = (type(None), Event, BaseException)


def _check_return(annotation: Any) -> None:
    if annotation in (inspect.Signature.empty, None, Any) or isinstance(annotation, str):
        return
    if isinstance(annotation, type) and not issubclass(annotation, _RETURN_TYPES):
        msg = f"unsupported receiver return type: {annotation.__name__}"
        raise TypeError(msg)


def _signature(fn: Callable[..., Any]) -> inspect.Signature:
    try:
        return inspect.signature(fn, eval_str=True)
    except NameError:
        return inspect.signature(fn)


class ReceiverFn:
    """A validated receiver callback."""

    def __init__(self, fn: Callable[..., Any]) -> None:
        if not callable(fn):
            msg = f"receiver must be callable, got {type(fn).__name__}"
            raise TypeError(msg)
        self.fn = fn
        sig = _signature(fn)
        kinds: list[ParamKind] = []
        for param in sig.parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                msg = "receiver must not take *args or **kwargs"
                raise TypeError(msg)
            if param.kind == param.KEYWORD_ONLY:
                if param.default is param.empty:
                    msg = f"receiver has a required keyword-only parameter {param.name!r}"
                    raise TypeError(msg)
                continue
            kinds.append(_param_kind(param))
        if len(kinds) > 2:
            msg = f"receiver takes at most 2 parameters (ctx, event), got {len(kinds)}"
            raise TypeError(msg)
        if ParamKind.CONTEXT in kinds[1:]:
            msg = "the context parameter must come first"
            raise TypeError(msg)
        if kinds.count(ParamKind.CONTEXT) > 1 or len(kinds) - kinds.count(ParamKind.CONTEXT) > 1:
            msg = "receiver takes at most one context and one event or message"
            raise TypeError(msg)
        _check_return(sig.return_annotation)
        self.wants_context = ParamKind.CONTEXT in kinds
        self.wants_event = ParamKind.EVENT in kinds
        self.wants_message = ParamKind.MESSAGE in kinds

    async def invoke(
        self, ctx: Context, event: Event | None, message: Message | None = None
    ) -> tuple[Event | None, BaseException | None]:
        """Call the callback; exceptions it raises come back as the result."""
        args: list[Any] = []
        if self.wants_context:
            args.append(ctx)
        if self.wants_event:
            args.append(event)
        if self.wants_message:
            args.append(message)
        try:
            returned = self.fn(*args)
            if inspect.isawaitable(returned):
                returned = await returned
        except Exception as exc:
            return None, exc
        return split_result(returned)


def split_result(returned: Any) -> tuple[Event | None, BaseException | None]:
    """Normalise a callback's return value to ``(event, result)``."""
    if returned is None:
        return None, None
    if isinstance(returned, Event):
        return returned, None
    if isinstance(returned, BaseException):
        return None, returned
    if isinstance(returned, tuple) and len(returned) == 2:
        event, result = returned
        if (event is None or isinstance(event, Event)) and (
            result is None or isinstance(result, BaseException)
        ):
            return event, result
    msg = f"unsupported receiver return value: {returned!r}"
    return None, TypeError(msg)

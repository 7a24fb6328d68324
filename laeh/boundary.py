"""
Try/except wrappers for callbacks that run after an asynchronous hop.

A callback handed to an event loop runs on a fresh stack: an exception raised in
it no longer reaches the code that started the operation, and the frames that
show where that was are gone. ``wrap_boundary`` records those frames when the
callback is wrapped, and when the wrapped callback fails it links them to the
error and passes the error to a completion handler instead of letting it escape
into the loop.

Example:
    >>> def read_config(path, done):
    ...     def on_read(err, data):
    ...         done(None, parse(data))
    ...     loop.call_soon(wrap_boundary(done, True, on_read), None, load(path))
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial, update_wrapper
from typing import Any, Final, TypeAlias

from loguru import logger

from laeh.errors import BoundaryConfigurationError, LeanError, MissingCallbackError
from laeh.formatter import get_formatter
from laeh.frames import StackFrame, capture_stack
from laeh.normalizer import check_or_raise, normalize_error

logger = logger.bind(component="boundary")

CompletionHandler: TypeAlias = Callable[[LeanError], Any]


@dataclass(frozen=True)
class ExplicitHandler:
    """Deliver failures to a handler fixed when the boundary is built."""

    handler: CompletionHandler

    def __post_init__(self) -> None:
        if not callable(self.handler):
            raise BoundaryConfigurationError(
                f"completion handler is not callable: {self.handler!r}"
            )

    def resolve(self, args: tuple[Any, ...]) -> CompletionHandler | None:
        return self.handler


class InferFromLastArgument:
    """Deliver failures to the invocation's last positional argument, if callable.

    This serves callbacks whose own signature ends in the continuation they are
    expected to call, e.g. ``logic(err, data, done)``.
    """

    _instance: InferFromLastArgument | None = None

    def __new__(cls) -> InferFromLastArgument:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def resolve(self, args: tuple[Any, ...]) -> CompletionHandler | None:
        if args and callable(args[-1]):
            return args[-1]
        return None

    def __repr__(self) -> str:
        return "INFER_FROM_LAST_ARGUMENT"


INFER_FROM_LAST_ARGUMENT: Final = InferFromLastArgument()

HandlerResolution: TypeAlias = ExplicitHandler | InferFromLastArgument

# Programmer errors raised inside wrapped logic are never delivered.
_FATAL_ERRORS = (MissingCallbackError, BoundaryConfigurationError)


def resolve_handler(handler: CompletionHandler | HandlerResolution | None) -> HandlerResolution:
    if handler is None:
        return INFER_FROM_LAST_ARGUMENT
    if isinstance(handler, (ExplicitHandler, InferFromLastArgument)):
        return handler
    return ExplicitHandler(handler)


class Boundary:
    """A wrapped callback. Built by ``wrap_boundary``, called by the asynchronous API."""

    def __init__(
        self,
        handler: HandlerResolution,
        check_error: bool,
        logic: Callable[..., Any],
        origin: tuple[StackFrame, ...],
    ) -> None:
        if not callable(logic):
            raise BoundaryConfigurationError(f"callback logic is not callable: {logic!r}")
        # update_wrapper copies logic.__dict__, so it must run before our own attributes
        update_wrapper(self, logic)
        self.handler = handler
        self.check_error = check_error
        self.logic = logic
        self.origin = origin

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        # the receiver is not part of the error-first arguments
        return partial(self._invoke, (instance,))

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._invoke((), *args, **kwargs)

    def _invoke(self, receiver: tuple[Any, ...], *args: Any, **kwargs: Any) -> Any:
        handler = self.handler.resolve(args)
        try:
            if self.check_error:
                check_or_raise(args[0] if args else None)
            return self.logic(*receiver, *args, **kwargs)
        except _FATAL_ERRORS:
            raise
        except Exception as exc:
            err = normalize_error(exc)
            err.link(LeanError.origin(self.origin))
            if handler is None:
                logger.error(
                    "no completion handler for failed callback {}: {}",
                    getattr(self.logic, "__qualname__", self.logic),
                    err.message,
                )
                raise MissingCallbackError() from err
            logger.debug(
                "delivering {} to {}",
                type(err).__name__,
                getattr(handler, "__qualname__", handler),
            )
            handler(err)
            return None

    def __repr__(self) -> str:
        return f"Boundary({self.logic!r}, check_error={self.check_error}, {self.handler!r})"


def _origin_limit() -> int | None:
    return get_formatter().config.stack_limit


def wrap_boundary(
    handler: CompletionHandler | HandlerResolution | None,
    check_error: bool,
    logic: Callable[..., Any],
) -> Boundary:
    """
    Wrap ``logic`` so that its failures reach ``handler`` instead of the event loop.

    Args:
        handler: Completion handler called with the LeanError on failure. ``None``
            (or ``INFER_FROM_LAST_ARGUMENT``) takes it from the last positional
            argument of each call.
        check_error: Treat the first argument as an error-first value and fail
            without running ``logic`` when it is truthy
        logic: The callback body

    Returns:
        A callable to hand to the asynchronous API in place of ``logic``

    Raises:
        BoundaryConfigurationError: ``handler`` or ``logic`` is not callable
    """
    resolution = resolve_handler(handler)
    return Boundary(resolution, check_error, logic, capture_stack(2, _origin_limit()))


def boundary(
    handler: CompletionHandler | HandlerResolution | None = None,
    *,
    check_error: bool = False,
) -> Callable[[Callable[..., Any]], Boundary]:
    """Decorator form of ``wrap_boundary``; the origin is where the decorator is applied."""
    resolution = resolve_handler(handler)

    def decorate(logic: Callable[..., Any]) -> Boundary:
        return Boundary(resolution, check_error, logic, capture_stack(2, _origin_limit()))

    return decorate


def future_callback(
    handler: CompletionHandler,
    logic: Callable[[Any, Any], Any],
) -> Callable[[asyncio.Future[Any]], None]:
    """
    Adapt error-first ``logic(err, result)`` into a done-callback for a future.

    The future's exception (or cancellation) becomes the error argument, and is
    delivered to ``handler`` without running ``logic``.
    """
    if handler is None:
        raise BoundaryConfigurationError("future_callback needs an explicit completion handler")
    wrapped = Boundary(
        ExplicitHandler(handler), True, logic, capture_stack(2, _origin_limit())
    )

    def on_done(future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            wrapped(asyncio.CancelledError(), None)
            return
        exc = future.exception()
        if exc is not None:
            wrapped(exc, None)
        else:
            wrapped(None, future.result())

    return on_done


__all__ = [
    "INFER_FROM_LAST_ARGUMENT",
    "Boundary",
    "CompletionHandler",
    "ExplicitHandler",
    "HandlerResolution",
    "InferFromLastArgument",
    "boundary",
    "future_callback",
    "resolve_handler",
    "wrap_boundary",
]

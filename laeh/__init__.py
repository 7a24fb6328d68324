"""
laeh - Lean asynchronous error handling.

Callbacks run by an event loop lose the stack of the code that scheduled them.
laeh wraps such callbacks so that a failure inside one is caught, linked to the
place the asynchronous call was started, and handed to a completion handler.
Errors render as compact one-line traces that chain across boundaries.

Example:
    >>> from laeh import configure_formatter, wrap_boundary
    >>>
    >>> configure_formatter(hiding=True)
    >>>
    >>> def on_done(err, result=None):
    ...     if err:
    ...         print(err.stack)
    >>>
    >>> loop.call_soon(wrap_boundary(on_done, True, handle_reply), None, reply)
"""

from loguru import logger

from laeh.boundary import (
    INFER_FROM_LAST_ARGUMENT,
    Boundary,
    ExplicitHandler,
    InferFromLastArgument,
    boundary,
    future_callback,
    wrap_boundary,
)
from laeh.errors import BoundaryConfigurationError, LeanError, MissingCallbackError
from laeh.formatter import (
    FormatterConfiguration,
    StackFormatter,
    configure_formatter,
    get_formatter,
    install_formatter,
)
from laeh.frames import StackFrame, capture_stack
from laeh.normalizer import check_or_raise, normalize_error

# Library logging stays silent until the host calls logger.enable("laeh").
logger.disable("laeh")

__version__ = "0.1.0"

__all__ = [
    "INFER_FROM_LAST_ARGUMENT",
    "Boundary",
    "BoundaryConfigurationError",
    "ExplicitHandler",
    "FormatterConfiguration",
    "InferFromLastArgument",
    "LeanError",
    "MissingCallbackError",
    "StackFormatter",
    "StackFrame",
    "boundary",
    "capture_stack",
    "check_or_raise",
    "configure_formatter",
    "future_callback",
    "get_formatter",
    "install_formatter",
    "normalize_error",
    "wrap_boundary",
]

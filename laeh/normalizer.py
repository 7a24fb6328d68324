"""Turning arbitrary error values into LeanError."""

from __future__ import annotations

from typing import Any

from laeh.errors import LeanError


def normalize_error(value: Any) -> LeanError:
    """Return ``value`` as a LeanError, promoting exceptions and plain values."""
    if isinstance(value, LeanError):
        return value
    if isinstance(value, BaseException):
        return LeanError.from_exception(value)
    return LeanError(str(value))


def check_or_raise(value: Any, meta: Any = None) -> None:
    """Raise ``value`` as a LeanError when it is truthy, do nothing otherwise.

    This is the terse form of the error-first check::

        def on_read(err, data):
            check_or_raise(err)
            ...

    ``meta`` is attached to the raised error, replacing any metadata it had.
    """
    if not value:
        return
    err = normalize_error(value)
    if meta is not None:
        err.meta = meta
    raise err


__all__ = ["check_or_raise", "normalize_error"]

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from laeh.formatter import StackFormatter, get_formatter
from laeh.frames import StackFrame, capture_stack, frames_from_traceback


class LeanError(Exception):
    """An error carrying its own stack capture and the boundaries it crossed.

    ``frames`` is taken when the error is created, most recent call first.
    ``prev`` links to the origin of the asynchronous boundary crossed before
    this one; following ``prev`` walks back towards the oldest origin.
    """

    def __init__(
        self,
        message: str = "",
        meta: Any = None,
        *,
        frames: tuple[StackFrame, ...] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.meta = meta
        self.prev: LeanError | None = None
        if frames is None:
            frames = capture_stack(2, get_formatter().config.stack_limit)
        self.frames = tuple(frames)

    @classmethod
    def from_exception(cls, exc: BaseException) -> LeanError:
        """Promote ``exc`` to a LeanError, keeping it as ``__cause__``."""
        if isinstance(exc, LeanError):
            return exc
        limit = get_formatter().config.stack_limit
        if exc.__traceback__ is not None:
            frames = frames_from_traceback(exc.__traceback__, limit)
        else:
            frames = capture_stack(2, limit)
        err = cls(str(exc) or type(exc).__name__, frames=frames)
        err.__cause__ = exc
        return err

    @classmethod
    def origin(cls, frames: tuple[StackFrame, ...]) -> LeanError:
        """A message-less link standing for where an asynchronous call started."""
        return cls(frames=frames)

    def boundaries(self) -> Iterator[LeanError]:
        link = self.prev
        while link is not None:
            yield link
            link = link.prev

    def link(self, origin: LeanError) -> LeanError:
        """Append ``origin`` as the oldest boundary of this chain."""
        chain = [self, *self.boundaries()]
        members = {id(link) for link in chain}
        if any(id(link) in members for link in (origin, *origin.boundaries())):
            raise ValueError("linking origin would make the boundary chain cyclic")
        chain[-1].prev = origin
        return self

    def format(self, formatter: StackFormatter | None = None) -> str:
        return (formatter or get_formatter()).render(self)

    @property
    def stack(self) -> str:
        """Lean rendering of this error through the installed formatter."""
        return self.format()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "meta": self.meta,
            "frames": [frame.to_dict() for frame in self.frames],
            "previous": self.prev.to_dict() if self.prev is not None else None,
        }


class MissingCallbackError(LeanError):
    """Raised when a failed boundary has no completion handler to deliver to."""

    def __init__(self, message: str = "missing callback", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class BoundaryConfigurationError(TypeError):
    """Raised when a boundary is built from something that is not callable."""


__all__ = ["BoundaryConfigurationError", "LeanError", "MissingCallbackError"]

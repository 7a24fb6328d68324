"""
Call-stack capture for lean error rendering.

Frames are recorded most recent call first, the order they are rendered in.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from types import TracebackType
from typing import Any


@dataclass(frozen=True)
class StackFrame:
    """One captured frame: where it ran and how its code was loaded."""

    filename: str
    lineno: int | None
    function: str
    is_eval: bool = False
    is_native: bool = False

    @classmethod
    def from_code(cls, filename: str, lineno: int | None, function: str) -> StackFrame:
        native = filename.startswith("<frozen")
        return cls(
            filename=filename,
            lineno=lineno,
            function=function,
            is_eval=filename.startswith("<") and not native,
            is_native=native,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "lineno": self.lineno,
            "function": self.function,
            "is_eval": self.is_eval,
            "is_native": self.is_native,
        }


def capture_stack(skip_frames: int = 1, limit: int | None = None) -> tuple[StackFrame, ...]:
    """
    Capture the current call stack.

    Args:
        skip_frames: Number of frames to skip (default 1 skips only this function)
        limit: Maximum number of frames to record, ``None`` for the whole stack

    Returns:
        Captured frames, most recent call first
    """
    try:
        frame = sys._getframe(skip_frames)
    except ValueError:
        return ()

    frames: list[StackFrame] = []
    while frame is not None and (limit is None or len(frames) < limit):
        frames.append(
            StackFrame.from_code(frame.f_code.co_filename, frame.f_lineno, frame.f_code.co_name)
        )
        frame = frame.f_back
    return tuple(frames)


def frames_from_traceback(
    tb: TracebackType | None, limit: int | None = None
) -> tuple[StackFrame, ...]:
    """Frames of a raised exception's traceback, innermost (raise site) first."""
    frames: list[StackFrame] = []
    while tb is not None:
        frames.append(
            StackFrame.from_code(
                tb.tb_frame.f_code.co_filename, tb.tb_lineno, tb.tb_frame.f_code.co_name
            )
        )
        tb = tb.tb_next
    frames.reverse()
    if limit is not None:
        del frames[limit:]
    return tuple(frames)


__all__ = ["StackFrame", "capture_stack", "frames_from_traceback"]

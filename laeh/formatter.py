"""Lean stack rendering for LeanError chains.

A rendered error is a single string of the form::

    message < ./app/db.py(41 < 17) < ./app/main.py(9) << ./app/main.py(30)

Frames are rendered without repeated paths, consecutive frames from the same
file collapse into one entry, and each crossed asynchronous boundary is appended
after the boundary separator, oldest last.

The installed formatter is process-wide. It is meant to be configured once at
startup; concurrent installers are not arbitrated and the last one wins.
"""

from __future__ import annotations

import json
import os
import sysconfig
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from frozendict import frozendict
from loguru import logger

if TYPE_CHECKING:
    from laeh.errors import LeanError
    from laeh.frames import StackFrame

logger = logger.bind(component="formatter")

_PACKAGE_DIR = Path(__file__).resolve().parent

# Suffixes of this library's own modules, compared against shortened paths.
INTERNAL_SUFFIXES: tuple[str, ...] = tuple(
    sorted(f"/{_PACKAGE_DIR.name}/{path.name}" for path in _PACKAGE_DIR.glob("*.py"))
)

# Python's own library; site-packages below these directories is not part of it.
STDLIB_PREFIXES: tuple[str, ...] = tuple(
    sorted({os.path.join(sysconfig.get_paths()[key], "") for key in ("stdlib", "platstdlib")})
)

DEFAULT_SUBSTITUTIONS: frozendict[str, str] = frozendict({"site-packages": "$"})

# Environment defaults, read once at import
HIDE_FRAMES = os.environ.get("LAEH_HIDE_FRAMES", "").lower() in ("1", "true", "yes")


def _parse_stack_limit(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return 10
    if raw.strip().lower() == "none":
        return None
    try:
        limit = int(raw)
    except ValueError:
        raise ValueError(f"LAEH_STACK_LIMIT must be an integer or 'none', got {raw!r}") from None
    if limit < 0:
        raise ValueError(f"LAEH_STACK_LIMIT must be non-negative, got {raw!r}")
    return limit


STACK_LIMIT = _parse_stack_limit(os.environ.get("LAEH_STACK_LIMIT"))

PATH_MARKERS = (".", "/")


@dataclass(frozen=True)
class FormatterConfiguration:
    hide_internal_frames: bool = False
    metadata_indent: int | str | None = None
    frame_separator: str = " < "
    boundary_separator: str = " << "
    line_separator: str = " < "
    substitutions: frozendict[str, str] = field(default_factory=lambda: DEFAULT_SUBSTITUTIONS)
    internal_suffixes: tuple[str, ...] = INTERNAL_SUFFIXES
    stdlib_prefixes: tuple[str, ...] = STDLIB_PREFIXES
    stack_limit: int | None = 10

    def __post_init__(self) -> None:
        if not isinstance(self.substitutions, frozendict):
            object.__setattr__(self, "substitutions", frozendict(self.substitutions))
        if self.stack_limit is not None and self.stack_limit < 0:
            raise ValueError(f"stack_limit must be non-negative, got {self.stack_limit}")


@dataclass(frozen=True)
class StackFormatter:
    """Renders LeanError chains according to a FormatterConfiguration."""

    config: FormatterConfiguration = field(default_factory=FormatterConfiguration)

    def configure(self, **changes: Any) -> StackFormatter:
        """Install a copy of this formatter with ``changes`` applied and return it."""
        formatter = StackFormatter(replace(self.config, **changes))
        install_formatter(formatter)
        return formatter

    def shorten_path(self, filename: str | None) -> str:
        name = filename or "?"
        cwd = os.getcwd()
        if cwd != os.sep and name.startswith(cwd + os.sep):
            name = "." + name[len(cwd) :]
        for literal, token in self.config.substitutions.items():
            name = name.replace(literal, token)
        return name

    def is_hidden(self, frame: StackFrame, shortened: str) -> bool:
        if not shortened.startswith(PATH_MARKERS):
            return True
        normalized = shortened.replace("\\", "/")
        if normalized.endswith(self.config.internal_suffixes):
            return True
        return _is_stdlib(frame.filename, self.config.stdlib_prefixes)

    def render_frames(self, frames: Iterable[StackFrame]) -> list[str]:
        entries: list[str] = []
        previous: str | None = None
        for frame in frames:
            name = self.shorten_path(frame.filename)
            if self.config.hide_internal_frames and self.is_hidden(frame, name):
                continue
            line = _line_indicator(frame)
            if name == previous:
                entries[-1] += self.config.line_separator + line
            else:
                entries.append(f"{name}({line}")
            previous = name
        return [entry + ")" for entry in entries]

    def render_meta(self, meta: Any) -> str:
        if isinstance(meta, (Mapping, list, tuple)):
            payload = dict(meta) if isinstance(meta, Mapping) else meta
            indent = self.config.metadata_indent
            if indent is None:
                return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
            return json.dumps(payload, indent=indent, ensure_ascii=False)
        return str(meta)

    def render(self, error: LeanError) -> str:
        """Render ``error`` and every boundary linked behind it."""
        segments: list[str] = []
        link: LeanError | None = error
        while link is not None:
            segments.append(self._render_one(link))
            link = link.prev
        return self.config.boundary_separator.join(segments)

    def _render_one(self, error: LeanError) -> str:
        text = ""
        if error.message:
            text += error.message + self.config.frame_separator
        if _has_meta(error.meta):
            text += self.render_meta(error.meta) + " "
        return text + self.config.frame_separator.join(self.render_frames(error.frames))


def _is_site_package(path: str) -> bool:
    normalized = path.replace("\\", "/").lower()
    return "/site-packages/" in normalized or "/dist-packages/" in normalized


def _is_stdlib(path: str, prefixes: tuple[str, ...]) -> bool:
    if not prefixes or _is_site_package(path):
        return False
    return path.startswith(prefixes)


def _has_meta(meta: Any) -> bool:
    # empty containers still render, only absent or falsy scalars are omitted
    return isinstance(meta, (Mapping, list, tuple)) or bool(meta)


def _line_indicator(frame: StackFrame) -> str:
    line = str(frame.lineno) if frame.lineno else "?"
    if frame.is_eval:
        line += "*"
    if frame.is_native:
        line += "+"
    return line


_installed: StackFormatter | None = None


def default_formatter() -> StackFormatter:
    return StackFormatter(
        FormatterConfiguration(hide_internal_frames=HIDE_FRAMES, stack_limit=STACK_LIMIT)
    )


def get_formatter() -> StackFormatter:
    """Return the installed formatter, or the environment default when none is."""
    if _installed is None:
        return default_formatter()
    return _installed


def install_formatter(formatter: StackFormatter | None) -> StackFormatter | None:
    """Install ``formatter`` process-wide and return the one it replaces.

    Passing ``None`` removes the installed formatter so the environment default
    applies again.
    """
    global _installed
    previous = _installed
    _installed = formatter
    if formatter is not None:
        logger.debug("installed stack formatter {}", formatter.config)
    return previous


def configure_formatter(
    hiding: bool,
    metadata_indent: int | str | None = None,
    frame_separator: str = " < ",
    boundary_separator: str = " << ",
    **overrides: Any,
) -> StackFormatter:
    """
    Install lean stack rendering for every LeanError.

    Args:
        hiding: Omit this library's frames, the standard library and frames without a file path
        metadata_indent: ``indent`` for pretty-printing metadata, e.g. ``2`` or ``"\\t"``
        frame_separator: Joins rendered frames, use ``"\\n"`` for line-based consumers
        boundary_separator: Joins crossed boundaries, e.g. ``"\\n<<\\n"``
        **overrides: Other FormatterConfiguration fields

    Returns:
        The installed formatter; call ``configure`` on it to adjust further
    """
    overrides.setdefault("stack_limit", STACK_LIMIT)
    config = FormatterConfiguration(
        hide_internal_frames=hiding,
        metadata_indent=metadata_indent,
        frame_separator=frame_separator or " < ",
        boundary_separator=boundary_separator or " << ",
        **overrides,
    )
    formatter = StackFormatter(config)
    install_formatter(formatter)
    return formatter


__all__ = [
    "DEFAULT_SUBSTITUTIONS",
    "FormatterConfiguration",
    "INTERNAL_SUFFIXES",
    "StackFormatter",
    "configure_formatter",
    "default_formatter",
    "get_formatter",
    "install_formatter",
]

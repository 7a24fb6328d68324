"""
Pytest configuration for laeh tests.

The installed stack formatter is process-wide, so every test starts from the
environment default and gets the previous formatter back afterwards.
"""

import pytest

from laeh import StackFormatter, configure_formatter, install_formatter


@pytest.fixture(autouse=True)
def isolated_formatter():
    previous = install_formatter(None)
    yield
    install_formatter(previous)


@pytest.fixture
def lean() -> StackFormatter:
    """Hiding formatter that keeps one frame per capture, so renders are exact."""
    return configure_formatter(True, stack_limit=1)

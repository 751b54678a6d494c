"""
Pytest configuration and shared fixtures for winmaint tests.
"""

import logging

import pytest


class FakeProcess:
    """Stand-in for psutil.Process exposing exe() and cmdline()."""

    def __init__(self, exe=None, cmdline=None, exe_error=None, cmdline_error=None):
        self._exe = exe
        self._cmdline = cmdline if cmdline is not None else []
        self._exe_error = exe_error
        self._cmdline_error = cmdline_error

    def exe(self):
        if self._exe_error:
            raise self._exe_error
        return self._exe

    def cmdline(self):
        if self._cmdline_error:
            raise self._cmdline_error
        return self._cmdline


@pytest.fixture
def make_executable(tmp_path):
    """Create an empty file standing in for an executable."""

    def _make(relative_path):
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"MZ")
        return str(path)

    return _make


@pytest.fixture
def restore_root_logging():
    """Put root logger handlers back the way they were after a test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            handler.close()
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def fake_process():
    """The FakeProcess class, for building process lists."""
    return FakeProcess

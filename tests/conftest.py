"""Shared test configuration and fixtures."""

import logging
import time
from pathlib import Path

import pytest

from tandem.cli import cleanup_logging
from tandem.config import TandemConfig


@pytest.fixture(scope="function", autouse=True)
def cleanup_logging_handlers():
    """Automatically cleanup logging handlers after each test to prevent ResourceWarnings."""
    yield
    cleanup_logging()


@pytest.fixture(scope="function", autouse=True)
def reset_logging():
    """Reset logging configuration after each test."""
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.WARNING)


@pytest.fixture
def work_dir(tmp_path):
    """Working directory for a workflow."""
    path = tmp_path / "project"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def config():
    """Default configuration without notifications or file logging."""
    return TandemConfig()


@pytest.fixture
def make_runner(work_dir):
    """Write a small shell script into the working directory."""

    def _make(name: str, body: str = "exit 0", *, executable: bool = True) -> Path:
        path = work_dir / name
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(0o755 if executable else 0o644)
        return path

    return _make


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait

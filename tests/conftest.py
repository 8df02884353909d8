"""Shared pytest fixtures for fibengine tests."""

from __future__ import annotations

import logging
from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast in-process unit tests")


def fibonacci_reference(k: int) -> int:
    a, b = 0, 1
    for _ in range(k):
        a, b = b, a + b
    return a


@pytest.fixture
def reference():
    return fibonacci_reference


@pytest.fixture
def session_lock():
    from fibengine.session import SessionLock

    return SessionLock()


@pytest.fixture
def device(session_lock):
    from fibengine.device import FibonacciDevice

    return FibonacciDevice(lock=session_lock)


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch):
    from fastapi.testclient import TestClient

    from fibengine import main as main_mod

    monkeypatch.setattr(main_mod, "_device", None)
    with TestClient(main_mod.api_app) as client:
        yield client


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """Drop handlers installed by setup_logging so they do not outlive capture."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)

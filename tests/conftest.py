"""
Global pytest configuration and fixtures for latency benchmark tests.

This module provides:
- An in-memory stand-in for PostgresConnectionPool
- FastAPI test client fixtures
- Reset of the process-wide shared pool between tests

E2E tests run against a real Postgres at DATABASE_URL and only when
E2E_TEST=1 is set.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from latencybench.connectors import postgres_pool


def is_e2e_test() -> bool:
    """Check if we're running E2E tests (vs unit tests)."""
    return os.getenv("E2E_TEST", "").lower() in ("1", "true", "yes")


# =============================================================================
# Fake pool
# =============================================================================


def _normalize(query: str) -> str:
    return " ".join(query.split())


class FakePool:
    """
    Records statements and keeps inserted payloads in memory.

    ``failures`` maps a statement prefix (e.g. "TRUNCATE") to the exception to
    raise; ``insert_failure_at`` makes the k-th INSERT raise ``insert_error``.
    """

    def __init__(
        self,
        *,
        scoped: bool = False,
        failures: Optional[dict[str, BaseException]] = None,
        insert_failure_at: Optional[int] = None,
        insert_error: Optional[BaseException] = None,
    ):
        self.scoped = scoped
        self.pool_name = "fake-scoped" if scoped else "fake-shared"
        self.failures = dict(failures or {})
        self.insert_failure_at = insert_failure_at
        self.insert_error = insert_error or RuntimeError("insert failed")
        self.statements: list[str] = []
        self.payloads: list[str] = []
        self.inserts = 0
        self.close_calls = 0

    def _record(self, query: str) -> str:
        normalized = _normalize(query)
        self.statements.append(normalized)
        for prefix, exc in self.failures.items():
            if normalized.startswith(prefix):
                raise exc
        return normalized

    def count(self, prefix: str) -> int:
        return sum(1 for s in self.statements if s.startswith(prefix))

    async def execute_query(self, query: str, *args: Any, timeout=None) -> str:
        normalized = self._record(query)
        if normalized.startswith("INSERT"):
            self.inserts += 1
            if self.insert_failure_at is not None and self.inserts == self.insert_failure_at:
                raise self.insert_error
            self.payloads.append(args[0])
            return "INSERT 0 1"
        if normalized.startswith(("TRUNCATE", "DELETE")):
            self.payloads.clear()
        return "OK"

    async def fetch_one(self, query: str, *args: Any, timeout=None):
        self._record(query)
        if not self.payloads:
            return None
        return {"id": len(self.payloads), "payload": self.payloads[-1]}

    async def fetch_val(self, query: str, *args: Any, timeout=None):
        self._record(query)
        return 1

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture(autouse=True)
def reset_shared_pool(monkeypatch):
    """Start every test with an empty shared-pool slot and a fresh lock."""
    monkeypatch.setattr(postgres_pool, "_default_pool", None)
    monkeypatch.setattr(postgres_pool, "_default_pool_lock", asyncio.Lock())


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def client() -> TestClient:
    """
    Synchronous FastAPI test client for unit tests.
    """
    from latencybench.main import app

    return TestClient(app)


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "e2e: marks tests as end-to-end tests requiring real database (deselect with '-m \"not e2e\"')",
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically skip E2E tests unless E2E_TEST=1 is set.
    """
    skip_e2e = pytest.mark.skip(reason="E2E tests require E2E_TEST=1")

    for item in items:
        if "e2e" in item.keywords and not is_e2e_test():
            item.add_marker(skip_e2e)

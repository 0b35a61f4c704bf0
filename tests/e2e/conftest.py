"""
E2E Test Fixtures - real Postgres configuration.

E2E tests talk to the database at DATABASE_URL (or E2E_DATABASE_URL) and
run only when E2E_TEST=1 is set.
"""

from __future__ import annotations

import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient

E2E_TABLE = os.getenv("E2E_LATENCY_TABLE", "latency_test_e2e")


@pytest.fixture(scope="module")
def e2e_database_url() -> str:
    from latencybench.config import settings

    url = os.getenv("E2E_DATABASE_URL") or settings.DATABASE_URL
    if not url:
        pytest.skip("E2E tests require DATABASE_URL (or E2E_DATABASE_URL)")
    return url


@pytest.fixture
def e2e_client(e2e_database_url: str, monkeypatch) -> Generator[TestClient, None, None]:
    """
    Test client bound to one event loop for the whole test, so the shared
    pool survives across requests. Uses a dedicated table.
    """
    from latencybench.config import settings
    from latencybench.main import app

    monkeypatch.setattr(settings, "DATABASE_URL", e2e_database_url)
    monkeypatch.setattr(settings, "LATENCY_TABLE", E2E_TABLE)

    with TestClient(app) as client:
        yield client

"""
End-to-End Tests for the latency benchmark.

These tests run against a real Postgres at DATABASE_URL.

Run with: E2E_TEST=1 pytest tests/e2e/ -v
"""

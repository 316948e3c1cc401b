"""Smoke tests for the LedgerSync engine."""

from pathlib import Path

from fastapi.testclient import TestClient
from ledgersync_core import ImportService, SqliteLedgerStore
from ledgersync_engine.main import create_app


def test_health_endpoint_returns_ok(tmp_path: Path) -> None:
    service = ImportService(SqliteLedgerStore(tmp_path / "ledger.db"))
    client = TestClient(create_app(service))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}

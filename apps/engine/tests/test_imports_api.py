"""Integration tests for the import endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from ledgersync_core import EngineSettings, ImportService, SqliteLedgerStore
from ledgersync_engine.main import create_app

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    service = ImportService(
        SqliteLedgerStore(tmp_path / "ledger.db"),
        settings=EngineSettings(data_root=tmp_path),
        clock=lambda: NOW,
    )
    return TestClient(create_app(service))


def _wallet(client: TestClient, balance: int = 1_000_000_000) -> int:
    response = client.post("/wallets", json={"name": "Everyday", "balance": balance})
    assert response.status_code == 201
    return response.json()["id"]


def _normalize(client: TestClient, rows: list[dict[str, object]]) -> list[dict[str, object]]:
    response = client.post("/imports/normalize", json={"rows": rows})
    assert response.status_code == 200
    return response.json()


def test_import_flow_from_rows_to_undo(client: TestClient) -> None:
    wallet_id = _wallet(client)
    candidates = _normalize(
        client,
        [
            {"row_number": 1, "date": "2024-06-10", "amount": "5000", "description": "Salary"},
            {"row_number": 2, "date": "2024-06-11", "amount": "-4000", "description": "Rent"},
            {"row_number": 3, "date": "bad", "amount": "10", "description": "Broken"},
        ],
    )
    assert [c["is_valid"] for c in candidates] == [True, True, False]

    duplicates = client.post(
        "/imports/duplicates", json={"wallet_id": wallet_id, "candidates": candidates}
    )
    assert duplicates.json() == []

    classified = client.post(
        "/imports/classify",
        json={"candidates": candidates, "strategy": "review_each"},
    ).json()
    assert [c["row_number"] for c in classified["errors"]] == [3]
    assert [c["row_number"] for c in classified["needs_category"]] == [1, 2]

    executed = client.post(
        "/imports/execute",
        json={"wallet_id": wallet_id, "rows": candidates, "strategy": "review_each"},
    )
    assert executed.status_code == 200
    summary = executed.json()
    assert summary["total_imported"] == 2
    assert summary["total_skipped"] == 1
    assert summary["net_change"] == 10_000_000
    assert summary["new_wallet_balance"] == 1_010_000_000

    history = client.get(f"/wallets/{wallet_id}/imports").json()
    assert [entry["batch_id"] for entry in history["entries"]] == [summary["batch_id"]]
    assert history["entries"][0]["can_undo"] is True

    undone = client.post(f"/imports/{summary['batch_id']}/undo")
    assert undone.status_code == 200
    assert undone.json()["new_wallet_balance"] == 1_000_000_000

    again = client.post(f"/imports/{summary['batch_id']}/undo")
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyUndone"


def test_incomplete_review_is_a_conflict(client: TestClient) -> None:
    wallet_id = _wallet(client)
    row = {"row_number": 1, "date": "2024-06-10", "amount": "-350", "description": "Coffee"}
    first = _normalize(client, [row])
    client.post(
        "/imports/execute",
        json={"wallet_id": wallet_id, "rows": first, "strategy": "keep_all"},
    )

    response = client.post(
        "/imports/execute",
        json={"wallet_id": wallet_id, "rows": first, "strategy": "review_each"},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "IncompleteReview"
    assert (body["expected"], body["received"]) == (1, 0)


def test_convert_endpoint_and_rate_errors(client: TestClient) -> None:
    wallet_id = _wallet(client)
    candidates = _normalize(
        client,
        [
            {
                "row_number": 1,
                "date": "2024-06-10",
                "amount": "-10",
                "description": "Hotel",
                "currency": "USD",
            }
        ],
    )

    converted = client.post(
        "/imports/convert",
        json={
            "wallet_id": wallet_id,
            "candidates": candidates,
            "manual_rates": {"USD": {"rate": "25400"}},
        },
    )
    assert converted.status_code == 200
    body = converted.json()
    assert body["candidates"][0]["amount"] == -2_540_000_000
    assert body["conversions"][0]["rate_source"] == "manual"

    rejected = client.post(
        "/imports/convert",
        json={
            "wallet_id": wallet_id,
            "candidates": candidates,
            "manual_rates": {"USD": {"rate": "0"}},
        },
    )
    assert rejected.status_code == 422
    assert rejected.json()["error"] == "CurrencyRateInvalid"


def test_not_found_errors(client: TestClient) -> None:
    assert client.post("/imports/missing/undo").status_code == 404
    assert client.get("/wallets/999/imports").status_code == 404
    response = client.post("/imports/duplicates", json={"wallet_id": 999, "candidates": []})
    assert response.status_code == 404


def test_nothing_to_import(client: TestClient) -> None:
    wallet_id = _wallet(client)
    candidates = _normalize(
        client,
        [{"row_number": 1, "date": "bad", "amount": "10", "description": "Broken"}],
    )

    response = client.post(
        "/imports/execute",
        json={"wallet_id": wallet_id, "rows": candidates, "strategy": "keep_all"},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "NothingToImport"


def test_undo_out_of_order_is_a_conflict(client: TestClient) -> None:
    wallet_id = _wallet(client)
    first_rows = _normalize(
        client,
        [{"row_number": 1, "date": "2024-06-08", "amount": "-100", "description": "Power bill"}],
    )
    first = client.post(
        "/imports/execute",
        json={"wallet_id": wallet_id, "rows": first_rows, "strategy": "keep_all"},
    ).json()
    second_rows = _normalize(
        client,
        [{"row_number": 1, "date": "2024-06-09", "amount": "-102", "description": "Power bill"}],
    )
    second = client.post(
        "/imports/execute",
        json={"wallet_id": wallet_id, "rows": second_rows, "strategy": "auto_merge"},
    ).json()
    assert second["duplicates_merged"] == 1

    response = client.post(f"/imports/{first['batch_id']}/undo")

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "UndoConflict"
    assert body["blocking_batch_id"] == second["batch_id"]

from __future__ import annotations

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from api import queries
from api.main import XLSX_MEDIA_TYPE, app
from conftest import details_row, make_workbook
from pipeline.ledger import FundProgressLedger, MemoryStore


@pytest.fixture(autouse=True)
def fresh_state():
    queries.reset_session()
    queries.set_ledger(FundProgressLedger(MemoryStore()))
    yield
    queries.reset_session()
    queries.set_ledger(None)


@pytest.fixture
def client():
    return TestClient(app)


def _upload(client, data: bytes):
    return client.post("/upload", files={"file": ("summary.xlsx", data, XLSX_MEDIA_TYPE)})


@pytest.fixture
def loaded(client, sample_workbook):
    assert _upload(client, sample_workbook).status_code == 200
    return client


def test_root(client):
    assert "/calculate" in client.get("/").json()["endpoints"]


def test_upload(client, sample_workbook):
    body = _upload(client, sample_workbook).json()
    assert body == {"records": 6, "programs": 3, "funds": ["General Fund", "Water Fund"]}


def test_upload_without_details_sheet(client):
    resp = _upload(client, make_workbook([details_row()], sheet="Sheet1"))
    assert resp.status_code == 422
    assert "Details" in resp.json()["detail"]
    assert queries._session["programs"] == {}


def test_upload_non_xlsx_bytes(client):
    resp = _upload(client, b"not a workbook")
    assert resp.status_code == 422
    assert "Error reading file" in resp.json()["detail"]
    assert queries._session["programs"] == {}


def test_calculate_with_no_usable_programs_is_rejected(client):
    data = make_workbook([details_row(program_id=None), details_row(program_id=None)])
    assert _upload(client, data).json()["programs"] == 0
    resp = client.post("/calculate", json={"fund": "All Funds"})
    assert resp.status_code == 409
    assert queries.get_ledger().entries() == {}


def test_calculate_before_upload_is_rejected(client):
    resp = client.post("/calculate", json={"fund": "General Fund"})
    assert resp.status_code == 409
    assert "upload" in resp.json()["detail"].lower()


def test_funds(loaded):
    body = loaded.get("/funds").json()
    assert body["funds"] == ["All Funds", "General Fund", "Water Fund"]
    assert body["default_settings"]["quartile_changes"]["4th Quartile"] == -5


def test_calculate_specific_fund(loaded):
    resp = loaded.post("/calculate", json={"fund": "General Fund"})
    assert resp.status_code == 200
    body = resp.json()
    summary = body["result"]["summary"]
    # P1: 100k at +5%, P2: 100k at -5% floored at 98k revenue
    assert summary["total_original"] == pytest.approx(200_000)
    assert summary["total_target"] == pytest.approx(203_000)
    assert summary["fund_filter"] == "General Fund"
    assert len(body["result"]["by_quartile"]) == 4
    assert [d["department"] for d in body["departments"]] == ["Parks", "Library"]
    assert body["departments"][1]["total_resources"] == pytest.approx(98_000 + 98_000)
    assert body["progress"]["calculated"] is True
    assert body["progress"]["saved"] is False


def test_calculate_custom_settings(loaded):
    resp = loaded.post("/calculate", json={
        "fund": "All Funds",
        "settings": {
            "quartile_changes": {"1st Quartile": 0, "2nd Quartile": 10, "3rd Quartile": 0, "4th Quartile": 0},
            "protect_revenue": False,
        },
    })
    summary = resp.json()["result"]["summary"]
    assert summary["total_target"] == pytest.approx(250_000 + 5_000)
    assert resp.json()["progress"] is None


def test_calculate_unknown_fund(loaded):
    assert loaded.post("/calculate", json={"fund": "Nope"}).status_code == 409


def test_save_flow(loaded):
    assert loaded.post("/progress/General Fund/save").status_code == 409

    loaded.post("/calculate", json={"fund": "General Fund"})
    resp = loaded.post("/progress/General Fund/save")
    assert resp.status_code == 200
    assert resp.json()["progress"]["saved"] is True

    loaded.post("/calculate", json={"fund": "General Fund"})
    assert loaded.get("/results").json()["progress"]["saved"] is True


def test_save_rejected_for_all_funds(loaded):
    loaded.post("/calculate", json={"fund": "All Funds"})
    assert loaded.post("/progress/All Funds/save").status_code == 409


def test_save_rejected_when_result_is_for_another_fund(loaded):
    loaded.post("/calculate", json={"fund": "General Fund"})
    loaded.post("/calculate", json={"fund": "Water Fund"})
    assert loaded.post("/progress/General Fund/save").status_code == 409


def test_progress_lists_every_fund(loaded):
    loaded.post("/calculate", json={"fund": "Water Fund"})
    body = loaded.get("/progress").json()
    assert body["total_funds"] == 2
    assert body["calculated"] == 1
    assert body["saved"] == 0
    statuses = {f["fund"]: (f["status"], f["current"]) for f in body["funds"]}
    assert statuses == {"General Fund": ("Pending", False), "Water Fund": ("Calculated", True)}


def test_clear_requires_confirmation(loaded):
    loaded.post("/calculate", json={"fund": "General Fund"})
    assert loaded.delete("/progress").status_code == 409
    assert loaded.get("/progress").json()["calculated"] == 1

    assert loaded.delete("/progress", params={"confirm": "true"}).status_code == 200
    assert loaded.get("/progress").json()["calculated"] == 0
    assert loaded.post("/progress/General Fund/save").status_code == 409


def test_results_before_calculation(loaded):
    assert loaded.get("/results").status_code == 409


def test_export(loaded):
    assert loaded.get("/export").status_code == 409

    loaded.post("/calculate", json={"fund": "Water Fund"})
    resp = loaded.get("/export")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == XLSX_MEDIA_TYPE
    assert "PBB_Target_Budgets_Water_Fund.xlsx" in resp.headers["content-disposition"]
    wb = load_workbook(BytesIO(resp.content))
    assert "Department Funding Matrix" in wb.sheetnames


def test_health(loaded):
    body = loaded.get("/health").json()
    assert body["programs_loaded"] == 3
    assert body["ledger_path"] == "memory"

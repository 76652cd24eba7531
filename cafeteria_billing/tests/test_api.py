"""Tests for the cafeteria billing HTTP API."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from cafeteria_billing.core.api.server import create_app
from cafeteria_billing.core.api.settings import load_settings, startup_warnings, validate_host
from cafeteria_billing.core.billing.invoice import deterministic_invoice_id
from cafeteria_billing.core.billing.store import billing_store
from cafeteria_billing.tests.conftest import local_ts


def _make_client(tmp_path: Path, **kwargs) -> TestClient:
    """Create a TestClient with given settings overrides."""
    fields = dict(
        data_dir=str(tmp_path),
        persist=False,
        companies_path="",
        timezone="America/Mexico_City",
        include_anonymous=False,
        dispatch_url="",
    )
    fields.update(kwargs)
    app = create_app(load_settings(**fields))
    return TestClient(app)


def _seed(client: TestClient) -> None:
    r = client.put("/v1/companies/acme", json={
        "name": "ACME Foods", "meal_price": "80.00", "daily_target": 300,
        "billing_email": "facturas@acme.example",
    })
    assert r.status_code == 200
    r = client.put("/v1/companies/globex", json={"name": "Globex", "meal_price": "65.50"})
    assert r.status_code == 200
    r = client.post("/v1/consumptions", json={
        "company_id": "acme", "employee_id": "e0", "timestamp": local_ts(2).isoformat(),
    })
    assert r.status_code == 201
    # bulk rows go straight to the store; the API path is covered above
    for i in range(1, 250):
        billing_store.record_consumption(company_id="acme", employee_id=f"e{i}", timestamp=local_ts(2))
    for i in range(42):
        billing_store.record_consumption(company_id="globex", employee_id=f"g{i}", timestamp=local_ts(10))


@pytest.fixture
def client(tmp_path):
    return _make_client(tmp_path)


# ── Health and settings ────────────────────────────────────────


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert set(body) == {"status", "version", "time", "timezone"}
        assert body["timezone"] == "America/Mexico_City"
        assert "x-request-id" in r.headers

    def test_request_id_echoed(self, client):
        r = client.get("/health", headers={"x-request-id": "abc123"})
        assert r.headers["x-request-id"] == "abc123"

    def test_json_request_log(self, tmp_path, caplog):
        caplog.set_level(logging.INFO, logger="cafeteria.api")
        c = _make_client(tmp_path, log_format="json")
        c.get("/health", headers={"x-request-id": "req-1"})
        lines = [json.loads(r.getMessage()) for r in caplog.records if r.getMessage().startswith("{")]
        assert lines[-1]["request_id"] == "req-1"
        assert lines[-1]["path"] == "/health"
        assert lines[-1]["status"] == 200

    def test_docs_disabled_in_prod(self, tmp_path):
        c = _make_client(tmp_path, env="prod", enable_docs=False)
        assert c.get("/docs").status_code == 404

    def test_validate_host(self):
        validate_host("127.0.0.1", False)
        with pytest.raises(ValueError):
            validate_host("0.0.0.0", False)
        validate_host("0.0.0.0", True)

    def test_settings_mask_dispatch_url(self):
        s = load_settings(dispatch_url="https://secret.example/hook")
        assert "secret" not in repr(s)
        assert s.to_dict()["dispatch_url"] == "configured"
        assert not any("DISPATCH" in w for w in startup_warnings(s))

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("CAFETERIA_INCLUDE_ANONYMOUS", "1")
        monkeypatch.setenv("CAFETERIA_CACHE_SIZE", "16")
        s = load_settings()
        assert s.include_anonymous is True
        assert s.cache_size == 16


# ── Companies and consumptions ─────────────────────────────────


class TestCompanies:
    def test_upsert_and_list(self, client):
        _seed(client)
        r = client.get("/v1/companies")
        assert r.status_code == 200
        body = r.json()
        assert body["total"] == 2
        acme = body["companies"][0]
        assert acme["id"] == "acme"
        assert acme["meal_price"] == "80.00"
        assert acme["chargeable_weekdays"] == [1, 2, 3, 4]
        assert acme["include_anonymous"] is False

    def test_invalid_price_is_422(self, client):
        r = client.put("/v1/companies/bad", json={"name": "Bad", "meal_price": "lots"})
        assert r.status_code == 422
        assert r.json()["error"]["type"] == "VALIDATION_ERROR"

    def test_invalid_weekday_is_422(self, client):
        r = client.put("/v1/companies/bad", json={"name": "Bad", "chargeable_weekdays": [9]})
        assert r.status_code == 422

    def test_negative_target_is_422(self, client):
        r = client.put("/v1/companies/bad", json={"name": "Bad", "daily_target": -5})
        assert r.status_code == 422

    def test_anonymous_default_from_settings(self, tmp_path):
        c = _make_client(tmp_path, include_anonymous=True)
        r = c.put("/v1/companies/pos", json={"name": "POS"})
        assert r.json()["include_anonymous"] is True


class TestConsumptions:
    def test_record_and_void(self, client):
        _seed(client)
        r = client.post("/v1/consumptions", json={
            "company_id": "globex", "timestamp": local_ts(11).isoformat(),
        })
        assert r.status_code == 201
        cid = r.json()["id"]
        r = client.post(f"/v1/consumptions/{cid}/void")
        assert r.status_code == 200
        assert r.json()["voided"] is True

    def test_unknown_company_is_404(self, client):
        r = client.post("/v1/consumptions", json={"company_id": "ghost"})
        assert r.status_code == 404
        assert r.json()["error"]["type"] == "NOT_FOUND"

    def test_void_unknown_is_404(self, client):
        assert client.post("/v1/consumptions/nope/void").status_code == 404


# ── Billing ────────────────────────────────────────────────────


class TestBilling:
    def test_daily_rows(self, client):
        _seed(client)
        r = client.get("/v1/billing/daily", params={"company_id": "acme", "period": "2026-03"})
        assert r.status_code == 200
        body = r.json()
        assert body["rows"][0]["date"] == "2026-03-02"
        assert body["rows"][0]["actual_count"] == 250
        assert body["rows"][0]["billed_count"] == 300
        assert body["total"] == "432000.00"
        assert body["billed_meals"] == 18 * 300

    def test_daily_through(self, client):
        _seed(client)
        r = client.get("/v1/billing/daily", params={
            "company_id": "acme", "period": "2026-03", "through": "2026-03-03",
        })
        body = r.json()
        assert body["through"] == "2026-03-03"
        assert len(body["rows"]) == 2
        assert body["total"] == "48000.00"

    def test_through_outside_period_is_422(self, client):
        _seed(client)
        r = client.get("/v1/billing/daily", params={
            "company_id": "acme", "period": "2026-03", "through": "2026-04-01",
        })
        assert r.status_code == 422

    def test_bad_period_is_422(self, client):
        _seed(client)
        r = client.get("/v1/billing/daily", params={"company_id": "acme", "period": "2026-13"})
        assert r.status_code == 422
        assert r.json()["error"]["type"] == "VALIDATION_ERROR"

    def test_void_reflected_immediately(self, client):
        _seed(client)
        r = client.post("/v1/consumptions", json={
            "company_id": "globex", "timestamp": local_ts(10).isoformat(),
        })
        cid = r.json()["id"]
        before = client.get("/v1/billing/daily", params={"company_id": "globex", "period": "2026-03"})
        assert before.json()["actual_meals"] == 43
        client.post(f"/v1/consumptions/{cid}/void")
        after = client.get("/v1/billing/daily", params={"company_id": "globex", "period": "2026-03"})
        assert after.json()["actual_meals"] == 42
        assert after.json()["total"] == "2751.00"

    def test_anonymous_excluded_by_default(self, client):
        _seed(client)
        client.post("/v1/consumptions", json={
            "company_id": "globex", "employee_id": "anonymous", "timestamp": local_ts(10).isoformat(),
        })
        r = client.get("/v1/billing/daily", params={"company_id": "globex", "period": "2026-03"})
        assert r.json()["actual_meals"] == 42

    def test_preview(self, client):
        _seed(client)
        r = client.get("/v1/billing/invoice-preview", params={"company_id": "globex", "period": "2026-03"})
        assert r.status_code == 200
        assert r.json()["total_cents"] == 275100

    def test_revenue(self, client):
        _seed(client)
        r = client.get("/v1/billing/revenue", params={"period": "2026-03"})
        body = r.json()
        assert body["total"] == "434751.00"
        assert [c["company_id"] for c in body["companies"]] == ["acme", "globex"]
        assert sum(c["total_cents"] for c in body["companies"]) == body["total_cents"]

    def test_revenue_rejects_bad_period_without_companies(self, client):
        r = client.get("/v1/billing/revenue", params={"period": "garbage"})
        assert r.status_code == 422
        assert r.json()["error"]["type"] == "VALIDATION_ERROR"

    def test_trend(self, client):
        _seed(client)
        r = client.get("/v1/billing/trend", params={"period": "2026-03", "months": 2})
        body = r.json()
        assert [p["period"] for p in body["points"]] == ["2026-02", "2026-03"]
        # February: 16 Mon-Thu days at the acme minimum
        assert body["points"][0]["total_cents"] == 16 * 300 * 8000
        assert body["points"][1]["total"] == "434751.00"

    def test_trend_months_bounds(self, client):
        assert client.get("/v1/billing/trend", params={"months": 0}).status_code == 422


# ── Invoices ───────────────────────────────────────────────────


class TestInvoices:
    def test_generate_and_fetch(self, client, tmp_path):
        _seed(client)
        r = client.post("/v1/billing/invoice", json={"company_id": "acme", "period": "2026-03"})
        assert r.status_code == 200
        body = r.json()
        assert body["invoice_id"] == deterministic_invoice_id("acme", "2026-03")
        assert body["status"] == "PENDING"
        assert Path(body["invoice_path"]).exists()
        assert Path(body["csv_path"]).parent == tmp_path / "billing" / "invoices"

        r = client.get(f"/v1/billing/invoice/{body['invoice_id']}")
        assert r.status_code == 200
        assert r.json()["total"] == "432000.00"

    def test_regenerate_same_id(self, client):
        _seed(client)
        a = client.post("/v1/billing/invoice", json={"company_id": "acme", "period": "2026-03"}).json()
        b = client.post("/v1/billing/invoice", json={"company_id": "acme", "period": "2026-03"}).json()
        assert a["invoice_id"] == b["invoice_id"]

    def test_unknown_invoice(self, client):
        r = client.get("/v1/billing/invoice/inv-missing")
        assert r.status_code == 404


# ── Export ─────────────────────────────────────────────────────


class TestExport:
    def test_csv(self, client):
        _seed(client)
        r = client.get("/v1/billing/export", params={"company_id": "globex", "period": "2026-03"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/csv")
        lines = r.text.strip().splitlines()
        assert lines[0].startswith("date,weekday")
        assert len(lines) == 2

    def test_jsonl(self, client):
        _seed(client)
        r = client.get("/v1/billing/export", params={
            "company_id": "globex", "period": "2026-03", "format": "jsonl",
        })
        assert '"billed_count":42' in r.text

    def test_detail(self, client):
        _seed(client)
        r = client.get("/v1/billing/export", params={
            "company_id": "globex", "period": "2026-03", "format": "detail",
        })
        assert len(r.text.strip().splitlines()) == 43

    def test_unknown_format(self, client):
        _seed(client)
        r = client.get("/v1/billing/export", params={
            "company_id": "globex", "period": "2026-03", "format": "xlsx",
        })
        assert r.status_code == 422


# ── Status and dispatch ────────────────────────────────────────


class TestStatusAndDispatch:
    def test_status_roundtrip(self, client):
        _seed(client)
        r = client.put("/v1/billing/status", json={
            "company_id": "acme", "period": "2026-03", "status": "PAID",
        })
        assert r.status_code == 200
        assert r.json()["statuses"] == {"acme": "PAID", "globex": "PENDING"}
        r = client.get("/v1/billing/status", params={"period": "2026-03"})
        assert r.json()["statuses"]["acme"] == "PAID"

    def test_bad_status_value(self, client):
        _seed(client)
        r = client.put("/v1/billing/status", json={
            "company_id": "acme", "period": "2026-03", "status": "LOST",
        })
        assert r.status_code == 422

    def test_send_requires_configuration(self, client):
        _seed(client)
        r = client.post("/v1/billing/send", json={"company_id": "acme", "period": "2026-03"})
        assert r.status_code == 409
        assert r.json()["error"]["type"] == "CONFLICT"

    def test_send_marks_sent(self, tmp_path):
        c = _make_client(tmp_path, dispatch_url="https://mail.example.test/send")
        _seed(c)
        mock = MagicMock()
        mock.post.return_value = MagicMock(status_code=202)
        c.app.state.dispatch_client = mock
        r = c.post("/v1/billing/send", json={"company_id": "acme", "period": "2026-03"})
        assert r.status_code == 200
        assert r.json()["status"] == "SENT"
        assert r.json()["billing_email"] == "facturas@acme.example"
        payload = mock.post.call_args.kwargs["json"]
        assert payload["total_amount"] == "432000.00"
        assert billing_store.get_status("acme", "2026-03").value == "SENT"

    def test_send_without_email_is_502(self, tmp_path):
        c = _make_client(tmp_path, dispatch_url="https://mail.example.test/send")
        _seed(c)
        c.app.state.dispatch_client = MagicMock()
        r = c.post("/v1/billing/send", json={"company_id": "globex", "period": "2026-03"})
        assert r.status_code == 502
        assert r.json()["error"]["type"] == "DISPATCH_ERROR"
        assert billing_store.get_status("globex", "2026-03").value == "PENDING"


# ── Persistence ────────────────────────────────────────────────


class TestServerPersistence:
    def test_restart_replays(self, tmp_path):
        c = _make_client(tmp_path, persist=True)
        _seed(c)
        c2 = _make_client(tmp_path, persist=True)
        r = c2.get("/v1/billing/daily", params={"company_id": "globex", "period": "2026-03"})
        assert r.json()["total"] == "2751.00"

    def test_restart_keeps_api_edits_over_yaml_seed(self, tmp_path, data_files):
        companies_path, _ = data_files
        c = _make_client(tmp_path, persist=True, companies_path=str(companies_path))
        r = c.put("/v1/companies/acme", json={"name": "ACME Foods", "meal_price": "95.00", "daily_target": 250})
        assert r.status_code == 200

        c2 = _make_client(tmp_path, persist=True, companies_path=str(companies_path))
        acme = c2.get("/v1/companies").json()["companies"][0]
        assert acme["meal_price_cents"] == 9500
        assert acme["daily_target"] == 250

        log = tmp_path / "cafeteria_billing_events.jsonl"
        kinds = [json.loads(line)["kind"] for line in log.read_text().splitlines()]
        # two YAML seeds on first boot, one edit, nothing appended on restart
        assert kinds == ["company", "company", "company"]

    def test_companies_seeded_from_yaml(self, tmp_path, data_files):
        companies_path, _ = data_files
        c = _make_client(tmp_path, companies_path=str(companies_path))
        ids = [co["id"] for co in c.get("/v1/companies").json()["companies"]]
        assert ids == ["acme", "globex"]

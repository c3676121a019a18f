import json
import os
import sys
from datetime import datetime

import httpx
import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app, main
from conftest import FakeLeap
from settings import Settings
from tools.idempotency import Idem
from tools.signature import SIGNATURE_HEADER, compute_signature


def make_client(settings, fake, idem=None):
    return TestClient(create_app(settings, leap=fake.client(settings), idem=idem))


class TestServiceEndpoints:
    """Test liveness and health endpoints."""

    def test_root(self, settings, fake_leap):
        response = make_client(settings, fake_leap).get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "running" in response.text

    def test_health(self, settings, fake_leap):
        response = make_client(settings, fake_leap).get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None
        assert data["services"]["idempotency"] == "disabled"


class TestWebhook:
    """Test the SalesPro webhook relay end to end against a fake Leap."""

    def test_sold_estimate_new_customer(self, settings, fake_leap, jane_payload):
        response = make_client(settings, fake_leap).post("/webhook", json=jane_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["customer_id"] == "101"
        assert data["job_id"] == "202"
        assert data["customer_created"] is True

        creates = fake_leap.calls("POST", "customers")
        assert len(creates) == 1
        customer = FakeLeap.body(creates[0])
        assert customer["first_name"] == "Jane"
        assert customer["email"] == "j@x.com"
        assert customer["phone"] == "555-1"
        assert customer["address"]["zip"] == "62701"

        jobs = fake_leap.calls("POST", "estimates")
        assert len(jobs) == 1
        job = FakeLeap.body(jobs[0])
        assert job["status"] == "sold"
        assert job["total"] == 500
        assert job["customer_id"] == "101"

        for request in fake_leap.requests:
            assert request.headers["Authorization"] == "Bearer test-key"
        assert creates[0].headers["Content-Type"] == "application/json"

    def test_existing_customer_not_recreated(self, settings, jane_payload):
        fake = FakeLeap(matches=[{"id": 77}])

        response = make_client(settings, fake).post("/webhook", json=jane_payload)

        assert response.status_code == 200
        assert response.json()["customer_id"] == "77"
        assert response.json()["customer_created"] is False
        assert fake.calls("POST", "customers") == []
        assert FakeLeap.body(fake.calls("POST", "estimates")[0])["customer_id"] == "77"

    def test_office_mismatch_makes_no_calls(self, settings, fake_leap, jane_payload):
        jane_payload["estimate"]["officeId"] = "9"

        response = make_client(settings, fake_leap).post("/webhook", json=jane_payload)

        assert response.status_code == 400
        assert response.json()["status"] == "error"
        assert response.json()["errors"]
        assert fake_leap.requests == []

    def test_office_mismatch_with_other_errors(self, settings, fake_leap, jane_payload):
        jane_payload["estimate"]["officeId"] = "9"
        del jane_payload["customer"]["lastName"]

        response = make_client(settings, fake_leap).post("/webhook", json=jane_payload)

        assert response.status_code == 400
        assert fake_leap.requests == []

    @pytest.mark.parametrize("section,field", [
        ("customer", "firstName"),
        ("customer", "lastName"),
        ("estimate", "id"),
        ("estimate", "saleAmount"),
    ])
    def test_missing_required_field(self, settings, fake_leap, jane_payload, section, field):
        del jane_payload[section][field]

        response = make_client(settings, fake_leap).post("/webhook", json=jane_payload)

        assert response.status_code == 400
        assert f"{section}.{field}" in [e["field"] for e in response.json()["errors"]]

    def test_zero_sale_amount(self, settings, fake_leap, jane_payload):
        jane_payload["estimate"]["saleAmount"] = 0
        jane_payload["estimate"]["isSale"] = False

        response = make_client(settings, fake_leap).post("/webhook", json=jane_payload)

        assert response.status_code == 200
        job = FakeLeap.body(fake_leap.calls("POST", "estimates")[0])
        assert job["total"] == 0
        assert job["status"] == "pending"

    def test_invalid_json(self, settings, fake_leap):
        response = make_client(settings, fake_leap).post(
            "/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "body"

    def test_empty_appointment_rejected(self, settings, fake_leap):
        response = make_client(settings, fake_leap).post("/webhook", json=[])

        assert response.status_code == 400

    def test_lookup_failure_still_creates(self, settings, jane_payload):
        fake = FakeLeap(lookup_error=httpx.ConnectError("connection refused"))

        response = make_client(settings, fake).post("/webhook", json=jane_payload)

        assert response.status_code == 200
        assert len(fake.calls("POST", "customers")) == 1

    def test_customer_create_failure(self, settings, jane_payload):
        fake = FakeLeap(customer_status=500, customer_body={"message": "boom"})

        response = make_client(settings, fake).post("/webhook", json=jane_payload)

        assert response.status_code == 500
        data = response.json()
        assert data["status"] == "error"
        assert data["detail"]["upstream_status"] == 500
        assert data["detail"]["response"] == {"message": "boom"}
        assert fake.calls("POST", "estimates") == []

    def test_job_create_failure_hides_detail_in_production(self, jane_payload):
        settings = Settings(leap_api_key="test-key", environment="production")
        fake = FakeLeap(job_status=422, job_body={"errors": {"total": "invalid"}})

        response = make_client(settings, fake).post("/webhook", json=jane_payload)

        assert response.status_code == 500
        assert "detail" not in response.json()
        assert len(fake.calls("POST", "customers")) == 1

    def test_appointment_shape(self, settings, fake_leap):
        payload = [
            {"appKey": "name", "value": "John Smith"},
            {"appKey": "phone", "value": "555-2"},
        ]

        response = make_client(settings, fake_leap).post("/webhook", json=payload)

        assert response.status_code == 200
        lookup = fake_leap.calls("GET", "customers")[0]
        assert lookup.url.params["phone"] == "555-2"
        customer = FakeLeap.body(fake_leap.calls("POST", "customers")[0])
        assert customer["first_name"] == "John"
        assert customer["last_name"] == "Smith"
        assert customer["phone"] == "555-2"
        job = FakeLeap.body(fake_leap.calls("POST", "estimates")[0])
        assert job["name"] == "SalesPro Appointment"
        assert job["total"] == 0

    def test_signature_header_ignored_without_secret(self, settings, fake_leap, jane_payload):
        response = make_client(settings, fake_leap).post(
            "/webhook", json=jane_payload, headers={SIGNATURE_HEADER: "anything"}
        )

        assert response.status_code == 200

    def test_signature_enforced_with_secret(self, fake_leap, jane_payload):
        settings = Settings(leap_api_key="test-key", webhook_secret="s3cret")
        client = make_client(settings, fake_leap)
        body = json.dumps(jane_payload).encode()

        rejected = client.post("/webhook", content=body, headers={SIGNATURE_HEADER: "bad"})
        accepted = client.post(
            "/webhook", content=body,
            headers={SIGNATURE_HEADER: compute_signature(body, "s3cret"), "Content-Type": "application/json"}
        )

        assert rejected.status_code == 401
        assert accepted.status_code == 200
        assert len(fake_leap.calls("POST", "estimates")) == 1

    def test_non_ascii_signature_unauthorized(self, fake_leap, jane_payload):
        settings = Settings(leap_api_key="test-key", webhook_secret="s3cret")

        response = make_client(settings, fake_leap).post(
            "/webhook", content=json.dumps(jane_payload).encode(), headers={SIGNATURE_HEADER: b"caf\xe9"}
        )

        assert response.status_code == 401
        assert fake_leap.requests == []

    def test_huge_sale_amount_relayed(self, settings, fake_leap, jane_payload):
        body = json.dumps(jane_payload).replace('"saleAmount": 500', '"saleAmount": ' + "9" * 400)

        response = make_client(settings, fake_leap).post(
            "/webhook", content=body.encode(), headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert FakeLeap.body(fake_leap.calls("POST", "estimates")[0])["total"] == int("9" * 400)

    def test_duplicate_delivery_ignored(self, settings, fake_leap, jane_payload):
        client = make_client(settings, fake_leap, idem=Idem())

        first = client.post("/webhook", json=jane_payload)
        second = client.post("/webhook", json=jane_payload)

        assert first.json()["status"] == "success"
        assert second.status_code == 200
        assert second.json()["status"] == "duplicate_ignored"
        assert len(fake_leap.calls("POST", "estimates")) == 1

    def test_failed_delivery_can_be_retried(self, settings, jane_payload):
        fake = FakeLeap(job_status=503, job_body={"message": "down"})
        client = make_client(settings, fake, idem=Idem())

        assert client.post("/webhook", json=jane_payload).status_code == 500

        fake.job_status = 200
        fake.job_body = {"data": {"id": 303}}
        retry = client.post("/webhook", json=jane_payload)

        assert retry.status_code == 200
        assert retry.json()["job_id"] == "303"


class TestStartup:
    """Test process startup configuration."""

    def test_missing_credential_exits_non_zero(self, monkeypatch):
        monkeypatch.delenv("LEAP_API_KEY", raising=False)
        monkeypatch.setattr("settings.load_dotenv", lambda: False)

        assert main() == 1

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setattr("settings.load_dotenv", lambda: False)
        monkeypatch.setenv("LEAP_API_KEY", "abc")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("LEAP_JOB_RESOURCE", "jobs")
        monkeypatch.setenv("PORT", "9000")

        settings = Settings.from_env()

        assert settings.leap_api_key == "abc"
        assert settings.allowed_origins == ["https://a.example", "https://b.example"]
        assert settings.job_resource == "jobs"
        assert settings.port == 9000
        assert settings.is_production is False

import json
import os
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settings import Settings
from tools.leap import LeapClient


class FakeLeap:
    """Records requests and answers them the way the Leap API does."""

    def __init__(self, matches=None, lookup_error=None, lookup_status=200,
                 customer_status=200, customer_body=None, job_status=200, job_body=None):
        self.matches = matches or []
        self.lookup_error = lookup_error
        self.lookup_status = lookup_status
        self.customer_status = customer_status
        self.customer_body = customer_body if customer_body is not None else {"data": {"id": 101}}
        self.job_status = job_status
        self.job_body = job_body if job_body is not None else {"data": {"id": 202}}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path.endswith("/customers"):
            if self.lookup_error:
                raise self.lookup_error
            return httpx.Response(self.lookup_status, json={"data": self.matches})
        if request.method == "POST" and path.endswith("/customers"):
            return httpx.Response(self.customer_status, json=self.customer_body)
        if request.method == "POST" and (path.endswith("/estimates") or path.endswith("/jobs")):
            return httpx.Response(self.job_status, json=self.job_body)
        return httpx.Response(404, json={"error": "not found"})

    def calls(self, method, resource):
        return [r for r in self.requests if r.method == method and r.url.path.endswith(f"/{resource}")]

    @staticmethod
    def body(request):
        return json.loads(request.content)

    def client(self, settings):
        return LeapClient(settings, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    return Settings(leap_api_key="test-key")


@pytest.fixture
def fake_leap():
    return FakeLeap()


@pytest.fixture
def jane_payload():
    """Sold estimate with matching office ids."""
    return {
        "customer": {
            "firstName": "Jane",
            "lastName": "Doe",
            "emails": [{"email": "j@x.com"}],
            "phoneNumbers": [{"number": "555-1"}],
            "street": "1 Main St",
            "city": "Springfield",
            "state": "IL",
            "zipCode": "62701",
            "officeId": "7"
        },
        "estimate": {
            "id": "E1",
            "resultNote": "Signed on the spot",
            "isSale": True,
            "saleAmount": 500,
            "addedCategories": ["Roofing", "Gutters"],
            "officeId": "7"
        }
    }


@pytest.fixture
def appointment_payload():
    """Appointment-shaped webhook body."""
    return [
        {"appKey": "identifier", "value": "A-42"},
        {"appKey": "name", "value": "John Smith"},
        {"appKey": "addressStreet", "value": "9 Elm Rd"},
        {"appKey": "addressCity", "value": "Dayton"},
        {"appKey": "addressState", "value": "OH"},
        {"appKey": "addressZip", "value": "45402"},
        {"appKey": "phone", "value": "555-2"},
        {"appKey": "phone", "value": "555-3"},
        {"appKey": "email", "value": "john@smith.com"},
        {"appKey": "favoriteColor", "value": "blue"},
        {"appKey": "apiSourceData", "value": {"source": "kiosk"}}
    ]

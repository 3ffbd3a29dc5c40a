"""Pytest fixtures for shared-outbound tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest
from syncbridge.outbound import events
from syncbridge.outbound.config import VendorConfig, VendorType
from syncbridge.outbound.credentials import InMemoryCredentialStore
from syncbridge.outbound.registry import AdapterRegistry


class MockVendorAPI:
    """Scripted vendor API behind an httpx.MockTransport.

    Responses are queued per (method, path). The last queued response for a
    route is reused once the others are consumed.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Callable[[httpx.Request], httpx.Response]]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> MockVendorAPI:
        """Queue a response for a method and URL path."""
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, json=json)

        self.routes.setdefault((method.upper(), path), []).append(handler)
        return self

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(599, json={"message": f"unexpected {request.method} {request.url.path}"})
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        return handler(request)


@pytest.fixture
def mock_api() -> MockVendorAPI:
    """Create an empty scripted vendor API."""
    return MockVendorAPI()


@pytest.fixture
def http_client(mock_api: MockVendorAPI) -> httpx.AsyncClient:
    """Create an AsyncClient routed to the scripted vendor API."""
    return httpx.AsyncClient(transport=httpx.MockTransport(mock_api))


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    """Create an empty in-memory credential store."""
    return InMemoryCredentialStore()


@pytest.fixture
def salesforce_config() -> VendorConfig:
    """Create a Salesforce vendor configuration."""
    return VendorConfig(
        vendor_type=VendorType.SALESFORCE,
        name="Test Salesforce",
        credentials={"client_id": "sf_client_id", "client_secret": "sf_client_secret"},
        connection_params={"instance_url": "https://acme.my.salesforce.com", "api_version": "59.0"},
        environment="test",
    )


@pytest.fixture
def hubspot_config() -> VendorConfig:
    """Create a HubSpot vendor configuration."""
    return VendorConfig(
        vendor_type=VendorType.HUBSPOT,
        name="Test HubSpot",
        credentials={"api_key": "pat-na1-test"},
        connection_params={"portal_id": "4242"},
        environment="test",
    )


@pytest.fixture
def zoho_config() -> VendorConfig:
    """Create a Zoho vendor configuration."""
    return VendorConfig(
        vendor_type=VendorType.ZOHO,
        name="Test Zoho",
        credentials={
            "client_id": "zoho_client_id",
            "client_secret": "zoho_client_secret",
            "grant_token": "1000.grant",
        },
        connection_params={"domain": "zohoapis.com"},
        environment="test",
    )


@pytest.fixture
def contact_map() -> dict[str, Any]:
    """Field map from an internal contact to a CRM Contact."""
    return {
        "firstName": "FirstName",
        "lastName": "LastName",
        "email": "Email",
        "address.country": "MailingCountry",
        "transforms": {
            "MailingCountry": lambda value, record: value.upper(),
        },
    }


@pytest.fixture
def fresh_registry() -> Generator[AdapterRegistry, None, None]:
    """Create a fresh registry instance for testing.

    Restores the global singleton after the test.
    """
    previous = AdapterRegistry._instance
    AdapterRegistry._instance = None
    registry = AdapterRegistry()
    yield registry
    AdapterRegistry._instance = previous


@pytest.fixture(autouse=True)
def clear_last_fault() -> Generator[None, None, None]:
    """Reset the process-wide listener fault slot around each test."""
    events.reset_last_fault()
    yield
    events.reset_last_fault()

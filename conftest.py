"""Shared pytest fixtures for SyncBridge packages."""

import pytest


@pytest.fixture
def sample_contact_record():
    """Sample internal contact record for testing."""
    return {
        "id": "c-1001",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "phone": None,
        "address": {
            "city": "London",
            "country": "gb",
        },
        "accountId": "a-2001",
    }


@pytest.fixture
def sample_deal_record():
    """Sample internal deal record for testing."""
    return {
        "id": "d-3001",
        "title": "Analytical Engine renewal",
        "amount": 1500.00,
        "stage": "won",
        "closedAt": "2025-01-15",
        "contactId": "c-1001",
    }

"""Pytest configuration and fixtures for studiodesk tests.

Provides a mocked gateway, a recording notifier and sample rows.
"""

from __future__ import annotations

from unittest.mock import MagicMock
from uuid import UUID

import pytest

from studiodesk.auth import BypassIdentityProvider, Identity
from studiodesk.config import GatewayConfig, InvoiceConfig
from studiodesk.gateway.client import GatewayClient
from studiodesk.models import Estimate, EstimatePackage, LineItem, PackageEvent
from studiodesk.notifications import LogNotifier

PROJECT_ID = UUID("11111111-1111-1111-1111-111111111111")
OTHER_PROJECT_ID = UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
def gateway() -> MagicMock:
    """Gateway double: async methods are AsyncMocks, ``public_url`` is real-looking."""
    mock = MagicMock(spec=GatewayClient)
    mock.config = GatewayConfig(url="https://studio.example.co", anon_key="anon")
    mock.public_url.side_effect = (
        lambda bucket, path: f"https://studio.example.co/storage/v1/object/public/{bucket}/{path}"
    )
    return mock


@pytest.fixture
def project_id() -> UUID:
    return PROJECT_ID


@pytest.fixture
def notifier() -> LogNotifier:
    return LogNotifier()


@pytest.fixture
def identity() -> BypassIdentityProvider:
    return BypassIdentityProvider(
        Identity(user_id="owner-1", email="owner@example.com", role="manager")
    )


@pytest.fixture
def invoice_config() -> InvoiceConfig:
    return InvoiceConfig()


@pytest.fixture
def project_rows() -> list[dict]:
    return [
        {
            "project_uuid": str(PROJECT_ID),
            "project_title": "Sharma Wedding",
            "project_status": "prospect",
            "client_name": "Asha Sharma",
            "created_at": "2024-02-01T10:00:00+00:00",
        },
        {
            "project_uuid": str(OTHER_PROJECT_ID),
            "project_title": "Mehta Pre-wedding",
            "project_status": "in_progress",
            "client_name": "Ravi Mehta",
            "created_at": "2024-01-15T10:00:00+00:00",
        },
    ]


@pytest.fixture
def sample_estimate() -> Estimate:
    """Two-package estimate linked to PROJECT_ID."""
    return Estimate(
        id="est-1",
        client_name="Asha Sharma",
        client_email="asha@example.com",
        client_phone="98765 43210",
        project_name="Sharma Wedding",
        project_id=PROJECT_ID,
        packages=[
            EstimatePackage(
                name="Silver",
                amount="₹50,000.00",
                services=[PackageEvent(event="Wedding", date="2024-03-10", photographers=2)],
                deliverables=["300 edited photos"],
            ),
            EstimatePackage(
                name="Gold",
                amount="₹80,000.00",
                services=[PackageEvent(event="Wedding", date="2024-03-10", photographers=3)],
                deliverables=["500 edited photos", "Highlight film"],
            ),
        ],
        amount="₹50,000.00",
    )


@pytest.fixture
def itemized_estimate() -> Estimate:
    return Estimate(
        id="est-2",
        client_name="Ravi Mehta",
        client_phone="9000000000",
        items=[
            LineItem(description="Shoot", amount="₹10,000"),
            LineItem(description="Album", amount="2,500.50"),
        ],
        amount="₹12,500.50",
    )


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("SUPABASE_URL", "https://studio.example.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "test-anon-key")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("DEV_BYPASS_AUTH", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)

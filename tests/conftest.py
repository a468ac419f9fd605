"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from contextlib import ExitStack
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("PLATFORM_FEE_RATE", "0.10")
os.environ.setdefault("PAYOUT_CURRENCY", "thb")

from tests.fakes import FakeSupabase  # noqa: E402

# Every module that calls get_supabase_client() at service construction
SUPABASE_CONSUMERS = [
    "src.services.order_service",
    "src.services.step_ledger",
    "src.services.inventory_service",
    "src.services.payout_service",
    "src.services.cart_service",
    "src.services.notification_service",
]


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Provide an in-memory database wired into every settlement service.

    Yields:
        FakeSupabase: The shared fake client.
    """
    db = FakeSupabase()
    with ExitStack() as stack:
        for module in SUPABASE_CONSUMERS:
            stack.enter_context(patch(f"{module}.get_supabase_client", return_value=db))
        yield db


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    """Provide a mocked Stripe module for payouts.

    Each transfer gets an ID derived from its destination account.

    Yields:
        MagicMock: Mocked Stripe module.
    """
    stripe_mock = MagicMock()

    def create_transfer(**kwargs: Any) -> dict[str, Any]:
        return {"id": f"tr_{kwargs['destination']}", "reversed": False}

    stripe_mock.Transfer.create.side_effect = create_transfer

    with patch("src.services.payout_service.get_stripe", return_value=stripe_mock):
        yield stripe_mock


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client

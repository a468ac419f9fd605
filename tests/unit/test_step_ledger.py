"""Unit tests for StepLedger."""

import pytest

from src.services.step_ledger import CART_STEP, INVENTORY_STEP, StepLedger
from tests.fakes import FakeSupabase


class TestStepLedger:
    """Tests for step claims."""

    @pytest.mark.asyncio
    async def test_step_is_claimed_once(self, fake_db: FakeSupabase) -> None:
        """Test that only the first claim of a step succeeds."""
        ledger = StepLedger()

        assert await ledger.claim("o1", INVENTORY_STEP) is True
        assert await ledger.claim("o1", INVENTORY_STEP) is False
        assert await ledger.claim("o2", INVENTORY_STEP) is True

    @pytest.mark.asyncio
    async def test_completed_steps(self, fake_db: FakeSupabase) -> None:
        """Test that claimed steps are listed per order."""
        ledger = StepLedger()
        await ledger.claim("o1", INVENTORY_STEP)
        await ledger.claim("o1", CART_STEP)
        await ledger.claim("o2", CART_STEP)

        assert await ledger.completed_steps("o1") == {"inventory_adjusted", "cart_cleared"}

"""Unit tests for webhook classification and SettlementService wiring."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.schemas.webhook import ChargeData, ChargeEvent, ChargeOutcome
from src.services.exceptions import MalformedEventError
from src.services.settlement_service import (
    SettlementService,
    classify_charge_event,
    parse_charge_event,
)


def event(key: str, status: str | None, paid: bool | None, obj: str = "charge") -> ChargeEvent:
    return ChargeEvent(
        key=key,
        data=ChargeData(object=obj, id="chrg_1", status=status, paid=paid, metadata={"orderId": "o1"}),
    )


class TestClassifyChargeEvent:
    """Tests for classify_charge_event."""

    @pytest.mark.parametrize(
        ("key", "status", "paid", "expected"),
        [
            ("charge.complete", "successful", True, ChargeOutcome.SUCCEEDED),
            ("charge.complete", "successful", False, ChargeOutcome.UNHANDLED),
            ("charge.complete", "failed", False, ChargeOutcome.FAILED),
            ("charge.failed", None, None, ChargeOutcome.FAILED),
            ("charge.complete", "expired", False, ChargeOutcome.EXPIRED),
            ("charge.expired", "expired", False, ChargeOutcome.EXPIRED),
            ("charge.complete", "pending", False, ChargeOutcome.UNHANDLED),
            ("charge.create", "pending", False, ChargeOutcome.UNHANDLED),
            ("charge.complete", "reversed", True, ChargeOutcome.UNHANDLED),
        ],
    )
    def test_classification(
        self, key: str, status: str | None, paid: bool | None, expected: ChargeOutcome
    ) -> None:
        """Test each event/status combination."""
        assert classify_charge_event(event(key, status, paid)) == expected

    def test_non_charge_objects_are_ignored(self) -> None:
        """Test that transfers, refunds and similar objects are ignored."""
        assert classify_charge_event(event("transfer.create", "sent", True, obj="transfer")) == ChargeOutcome.IGNORED

    def test_event_without_data_is_ignored(self) -> None:
        """Test that an event missing its data object is ignored."""
        assert classify_charge_event(ChargeEvent(key="charge.complete")) == ChargeOutcome.IGNORED


class TestParseChargeEvent:
    """Tests for parse_charge_event and metadata handling."""

    def test_rejects_non_object_body(self) -> None:
        """Test that a JSON array or string is malformed."""
        with pytest.raises(MalformedEventError):
            parse_charge_event(["charge.complete"])

    def test_rejects_wrong_field_types(self) -> None:
        """Test that a data field of the wrong type is malformed."""
        with pytest.raises(MalformedEventError):
            parse_charge_event({"key": "charge.complete", "data": "chrg_1"})

    def test_order_ids_prefers_order_ids_list(self) -> None:
        """Test that orderIds lists all orders of a multi-shop checkout."""
        charge = ChargeData(object="charge", metadata={"orderId": "o1", "orderIds": ["o1", "o2"]})

        assert charge.order_ids() == ["o1", "o2"]

    def test_order_ids_falls_back_to_order_id(self) -> None:
        """Test that invalid orderIds JSON falls back to orderId."""
        charge = ChargeData(object="charge", metadata={"orderId": "o1", "orderIds": "not json"})

        assert charge.order_ids() == ["o1"]

    def test_order_ids_empty_without_metadata(self) -> None:
        """Test that missing metadata yields no orders."""
        assert ChargeData(object="charge", metadata=None).order_ids() == []


@pytest.fixture
def mocked_service(mock_supabase_client: MagicMock) -> SettlementService:
    """Create SettlementService with every collaborator mocked."""
    return SettlementService(
        order_service=MagicMock(),
        inventory_service=MagicMock(),
        step_ledger=MagicMock(),
        payout_dispatcher=MagicMock(),
        cart_service=MagicMock(),
        notification_service=MagicMock(),
        email_service=MagicMock(),
    )


class TestHandleEvent:
    """Tests for handle_event dispatching."""

    @pytest.mark.asyncio
    async def test_malformed_payload_is_ignored(self, mocked_service: SettlementService) -> None:
        """Test that a malformed body returns an ignored report."""
        report = await mocked_service.handle_event("garbage")

        assert report.outcome == ChargeOutcome.IGNORED
        assert report.orders == []

    @pytest.mark.asyncio
    async def test_unhandled_status_changes_nothing(self, mocked_service: SettlementService) -> None:
        """Test that unknown statuses never reach the order store."""
        mocked_service.orders.load_aggregate = AsyncMock()

        report = await mocked_service.handle_event(
            {"key": "charge.complete", "data": {"object": "charge", "status": "pending", "metadata": {"orderId": "o1"}}}
        )

        assert report.outcome == ChargeOutcome.UNHANDLED
        mocked_service.orders.load_aggregate.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, mocked_service: SettlementService) -> None:
        """Test that store failures are raised so the provider retries."""
        mocked_service.orders.load_aggregate = AsyncMock(side_effect=RuntimeError("db down"))

        with pytest.raises(RuntimeError, match="db down"):
            await mocked_service.handle_event(
                {
                    "key": "charge.complete",
                    "data": {"object": "charge", "status": "successful", "paid": True, "metadata": {"orderId": "o1"}},
                }
            )

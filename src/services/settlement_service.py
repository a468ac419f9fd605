"""Payment confirmation settlement pipeline.

A charge webhook is classified, the orders it pays for are loaded, and for
a successful charge each pending order is moved to completed by a
conditional write. The winner of that write runs the downstream steps:
inventory, seller payouts, cart cleanup, sub-order propagation and
notifications. Each side-effect step is claimed in the step ledger before it
runs and a failure in one step is logged without stopping the others.
Payouts are tracked on the settlement lines instead, and a database error
while paying sellers fails the delivery so the provider redelivers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.core.config import get_settings
from src.schemas.webhook import ChargeData, ChargeEvent, ChargeOutcome
from src.services.cart_service import CartService
from src.services.email_service import EmailService
from src.services.exceptions import MalformedEventError, OrderNotFoundError
from src.services.inventory_service import InventoryService
from src.services.notification_service import NotificationService
from src.services.order_service import OrderAggregate, OrderService
from src.services.payout_service import PayoutDispatcher, PayoutSummary
from src.services.settlement_state import can_advance_fulfillment, can_transition_payment
from src.services.split_calculator import SettlementLine, calculate_settlement_lines
from src.services.step_ledger import (
    CART_STEP,
    INVENTORY_STEP,
    RECEIPT_EMAIL_STEP,
    SUB_ORDERS_STEP,
    StepLedger,
    notification_step,
)

logger = logging.getLogger(__name__)


@dataclass
class OrderOutcome:
    """What the pipeline did with one order."""

    order_id: str
    action: str
    payouts: PayoutSummary | None = None


@dataclass
class SettlementReport:
    """Result of handling one webhook delivery."""

    outcome: ChargeOutcome
    charge_id: str | None = None
    orders: list[OrderOutcome] = field(default_factory=list)


def parse_charge_event(payload: Any) -> ChargeEvent:
    """Validate a raw webhook body.

    Raises:
        MalformedEventError: If the body is not a webhook event object.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook body must be a JSON object")
    try:
        return ChargeEvent.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedEventError(str(e)) from e


def classify_charge_event(event: ChargeEvent) -> ChargeOutcome:
    """Decide what a charge event means.

    Only ``charge.complete`` with ``paid`` and status ``successful`` counts
    as success. Statuses this service does not know are acknowledged
    without any state change.
    """
    charge = event.data
    if charge is None or charge.object != "charge":
        return ChargeOutcome.IGNORED

    if event.key == "charge.complete" and charge.paid and charge.status == "successful":
        return ChargeOutcome.SUCCEEDED
    if event.key == "charge.failed" or (event.key == "charge.complete" and charge.status == "failed"):
        return ChargeOutcome.FAILED
    if event.key == "charge.expired" or (event.key == "charge.complete" and charge.status == "expired"):
        return ChargeOutcome.EXPIRED
    return ChargeOutcome.UNHANDLED


class SettlementService:
    """Runs the settlement pipeline for payment provider charge events."""

    def __init__(
        self,
        order_service: OrderService | None = None,
        inventory_service: InventoryService | None = None,
        step_ledger: StepLedger | None = None,
        payout_dispatcher: PayoutDispatcher | None = None,
        cart_service: CartService | None = None,
        notification_service: NotificationService | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        """Initialize settlement service with collaborating services."""
        self.settings = get_settings()
        self.orders = order_service or OrderService()
        self.inventory = inventory_service or InventoryService()
        self.ledger = step_ledger or StepLedger()
        self.payouts = payout_dispatcher or PayoutDispatcher(order_service=self.orders)
        self.carts = cart_service or CartService()
        self.notifications = notification_service or NotificationService()
        self.emails = email_service or EmailService()

    async def handle_event(self, payload: Any) -> SettlementReport:
        """Process one webhook delivery.

        Problems that redelivery cannot fix (malformed body, non-charge
        object, missing or unknown order) are logged and reported, never
        raised. Anything else propagates so the provider retries.

        Args:
            payload: Parsed JSON body of the webhook request.

        Returns:
            SettlementReport: Classification and per-order actions.
        """
        try:
            event = parse_charge_event(payload)
        except MalformedEventError as e:
            logger.warning("Ignoring malformed webhook payload: %s", str(e))
            return SettlementReport(outcome=ChargeOutcome.IGNORED)

        outcome = classify_charge_event(event)
        charge = event.data
        charge_id = charge.id if charge else None
        report = SettlementReport(outcome=outcome, charge_id=charge_id)

        if outcome == ChargeOutcome.IGNORED:
            logger.info("Webhook %s is not for a charge, ignoring", event.key)
            return report
        if outcome == ChargeOutcome.UNHANDLED:
            logger.info(
                "Unhandled charge status %s for event %s",
                charge.status if charge else None,
                event.key,
            )
            return report

        order_ids = charge.order_ids()
        if not order_ids:
            logger.error("No orderId in metadata of charge %s", charge_id)
            return report

        logger.info("Charge %s %s for orders %s", charge_id, outcome.value, order_ids)

        for order_id in order_ids:
            try:
                if outcome == ChargeOutcome.SUCCEEDED:
                    result = await self.settle_order(order_id, charge)
                elif outcome == ChargeOutcome.FAILED:
                    result = await self.fail_order(order_id, charge)
                else:
                    result = await self.expire_order(order_id, charge)
            except OrderNotFoundError:
                logger.error("Order not found: %s (charge %s)", order_id, charge_id)
                result = OrderOutcome(order_id=order_id, action="not_found")
            report.orders.append(result)

        return report

    async def settle_order(self, order_id: str, charge: ChargeData) -> OrderOutcome:
        """Confirm payment of one order and run its downstream steps."""
        aggregate = await self.orders.load_aggregate(order_id)

        if aggregate.is_settled:
            logger.info("Order %s already completed, skipping", order_id)
            return OrderOutcome(order_id=order_id, action="duplicate")

        if can_transition_payment(aggregate.payment_status, "completed"):
            advance = can_advance_fulfillment(
                "completed", aggregate.fulfillment_status, "processing"
            )
            if not await self.orders.mark_paid(order_id, charge.id, advance_fulfillment=advance):
                logger.info("Order %s was settled by a concurrent delivery", order_id)
                return OrderOutcome(order_id=order_id, action="duplicate")
            aggregate.payment_status = "completed"
            if advance:
                aggregate.fulfillment_status = "processing"
            action = "settled"
        elif aggregate.needs_resume:
            done = await self.ledger.completed_steps(order_id)
            logger.warning(
                "Resuming partially settled order %s, steps already claimed: %s",
                order_id,
                sorted(done),
            )
            action = "resumed"
        elif aggregate.payment_status == "completed":
            logger.info("Order %s was completed outside this service, skipping", order_id)
            return OrderOutcome(order_id=order_id, action="duplicate")
        else:
            logger.warning(
                "Order %s is %s, not settling charge %s",
                order_id,
                aggregate.payment_status,
                charge.id,
            )
            return OrderOutcome(order_id=order_id, action="skipped")

        await self._adjust_inventory(aggregate)
        payouts = await self._dispatch_payouts(aggregate)
        await self._clear_cart(aggregate)
        await self._propagate_sub_orders(aggregate, charge.id)
        await self._notify(aggregate)
        await self._send_receipt(aggregate)

        await self.orders.mark_settled(order_id)
        logger.info("Order %s settled", order_id)
        return OrderOutcome(order_id=order_id, action=action, payouts=payouts)

    async def fail_order(self, order_id: str, charge: ChargeData) -> OrderOutcome:
        """Mark a pending order failed. Completed orders stay completed."""
        order = await self.orders.load_aggregate(order_id)
        if not can_transition_payment(order.payment_status, "failed"):
            logger.info("Ignoring failure for order %s in status %s", order_id, order.payment_status)
            return OrderOutcome(order_id=order_id, action="skipped")

        applied = await self.orders.mark_failed(
            order_id, charge.id, charge.failure_code, charge.failure_message
        )
        return OrderOutcome(order_id=order_id, action="failed" if applied else "skipped")

    async def expire_order(self, order_id: str, charge: ChargeData) -> OrderOutcome:
        """Mark a pending order expired. Completed orders stay completed."""
        order = await self.orders.load_aggregate(order_id)
        if not can_transition_payment(order.payment_status, "expired"):
            logger.info("Ignoring expiry for order %s in status %s", order_id, order.payment_status)
            return OrderOutcome(order_id=order_id, action="skipped")

        applied = await self.orders.mark_expired(order_id, charge.id)
        return OrderOutcome(order_id=order_id, action="expired" if applied else "skipped")

    async def _adjust_inventory(self, aggregate: OrderAggregate) -> None:
        try:
            if await self.ledger.claim(aggregate.order_id, INVENTORY_STEP):
                await self.inventory.apply(aggregate)
        except Exception as e:
            logger.error("Inventory step failed for order %s: %s", aggregate.order_id, str(e))

    async def _settlement_lines(self, aggregate: OrderAggregate) -> list[SettlementLine]:
        """Compute settlement lines once; later deliveries reuse the stored ones."""
        computed = calculate_settlement_lines(aggregate, self.settings.platform_fee_rate)
        await self.orders.save_settlement_lines([line.to_row() for line in computed])

        stored = {
            row["shop_id"]: SettlementLine.from_row(row)
            for row in await self.orders.get_settlement_lines(aggregate.order_id)
        }
        return [stored.get(line.shop_id, line) for line in computed]

    async def _dispatch_payouts(self, aggregate: OrderAggregate) -> PayoutSummary:
        """Pay every seller.

        Per-seller payout failures are isolated by the dispatcher. Database
        errors propagate so the order is not stamped settled and the
        provider redelivers.
        """
        lines = await self._settlement_lines(aggregate)
        return await self.payouts.dispatch_all(aggregate, lines)

    async def _clear_cart(self, aggregate: OrderAggregate) -> None:
        if not aggregate.buyer_id or not aggregate.cart_item_ids:
            return
        try:
            if await self.ledger.claim(aggregate.order_id, CART_STEP):
                await self.carts.remove_items(aggregate.buyer_id, aggregate.cart_item_ids)
        except Exception as e:
            logger.error("Failed to clear cart items for order %s: %s", aggregate.order_id, str(e))

    async def _propagate_sub_orders(self, aggregate: OrderAggregate, charge_id: str | None) -> None:
        if not aggregate.sub_order_ids:
            return
        try:
            if await self.ledger.claim(aggregate.order_id, SUB_ORDERS_STEP):
                count = await self.orders.propagate_to_sub_orders(aggregate.sub_order_ids, charge_id)
                logger.info("%d sub-orders of order %s updated", count, aggregate.order_id)
        except Exception as e:
            logger.error("Failed to update sub-orders of order %s: %s", aggregate.order_id, str(e))

    async def _notify(self, aggregate: OrderAggregate) -> None:
        order_id = aggregate.order_id

        if aggregate.buyer_id:
            await self._notify_once(
                order_id,
                aggregate.buyer_id,
                "payment_received",
                "Payment received",
                f"Payment for order #{order_id[-8:]} is complete.",
                "/profile?tab=orders",
                {"order_id": order_id},
            )

        notified: set[str] = set()
        for group in aggregate.groups:
            if not group.shop_id:
                continue
            try:
                owner_id = await self.notifications.get_shop_owner(group.shop_id)
            except Exception as e:
                logger.error("Could not resolve owner of shop %s: %s", group.shop_id, str(e))
                continue
            if not owner_id or owner_id in notified:
                continue
            notified.add(owner_id)
            await self._notify_once(
                order_id,
                owner_id,
                "new_order",
                "You have a new order!",
                f'New order for "{group.shop_name or "your shop"}" totalling {group.gross_amount:.2f}',
                "/seller?tab=orders",
                {"order_id": order_id, "shop_id": group.shop_id, "amount": str(group.gross_amount)},
            )

    async def _notify_once(
        self,
        order_id: str,
        user_id: str,
        notification_type: str,
        title: str,
        body: str,
        link: str,
        data: dict[str, Any],
    ) -> None:
        try:
            if await self.ledger.claim(order_id, notification_step(notification_type, user_id)):
                await self.notifications.notify(user_id, notification_type, title, body, link, data)
        except Exception as e:
            logger.error("Error sending %s notification to %s: %s", notification_type, user_id, str(e))

    async def _send_receipt(self, aggregate: OrderAggregate) -> None:
        if not self.emails.enabled or not aggregate.buyer_id:
            return
        try:
            email = await self.notifications.get_user_email(aggregate.buyer_id)
            if email and await self.ledger.claim(aggregate.order_id, RECEIPT_EMAIL_STEP):
                await self.emails.send_payment_receipt(
                    email,
                    aggregate.order_id,
                    aggregate.total_amount,
                    self.settings.payout_currency,
                )
        except Exception as e:
            logger.error("Failed to send receipt for order %s: %s", aggregate.order_id, str(e))

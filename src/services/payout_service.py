"""Seller payout dispatch through Stripe Connect transfers."""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import stripe
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.core.stripe import get_stripe
from src.core.supabase import get_supabase_client
from src.services.order_service import OrderAggregate, OrderService
from src.services.settlement_state import utc_now
from src.services.split_calculator import SettlementLine, to_minor_units

logger = logging.getLogger(__name__)

# Retry configuration for transient Stripe errors
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 4


@dataclass
class PayoutResult:
    """Outcome of one payout call."""

    success: bool
    transfer_id: str | None = None
    status: str = "failed"
    message: str | None = None


@dataclass
class PayoutSummary:
    """Per-seller payout outcomes for one order."""

    dispatched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class PayoutService:
    """Service for transferring seller proceeds to their connected account."""

    def __init__(self) -> None:
        """Initialize payout service with clients."""
        self.client = get_supabase_client()
        self.stripe = get_stripe()
        self.settings = get_settings()

    async def get_destination(self, shop_id: str) -> str | None:
        """Get the Stripe connected account of a shop."""
        response = (
            self.client.table("shops")
            .select("id, stripe_account_id")
            .eq("id", shop_id)
            .maybe_single()
            .execute()
        )
        shop = response.data if response and response.data else None
        return shop.get("stripe_account_id") if shop else None

    @retry(
        retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    def _create_transfer(self, **kwargs: Any) -> Any:
        """Create a transfer, retrying connection and rate-limit errors.

        Retries are safe because every call carries the same idempotency key.
        """
        return self.stripe.Transfer.create(**kwargs)

    async def dispatch(
        self,
        shop_id: str,
        amount: Decimal,
        order_id: str,
        memo: str,
    ) -> PayoutResult:
        """Transfer a seller's net amount for an order.

        Never raises: every problem, including a timeout, comes back as an
        unsuccessful PayoutResult with a message.

        Args:
            shop_id: Shop receiving the payout.
            amount: Net payable in major units.
            order_id: Order the payout settles.
            memo: Human-readable description shown on the transfer.

        Returns:
            PayoutResult: Transfer reference on success, message on failure.
        """
        try:
            destination = await self.get_destination(shop_id)
        except Exception as e:
            logger.error("Failed to load payout destination for shop %s: %s", shop_id, str(e))
            return PayoutResult(success=False, message=f"Could not load shop: {e}")

        if not destination:
            return PayoutResult(success=False, message="Shop has no payout destination")

        params = {
            "amount": to_minor_units(amount),
            "currency": self.settings.payout_currency,
            "destination": destination,
            "transfer_group": order_id,
            "description": memo,
            "metadata": {"order_id": order_id, "shop_id": shop_id},
            "idempotency_key": f"payout-{order_id}-{shop_id}",
        }

        try:
            transfer = await asyncio.wait_for(
                asyncio.to_thread(self._create_transfer, **params),
                timeout=self.settings.payout_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("Payout to shop %s for order %s timed out", shop_id, order_id)
            return PayoutResult(
                success=False,
                message=f"Payout timed out after {self.settings.payout_timeout_seconds}s",
            )
        except stripe.StripeError as e:
            logger.error("Stripe error paying shop %s for order %s: %s", shop_id, order_id, str(e))
            return PayoutResult(success=False, message=str(e) or "Transfer creation failed")
        except Exception as e:
            logger.error("Unexpected payout error for shop %s: %s", shop_id, str(e))
            return PayoutResult(success=False, message=str(e) or "Transfer creation failed")

        status = "reversed" if transfer.get("reversed") else "paid"
        return PayoutResult(success=True, transfer_id=transfer["id"], status=status)


class PayoutDispatcher:
    """Pays every seller of an order, isolating failures per seller."""

    def __init__(
        self,
        payout_service: PayoutService | None = None,
        order_service: OrderService | None = None,
    ) -> None:
        """Initialize dispatcher with collaborating services."""
        self.client = get_supabase_client()
        self.settings = get_settings()
        self.payouts = payout_service or PayoutService()
        self.orders = order_service or OrderService()

    async def dispatch_all(
        self, aggregate: OrderAggregate, lines: list[SettlementLine]
    ) -> PayoutSummary:
        """Dispatch payouts for every settlement line of an order.

        One seller's payout failure never stops another's payout and never
        touches payment status. Database errors while claiming or recording
        a payout propagate, leaving the line for the next delivery. Once
        every seller has been attempted the order's ``seller_paid`` flag is
        set; it means attempted, not succeeded.
        """
        summary = PayoutSummary()

        if self.settings.payout_parallel:
            results = await asyncio.gather(
                *(self._pay_seller(aggregate, line, summary) for line in lines),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        else:
            for line in lines:
                await self._pay_seller(aggregate, line, summary)

        await self.orders.mark_seller_paid(aggregate.order_id)
        logger.info(
            "Payouts for order %s: %d dispatched, %d failed, %d skipped",
            aggregate.order_id,
            len(summary.dispatched),
            len(summary.failed),
            len(summary.skipped),
        )
        return summary

    async def _pay_seller(
        self, aggregate: OrderAggregate, line: SettlementLine, summary: PayoutSummary
    ) -> None:
        order_id = aggregate.order_id

        if line.net_amount <= 0 or line.payout_status in ("dispatched", "failed"):
            summary.skipped.append(line.shop_id)
            return

        if line.payout_status == "not_attempted":
            if not await self.orders.claim_settlement_line(order_id, line.shop_id):
                summary.skipped.append(line.shop_id)
                return
            line.payout_status = "dispatching"
        else:
            # Interrupted mid-dispatch; the idempotency key stops a second transfer
            logger.warning(
                "Resending interrupted payout to shop %s for order %s", line.shop_id, order_id
            )

        memo = f"Auto-payout for order {order_id} - {line.shop_name or 'Shop'}"
        logger.info("Transferring %s to shop %s for order %s", line.net_amount, line.shop_id, order_id)
        result = await self.payouts.dispatch(line.shop_id, line.net_amount, order_id, memo)

        if result.success:
            await self._record_success(aggregate, line, result)
            line.payout_status = "dispatched"
            line.transfer_id = result.transfer_id
            summary.dispatched.append(line.shop_id)
        else:
            await self._record_failure(order_id, line, result.message or "Unknown transfer error")
            line.payout_status = "failed"
            summary.failed.append(line.shop_id)

    async def _record_success(
        self, aggregate: OrderAggregate, line: SettlementLine, result: PayoutResult
    ) -> None:
        logger.info("Transfer %s dispatched to shop %s", result.transfer_id, line.shop_id)
        await self.orders.update_settlement_line(
            aggregate.order_id,
            line.shop_id,
            {
                "payout_status": "dispatched",
                "transfer_id": result.transfer_id,
                "dispatched_at": utc_now(),
            },
        )
        if not aggregate.is_cart_checkout:
            await self.orders.record_direct_transfer(
                aggregate.order_id, result.transfer_id, result.status
            )

    async def _record_failure(self, order_id: str, line: SettlementLine, message: str) -> None:
        logger.error("Transfer failed for shop %s on order %s: %s", line.shop_id, order_id, message)
        await self._record_transfer_error(order_id, line.shop_id, line.net_amount, message)
        await self.orders.update_settlement_line(
            order_id, line.shop_id, {"payout_status": "failed"}
        )

    async def _record_transfer_error(
        self, order_id: str, shop_id: str, amount: Decimal, message: str
    ) -> None:
        """Append a Transfer Error Record for manual reconciliation.

        Write failures are logged, never raised.
        """
        try:
            self.client.table("transfer_errors").insert(
                {
                    "order_id": order_id,
                    "shop_id": shop_id,
                    "amount": str(amount),
                    "error": message,
                    "timestamp": utc_now(),
                }
            ).execute()
        except Exception as e:
            logger.error(
                "Could not write transfer error for shop %s on order %s: %s",
                shop_id,
                order_id,
                str(e),
            )

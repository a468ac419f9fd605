"""Per-seller settlement amounts for a paid order."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from src.models.order import PayoutStatus
from src.services.order_service import OrderAggregate, to_decimal

CENT = Decimal("0.01")


@dataclass
class SettlementLine:
    """One seller's gross, platform fee and net payable for an order."""

    order_id: str
    shop_id: str
    shop_name: str | None
    gross_amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    payout_status: PayoutStatus = "not_attempted"
    transfer_id: str | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "shop_id": self.shop_id,
            "shop_name": self.shop_name,
            "gross_amount": str(self.gross_amount),
            "platform_fee": str(self.platform_fee),
            "net_amount": str(self.net_amount),
            "payout_status": self.payout_status,
            "transfer_id": self.transfer_id,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SettlementLine":
        return cls(
            order_id=str(row["order_id"]),
            shop_id=str(row["shop_id"]),
            shop_name=row.get("shop_name"),
            gross_amount=to_decimal(row.get("gross_amount")) or Decimal("0"),
            platform_fee=to_decimal(row.get("platform_fee")) or Decimal("0"),
            net_amount=to_decimal(row.get("net_amount")) or Decimal("0"),
            payout_status=row.get("payout_status") or "not_attempted",
            transfer_id=row.get("transfer_id"),
        )


def platform_fee_for(gross: Decimal, fee_rate: Decimal) -> Decimal:
    """Fee retained by the marketplace, rounded half-up to the cent."""
    return (gross * fee_rate).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_settlement_lines(
    aggregate: OrderAggregate, fee_rate: Decimal
) -> list[SettlementLine]:
    """Compute net payable per seller.

    The platform fee recorded at checkout wins; ``fee_rate`` is only used
    for groups that carry no recorded fee. Groups without a shop cannot be
    paid out and are left out.

    Args:
        aggregate: The loaded order.
        fee_rate: Fraction of gross retained by the platform.

    Returns:
        list[SettlementLine]: One line per seller, in order.
    """
    lines: list[SettlementLine] = []
    for group in aggregate.groups:
        if not group.shop_id:
            continue
        gross = group.gross_amount.quantize(CENT, rounding=ROUND_HALF_UP)
        if group.platform_fee is not None:
            fee = group.platform_fee.quantize(CENT, rounding=ROUND_HALF_UP)
        else:
            fee = platform_fee_for(gross, fee_rate)
        lines.append(
            SettlementLine(
                order_id=aggregate.order_id,
                shop_id=group.shop_id,
                shop_name=group.shop_name,
                gross_amount=gross,
                platform_fee=fee,
                net_amount=gross - fee,
            )
        )
    return lines


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (baht, dollars) to its smallest unit."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

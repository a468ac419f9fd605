"""Payment provider webhook Pydantic schemas."""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChargeOutcome(str, Enum):
    """What a charge event means for the orders it references."""

    IGNORED = "ignored"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"
    UNHANDLED = "unhandled"


class ChargeData(BaseModel):
    """Charge object carried in the webhook's data field."""

    model_config = ConfigDict(extra="allow")

    object: str | None = Field(default=None, description="Provider object type, 'charge' for charges")
    id: str | None = Field(default=None, description="Charge ID")
    status: str | None = Field(default=None, description="Charge status (successful/failed/expired/pending)")
    paid: bool | None = Field(default=None, description="Whether the charge captured funds")
    failure_code: str | None = Field(default=None, description="Provider failure code")
    failure_message: str | None = Field(default=None, description="Provider failure message")
    metadata: dict[str, Any] | None = Field(default=None, description="Metadata set at charge creation")

    def order_ids(self) -> list[str]:
        """Order IDs this charge pays for.

        Multi-shop checkouts store every order under ``orderIds`` (a JSON
        encoded list or a list); single orders only set ``orderId``.
        """
        metadata = self.metadata or {}
        raw_ids = metadata.get("orderIds")
        if isinstance(raw_ids, str) and raw_ids:
            try:
                raw_ids = json.loads(raw_ids)
            except ValueError:
                raw_ids = None
        if isinstance(raw_ids, list) and raw_ids:
            return [str(order_id) for order_id in raw_ids if order_id]

        order_id = metadata.get("orderId")
        return [str(order_id)] if order_id else []


class ChargeEvent(BaseModel):
    """Inbound webhook body: ``{key, data: {object: "charge", ...}}``."""

    model_config = ConfigDict(extra="allow")

    key: str = Field(default="", description="Event type, e.g. charge.complete")
    data: ChargeData | None = Field(default=None, description="Charge object")


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment provider."""

    received: bool = Field(default=True, description="Event was received")

"""
Order gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import CreateOrder, GatewayOrder, OrderSnapshot
from domain.payment.events import PaymentEvent


@runtime_checkable
class OrderGateway(Protocol):
    """Hosted-checkout gateway protocol.

    Implementations raise the domain gateway errors (GatewayUnavailable,
    GatewayRejected, GatewayAuthMismatch, WebhookSignatureError,
    MalformedWebhook) and nothing provider specific.
    """

    provider: str
    environment: str

    @property
    def configured(self) -> bool: ...

    async def create_order(self, req: CreateOrder) -> GatewayOrder: ...

    async def query_order(self, order_token: str) -> OrderSnapshot: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> PaymentEvent: ...

    async def verify_credentials(self) -> dict[str, Any]: ...

    async def aclose(self) -> None: ...

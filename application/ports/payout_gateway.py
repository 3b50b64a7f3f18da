"""
Payout gateway port: requests a transfer of the creator share.

Acceptance of a transfer request is not completion; the provider confirms
asynchronously through the payout webhook.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import TransferAccepted, TransferRequest
from domain.payment.events import PayoutConfirmation


@runtime_checkable
class PayoutGateway(Protocol):
    provider: str

    @property
    def configured(self) -> bool: ...

    async def request_transfer(self, req: TransferRequest) -> TransferAccepted: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> PayoutConfirmation: ...

    async def aclose(self) -> None: ...

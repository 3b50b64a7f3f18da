"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import OrderGateway
from application.ports.payout_gateway import PayoutGateway


def get_order_gateway(provider: Optional[str] = None) -> OrderGateway:
    name = (provider or payment_settings.gateway.provider).lower()
    if name == "cashfree":
        from .cashfree_client import CashfreeClient
        return CashfreeClient()
    raise ValueError(f"Unsupported payment provider: {name}")


def get_payout_gateway(provider: Optional[str] = None) -> PayoutGateway:
    name = (provider or payment_settings.gateway.provider).lower()
    if name == "cashfree":
        from .cashfree_payouts import CashfreePayoutClient
        return CashfreePayoutClient()
    raise ValueError(f"Unsupported payout provider: {name}")

"""Payment ledger domain exports."""
from .entity import PaymentIntent, PaymentState, PayoutState
from .repository import PaymentIntentRepository, StateSummary

__all__ = [
    "PaymentIntent",
    "PaymentState",
    "PayoutState",
    "PaymentIntentRepository",
    "StateSummary",
]

"""Download access domain exports."""
from .policy import AccessDecision, AccessVerdict, decide_access

__all__ = ["AccessDecision", "AccessVerdict", "decide_access"]

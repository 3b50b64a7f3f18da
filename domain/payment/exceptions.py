"""
Payment exceptions mapped to unified BusinessException variants.

Gateway faults are declared here (not in infrastructure) so application
services can react to them without importing concrete adapters.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import (
    BusinessException,
    ConflictException,
    NotFoundException,
)
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class PaymentIntentNotFoundException(NotFoundException):
    def __init__(self, identifier: str):
        super().__init__(
            f"Payment not found: {identifier}",
            code=BusinessCode.PAYMENT_NOT_FOUND,
            error_type="PaymentNotFound",
            details={"identifier": identifier},
        )


class InvalidStateTransitionException(ConflictException):
    def __init__(self, current: str, target: str, *, kind: str = "state"):
        super().__init__(
            f"Cannot move {kind} from {current} to {target}",
            code=BusinessCode.INVALID_STATE_TRANSITION,
            error_type="InvalidStateTransition",
            details={"kind": kind, "current": current, "target": target},
        )


class SelfPurchaseException(ConflictException):
    def __init__(self):
        super().__init__(
            "You cannot purchase your own file",
            code=BusinessCode.SELF_PURCHASE,
            error_type="SelfPurchase",
        )


class FileNotPurchasableException(ConflictException):
    def __init__(self, file_id: int):
        super().__init__(
            "File is not available for purchase",
            code=BusinessCode.FILE_NOT_PURCHASABLE,
            error_type="FileNotPurchasable",
            details={"file_id": file_id},
        )


class AlreadyPurchasedException(ConflictException):
    def __init__(self, file_id: int, intent_id: Optional[int]):
        super().__init__(
            "File already purchased",
            code=BusinessCode.ALREADY_PURCHASED,
            error_type="AlreadyPurchased",
            details={"file_id": file_id, "intent_id": intent_id},
        )


class _GatewayError(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int,
        error_type: str,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)


class GatewayUnavailable(_GatewayError):
    """Gateway has no credentials/configuration, or cannot be reached."""

    def __init__(self, message: str = "Payment service is currently unavailable", *, provider: str, details: Optional[dict] = None):
        super().__init__(
            message,
            code=PaymentCode.GATEWAY_UNAVAILABLE,
            error_type="GatewayUnavailable",
            provider=provider,
            details=details,
        )


class GatewayRejected(_GatewayError):
    """Gateway answered with an API error."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            code=PaymentCode.GATEWAY_REJECTED,
            error_type="GatewayRejected",
            provider=provider,
            provider_code=provider_code,
            details=details,
        )


class GatewayAuthMismatch(_GatewayError):
    """Credentials were rejected, typically valid for the other environment."""

    def __init__(self, *, provider: str, environment: str, details: Optional[dict] = None):
        merged = {"environment": environment}
        if details:
            merged.update(details)
        super().__init__(
            "Invalid credentials or environment mismatch",
            code=PaymentCode.GATEWAY_AUTH_MISMATCH,
            error_type="GatewayAuthMismatch",
            provider=provider,
            provider_code="authentication_error",
            details=merged,
        )


class WebhookSignatureError(_GatewayError):
    def __init__(self, message: str, *, provider: str):
        super().__init__(
            message,
            code=PaymentCode.SIGNATURE_ERROR,
            error_type="WebhookSignatureError",
            provider=provider,
        )


class MalformedWebhook(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.MALFORMED_WEBHOOK,
            message=message,
            error_type="MalformedWebhook",
            details=details,
        )


class PayoutDestinationMissing(BusinessException):
    def __init__(self, creator_id: int):
        super().__init__(
            code=PaymentCode.PAYOUT_DESTINATION_MISSING,
            message="Creator payout destination missing",
            error_type="DestinationMissing",
            details={"creator_id": creator_id},
        )


class PayoutDispatchError(_GatewayError):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None):
        super().__init__(
            message,
            code=PaymentCode.PAYOUT_DISPATCH_FAILED,
            error_type="PayoutDispatchError",
            provider=provider,
            provider_code=provider_code,
        )

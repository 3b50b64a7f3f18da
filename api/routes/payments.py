"""
Payments API routes.

Checkout, client polling, gateway/payout webhooks, ledger queries and admin
operations. Keep this thin: services own the rules, adapters own the SDK.
"""
from __future__ import annotations

import ipaddress
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import (
    get_checkout_service,
    get_current_user_id,
    get_expiry_service,
    get_ledger_query_service,
    get_order_gateway_client,
    get_payout_service,
    get_refund_service,
    get_webhook_service,
    require_admin,
)
from api.middleware import get_client_ip
from application.dtos.payments import (
    CreateOrderRequest,
    CreatorEarningsDTO,
    ExpirySweepDTO,
    GatewayHealthDTO,
    OrderCreatedDTO,
    PaymentIntentDTO,
    PaymentStatsDTO,
    PaymentStatusDTO,
    PayoutResultDTO,
    RefundRequestDTO,
    WebhookOutcomeDTO,
)
from application.ports.payment_gateway import OrderGateway
from application.services.checkout_service import CheckoutService
from application.services.expiry_service import ExpiryService
from application.services.ledger_query_service import LedgerQueryService
from application.services.payout_service import PayoutService
from application.services.refund_service import RefundService
from application.services.webhook_service import REJECTED, WebhookOutcome, WebhookService
from core.config import settings
from core.logging_config import get_logger
from core.response import (
    PaginatedData,
    Response as ApiResponse,
    paginated_response,
    success_response,
)
from core.settings import payment_settings
from domain.payment.entity import PaymentState
from domain.payment.exceptions import GatewayAuthMismatch, GatewayRejected, GatewayUnavailable


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_allowed(request: Request) -> bool:
    """Optional webhook source allowlist (exact IPs or CIDR ranges)."""
    allowlist = payment_settings.webhook.ip_allowlist or []
    if not allowlist:
        return True
    remote_ip = request.client.host if request.client else None
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        if "/" in entry:
            if rip in ipaddress.ip_network(entry, strict=False):
                return True
        elif remote_ip == entry:
            return True
    return False


def _webhook_ack(outcome: WebhookOutcome) -> ApiResponse:
    # 网关只关心 2xx；处理结果放在 data 中供排查
    return success_response(
        data=WebhookOutcomeDTO(result=outcome.result, detail=outcome.detail, intent_id=outcome.intent_id),
        message="Webhook received",
    )


@router.post(
    "/orders",
    summary="Create checkout order",
    response_model=ApiResponse[OrderCreatedDTO],
)
async def create_order(
    payload: CreateOrderRequest,
    payer_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    order = await service.create_order(payload.file_id, payer_id)
    return success_response(data=order, message="Order created")


@router.get(
    "/orders/{order_token}/status",
    summary="Poll order status",
    response_model=ApiResponse[PaymentStatusDTO],
)
async def get_order_status(
    order_token: str,
    gateway: bool = Query(False, description="Include a live gateway snapshot while pending"),
    requester_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    status = await service.get_status(order_token, requester_id, include_gateway=gateway)
    return success_response(data=status)


@router.post(
    "/webhook",
    summary="Gateway payment webhook",
    response_model=ApiResponse[WebhookOutcomeDTO],
)
async def payments_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    if not _ip_allowed(request):
        logger.warning("webhook_ip_not_allowed", client_ip=get_client_ip(), peer=request.client.host if request.client else None)
        return _webhook_ack(WebhookOutcome(REJECTED, detail="ip_not_allowed"))
    raw_body = await request.body()
    outcome = await service.ingest(dict(request.headers), raw_body)
    logger.info("webhook_processed", result=outcome.result, detail=outcome.detail, intent_id=outcome.intent_id)
    return _webhook_ack(outcome)


@router.post(
    "/payouts/webhook",
    summary="Payout confirmation webhook",
    response_model=ApiResponse[WebhookOutcomeDTO],
)
async def payouts_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    if not _ip_allowed(request):
        logger.warning("payout_webhook_ip_not_allowed", client_ip=get_client_ip(), peer=request.client.host if request.client else None)
        return _webhook_ack(WebhookOutcome(REJECTED, detail="ip_not_allowed"))
    raw_body = await request.body()
    outcome = await service.ingest_payout(dict(request.headers), raw_body)
    logger.info("payout_webhook_processed", result=outcome.result, detail=outcome.detail, intent_id=outcome.intent_id)
    return _webhook_ack(outcome)


@router.get(
    "/me",
    summary="My purchases",
    response_model=ApiResponse[PaginatedData[PaymentIntentDTO]],
)
async def list_my_payments(
    page: int = Query(1, ge=1),
    size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    state: Optional[PaymentState] = Query(default=None),
    payer_id: int = Depends(get_current_user_id),
    service: LedgerQueryService = Depends(get_ledger_query_service),
):
    items, total = await service.list_payer_payments(payer_id, page=page, size=size, state=state)
    return paginated_response(items=items, total=total, page=page, size=size)


@router.get(
    "/earnings",
    summary="Creator earnings",
    response_model=ApiResponse[CreatorEarningsDTO],
)
async def list_earnings(
    page: int = Query(1, ge=1),
    size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    state: Optional[PaymentState] = Query(default=None),
    creator_id: int = Depends(get_current_user_id),
    service: LedgerQueryService = Depends(get_ledger_query_service),
):
    earnings = await service.list_creator_earnings(creator_id, page=page, size=size, state=state)
    return success_response(data=earnings)


@router.get(
    "/stats",
    summary="Creator payment statistics",
    response_model=ApiResponse[PaymentStatsDTO],
)
async def payment_stats(
    days: int = Query(30, ge=1, le=365),
    creator_id: int = Depends(get_current_user_id),
    service: LedgerQueryService = Depends(get_ledger_query_service),
):
    return success_response(data=await service.stats(creator_id, days))


@router.get(
    "/gateway/health",
    summary="Verify gateway credentials",
    response_model=ApiResponse[GatewayHealthDTO],
)
async def gateway_health(
    _: int = Depends(require_admin),
    gateway: OrderGateway = Depends(get_order_gateway_client),
):
    health = GatewayHealthDTO(
        provider=gateway.provider,
        environment=gateway.environment,
        configured=gateway.configured,
        authenticated=False,
        message="Gateway credentials are not configured",
    )
    if gateway.configured:
        try:
            await gateway.verify_credentials()
        except GatewayAuthMismatch as exc:
            health = health.model_copy(update={"message": exc.message})
        except (GatewayRejected, GatewayUnavailable) as exc:
            health = health.model_copy(update={"message": f"Gateway unreachable: {exc.message}"})
        else:
            health = health.model_copy(update={"authenticated": True, "message": "Credentials verified"})
    logger.info("gateway_health_checked", provider=health.provider, authenticated=health.authenticated)
    return success_response(data=health)


@router.post(
    "/expire",
    summary="Expire stale pending orders",
    response_model=ApiResponse[ExpirySweepDTO],
)
async def expire_pending(
    _: int = Depends(require_admin),
    service: ExpiryService = Depends(get_expiry_service),
):
    sweep = await service.expire_stale_pending()
    return success_response(data=ExpirySweepDTO(expired=sweep.expired, skipped=sweep.skipped))


@router.post(
    "/payouts/retry",
    summary="Retry deferred payouts",
    response_model=ApiResponse[list[PayoutResultDTO]],
)
async def retry_payouts(
    limit: int = Query(50, ge=1, le=500),
    _: int = Depends(require_admin),
    service: PayoutService = Depends(get_payout_service),
):
    results = await service.retry_deferred(limit)
    return success_response(
        data=[
            PayoutResultDTO(intent_id=r.intent_id, result=r.result, payout_token=r.payout_token, reason=r.reason)
            for r in results
        ]
    )


@router.get(
    "/{intent_id}",
    summary="Payment detail",
    response_model=ApiResponse[PaymentIntentDTO],
)
async def get_payment(
    intent_id: int,
    requester_id: int = Depends(get_current_user_id),
    service: LedgerQueryService = Depends(get_ledger_query_service),
):
    return success_response(data=await service.get_payment(intent_id, requester_id))


@router.post(
    "/{intent_id}/refund",
    summary="Record a refund",
    response_model=ApiResponse[PaymentIntentDTO],
)
async def refund_payment(
    intent_id: int,
    payload: RefundRequestDTO,
    _: int = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    intent = await service.refund(intent_id, payload.reason)
    return success_response(data=intent, message="Payment refunded")

"""
API依赖项 - 请求方身份与应用服务装配

身份由上游网关注入（X-User-Id / X-User-Role），本服务不签发令牌。
"""
from typing import AsyncIterator, Optional

from fastapi import Depends, Header

from application.ports.payment_gateway import OrderGateway
from application.ports.payout_gateway import PayoutGateway
from application.ports.storage import StoragePort
from application.services.access_service import AccessService
from application.services.checkout_service import CheckoutService
from application.services.expiry_service import ExpiryService
from application.services.ledger_query_service import LedgerQueryService
from application.services.payout_service import PayoutService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.exceptions import UnauthorizedException
from core.settings import payment_settings
from domain.common.exceptions import AccessForbiddenException
from domain.payment.commission import CommissionPolicy
from infrastructure.cache import get_redis_cache
from infrastructure.external.payments import get_order_gateway, get_payout_gateway
from infrastructure.external.storage import get_storage_client
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


ADMIN_ROLE = "admin"


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    """获取当前请求方ID（缺失或非法时 401）"""
    if not x_user_id:
        raise UnauthorizedException("Missing X-User-Id header")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthorizedException("Invalid X-User-Id header")
    if user_id <= 0:
        raise UnauthorizedException("Invalid X-User-Id header")
    return user_id


async def get_optional_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[int]:
    """匿名访问时返回 None"""
    if not x_user_id:
        return None
    return await get_current_user_id(x_user_id)


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    x_user_role: Optional[str] = Header(default=None),
) -> int:
    """管理员权限校验"""
    if (x_user_role or "").lower() != ADMIN_ROLE:
        raise AccessForbiddenException("Admin role required")
    return user_id


def get_uow_factory():
    return SQLAlchemyUnitOfWork


def get_commission_policy() -> CommissionPolicy:
    return CommissionPolicy(rate=payment_settings.commission_rate)


async def get_order_gateway_client() -> AsyncIterator[OrderGateway]:
    gateway = get_order_gateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


async def get_payout_gateway_client() -> AsyncIterator[PayoutGateway]:
    gateway = get_payout_gateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


def get_storage_port() -> Optional[StoragePort]:
    return get_storage_client()


def get_checkout_service(
    uow_factory=Depends(get_uow_factory),
    gateway: OrderGateway = Depends(get_order_gateway_client),
    commission: CommissionPolicy = Depends(get_commission_policy),
) -> CheckoutService:
    return CheckoutService(uow_factory, gateway, commission, payment_settings)


def get_payout_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PayoutGateway = Depends(get_payout_gateway_client),
) -> PayoutService:
    return PayoutService(uow_factory, gateway)


def get_webhook_service(
    uow_factory=Depends(get_uow_factory),
    gateway: OrderGateway = Depends(get_order_gateway_client),
    payouts: PayoutService = Depends(get_payout_service),
) -> WebhookService:
    payout_queue = None
    if payment_settings.payout.dispatch_mode == "queued":
        from infrastructure.tasks.tasks.payments import enqueue_payout
        payout_queue = enqueue_payout
    return WebhookService(
        uow_factory,
        gateway,
        payouts,
        dedupe=get_redis_cache(),
        dedupe_ttl=payment_settings.webhook.dedupe_ttl_seconds,
        payout_queue=payout_queue,
    )


def get_access_service(
    uow_factory=Depends(get_uow_factory),
    storage: Optional[StoragePort] = Depends(get_storage_port),
) -> AccessService:
    return AccessService(uow_factory, storage, url_ttl=settings.storage.download_url_ttl)


def get_ledger_query_service(uow_factory=Depends(get_uow_factory)) -> LedgerQueryService:
    return LedgerQueryService(uow_factory)


def get_refund_service(uow_factory=Depends(get_uow_factory)) -> RefundService:
    return RefundService(uow_factory)


def get_expiry_service(uow_factory=Depends(get_uow_factory)) -> ExpiryService:
    return ExpiryService(uow_factory, pending_expiry_minutes=payment_settings.pending_expiry_minutes)

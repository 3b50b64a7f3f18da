"""
Order creation and client status polling (application/services).

The pending ledger entry is committed before the gateway is called so the
webhook can always find it; a gateway failure deletes it again.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.payments import CreateOrder, OrderCreatedDTO, PaymentStatusDTO
from application.ports.payment_gateway import OrderGateway
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.common.exceptions import (
    AccessForbiddenException,
    BusinessException,
    FileAssetNotFoundException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.commission import CommissionPolicy
from domain.payment.entity import PaymentIntent, PaymentState
from domain.payment.exceptions import (
    AlreadyPurchasedException,
    FileNotPurchasableException,
    GatewayUnavailable,
    PaymentIntentNotFoundException,
    SelfPurchaseException,
)


logger = get_logger(__name__)


def new_order_token(prefix: str = "uplink") -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: OrderGateway,
        commission: CommissionPolicy,
        settings: PaymentSettings,
        *,
        token_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._commission = commission
        self._settings = settings
        self._token_factory = token_factory or (lambda: new_order_token(settings.order_token_prefix))

    def _order_expiry(self, intent: PaymentIntent) -> datetime:
        created = intent.created_at or datetime.now(timezone.utc)
        return created + timedelta(minutes=self._settings.pending_expiry_minutes)

    async def create_order(self, file_id: int, payer_id: int) -> OrderCreatedDTO:
        if not self._gateway.configured:
            logger.warning("checkout_gateway_unconfigured", file_id=file_id, payer_id=payer_id)
            raise GatewayUnavailable(provider=self._gateway.provider, details={"reason": "credentials_missing"})

        async with self._uow_factory() as uow:
            asset = await uow.file_asset_repository.get_by_id(file_id)
            if asset is None:
                raise FileAssetNotFoundException(str(file_id))
            if not asset.is_purchasable():
                raise FileNotPurchasableException(file_id)
            if asset.belongs_to(payer_id):
                raise SelfPurchaseException()
            creator = await uow.user_repository.get_by_id(asset.creator_id)
            if creator is None:
                raise UserNotFoundException(str(asset.creator_id))
            payer = await uow.user_repository.get_by_id(payer_id)
            if payer is None:
                raise UserNotFoundException(str(payer_id))
            purchased = await uow.payment_repository.get_completed_for(file_id, payer_id)
            if purchased is not None:
                raise AlreadyPurchasedException(file_id, purchased.id)

            split = self._commission.split(asset.price)
            intent = PaymentIntent(
                id=None,
                order_token=self._token_factory(),
                file_id=asset.id,
                creator_id=asset.creator_id,
                payer_id=payer_id,
                amount=asset.price,
                currency=self._settings.currency,
                platform_share=split.platform_share,
                creator_share=split.creator_share,
            )
            intent = await uow.payment_repository.create(intent)
            await uow.commit()

        request = CreateOrder(
            order_token=intent.order_token,
            amount=intent.amount,
            currency=intent.currency,
            customer_id=f"user_{payer.id}",
            customer_name=payer.name,
            customer_email=payer.email,
            customer_phone=payer.phone,
            return_url=self._settings.return_url,
            notify_url=self._settings.notify_url,
            note=f"Purchase: {asset.original_filename or asset.id}",
            tags={"file_id": str(asset.id), "creator_id": str(asset.creator_id)},
            expires_at=self._order_expiry(intent),
        )
        try:
            order = await self._gateway.create_order(request)
        except BusinessException as exc:
            logger.error(
                "checkout_gateway_failed",
                intent_id=intent.id,
                order_token=intent.order_token,
                error_type=exc.error_type,
                error=exc.message,
            )
            async with self._uow_factory() as uow:
                await uow.payment_repository.delete(intent.id)
            raise

        async with self._uow_factory() as uow:
            intent = await uow.payment_repository.attach_external_order(
                intent.id,
                order.external_order_token,
                order.checkout_session_token,
            )

        logger.info(
            "checkout_order_created",
            intent_id=intent.id,
            order_token=intent.order_token,
            external_order_token=intent.external_order_token,
            amount=str(intent.amount),
            platform_share=str(intent.platform_share),
        )
        return OrderCreatedDTO(
            intent_id=intent.id,
            order_token=intent.order_token,
            checkout_session_token=intent.checkout_session_token,
            amount=intent.amount,
            currency=intent.currency,
            state=intent.state.value,
        )

    async def get_status(
        self,
        order_token: str,
        requester_id: int,
        *,
        include_gateway: bool = False,
    ) -> PaymentStatusDTO:
        """Side-effect-free read; the gateway snapshot is never written back."""
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.payment_repository
            intent = await repo.get_by_order_token(order_token)
            if intent is None:
                intent = await repo.get_by_external_order_token(order_token)
        if intent is None:
            raise PaymentIntentNotFoundException(order_token)
        if intent.payer_id != requester_id:
            raise AccessForbiddenException(details={"order_token": order_token})

        snapshot = None
        if include_gateway and intent.state in (PaymentState.PENDING, PaymentState.PROCESSING):
            snapshot = await self._gateway.query_order(intent.order_token)

        return PaymentStatusDTO(
            intent_id=intent.id,
            order_token=intent.order_token,
            file_id=intent.file_id,
            state=intent.state.value,
            amount=intent.amount,
            currency=intent.currency,
            settled_at=intent.settled_at,
            gateway=snapshot,
        )

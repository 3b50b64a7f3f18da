"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported so
the frozen settings objects pick them up; each test gets its own in-memory
SQLite database.
"""
import json
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PLATFORM_COMMISSION_RATE", "0.10")
os.environ.setdefault("PAYMENT__GATEWAY__APP_ID", "TEST_APP_ID")
os.environ.setdefault("PAYMENT__GATEWAY__SECRET_KEY", "TEST_SECRET_KEY")
os.environ.setdefault("PAYMENT__WEBHOOK__SECRET", "whsec_test")

from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Any, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from application.dtos.payments import (  # noqa: E402
    CreateOrder,
    GatewayOrder,
    OrderSnapshot,
    TransferAccepted,
    TransferRequest,
)
from domain.file_asset import FileAsset  # noqa: E402
from domain.payment.commission import CommissionPolicy  # noqa: E402
from domain.payment.entity import PaymentIntent, PaymentState  # noqa: E402
from domain.user.entity import User  # noqa: E402
from infrastructure.external.payments.cashfree_payouts import parse_payout_event  # noqa: E402
from infrastructure.models import Base  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402


class StubOrderGateway:
    """In-memory order gateway recording every call."""

    provider = "stub"
    environment = "sandbox"

    def __init__(self, *, configured: bool = True, fail_with: Optional[Exception] = None):
        self.configured = configured
        self.fail_with = fail_with
        self.created: list[CreateOrder] = []
        self.queried: list[str] = []
        self.closed = False

    async def create_order(self, req: CreateOrder) -> GatewayOrder:
        self.created.append(req)
        if self.fail_with is not None:
            raise self.fail_with
        return GatewayOrder(
            provider=self.provider,
            order_token=req.order_token,
            external_order_token=f"cf_{len(self.created)}",
            checkout_session_token=f"session_{len(self.created)}",
        )

    async def query_order(self, order_token: str) -> OrderSnapshot:
        self.queried.append(order_token)
        return OrderSnapshot(
            provider=self.provider,
            order_token=order_token,
            status="pending",
            provider_status="ACTIVE",
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes):
        raise NotImplementedError

    async def verify_credentials(self) -> dict[str, Any]:
        return {"authenticated": True}

    async def aclose(self) -> None:
        self.closed = True


class StubPayoutGateway:
    provider = "stub"

    def __init__(self, *, configured: bool = True, fail_with: Optional[Exception] = None):
        self.configured = configured
        self.fail_with = fail_with
        self.requests: list[TransferRequest] = []

    async def request_transfer(self, req: TransferRequest) -> TransferAccepted:
        self.requests.append(req)
        if self.fail_with is not None:
            raise self.fail_with
        return TransferAccepted(provider=self.provider, transfer_id=req.transfer_id, provider_ref="cf_transfer_1")

    def parse_webhook(self, headers: dict[str, Any], body: bytes):
        return parse_payout_event(json.loads(body))

    async def aclose(self) -> None:
        return None


class MemoryDedupe:
    """Dict-backed stand-in for the redis SET NX marker."""

    def __init__(self):
        self.keys: dict[str, str] = {}

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        if key in self.keys:
            return False
        self.keys[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self.keys.pop(key, None) is not None


@pytest.fixture
def order_gateway() -> StubOrderGateway:
    return StubOrderGateway()


@pytest.fixture
def payout_gateway() -> StubPayoutGateway:
    return StubPayoutGateway()


@pytest.fixture
def dedupe() -> MemoryDedupe:
    return MemoryDedupe()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return factory


@pytest.fixture
def commission() -> CommissionPolicy:
    return CommissionPolicy(rate=Decimal("0.10"))


@pytest_asyncio.fixture
async def marketplace(uow_factory):
    """A creator with a UPI id, a payer, and three listings."""
    async with uow_factory() as uow:
        creator = await uow.user_repository.create(
            User(id=None, name="Asha", email="asha@example.com", upi_id="asha@okaxis")
        )
        payer = await uow.user_repository.create(
            User(id=None, name="Ravi", email="ravi@example.com", phone="9876543210")
        )
        paid = await uow.file_asset_repository.create(
            FileAsset(
                id=None,
                creator_id=creator.id,
                storage_key="creators/1/beat.mp3",
                original_filename="beat.mp3",
                content_type="audio/mpeg",
                price=Decimal("100.00"),
                is_public=True,
            )
        )
        free = await uow.file_asset_repository.create(
            FileAsset(id=None, creator_id=creator.id, storage_key="creators/1/sample.mp3", is_public=True)
        )
        private = await uow.file_asset_repository.create(
            FileAsset(
                id=None,
                creator_id=creator.id,
                storage_key="creators/1/draft.mp3",
                price=Decimal("50.00"),
                is_public=False,
            )
        )
    return SimpleNamespace(creator=creator, payer=payer, paid=paid, free=free, private=private)


@pytest.fixture
def make_intent(uow_factory, marketplace, commission):
    """Persist a pending intent for (paid file, payer)."""

    async def _make(
        order_token: str = "uplink_test_1",
        *,
        external_order_token: Optional[str] = None,
        creator_id: Optional[int] = None,
        created_at=None,
    ) -> PaymentIntent:
        split = commission.split(marketplace.paid.price)
        async with uow_factory() as uow:
            return await uow.payment_repository.create(
                PaymentIntent(
                    id=None,
                    order_token=order_token,
                    file_id=marketplace.paid.id,
                    creator_id=creator_id or marketplace.creator.id,
                    payer_id=marketplace.payer.id,
                    amount=marketplace.paid.price,
                    currency="INR",
                    platform_share=split.platform_share,
                    creator_share=split.creator_share,
                    external_order_token=external_order_token or f"cf_{order_token}",
                    created_at=created_at,
                )
            )

    return _make


@pytest.fixture
def complete_intent(uow_factory):
    async def _complete(intent: PaymentIntent, payment_token: str = "cf_pay_1") -> PaymentIntent:
        async with uow_factory() as uow:
            observed = intent.state
            intent.mark_completed(payment_token, payment_method="upi")
            saved = await uow.payment_repository.save_transition(intent, observed)
        assert saved is not None and saved.state == PaymentState.COMPLETED
        return saved

    return _complete

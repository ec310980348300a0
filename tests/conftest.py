import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.data.models  # noqa: F401
from storefront.data.database import Base
from storefront.domain.requests import Actor, LineItem
from storefront.domain.states import BANK_TRANSFER, CASH_ON_DELIVERY, E_WALLET_B
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationDispatcher
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import CallbackDeduplicator, CashOnDeliveryGateway, GatewayRegistry
from storefront.services.token_service import TokenConfig, TokenIssuer, TokenPurpose
from tests.fakes import FakeProviderGateway


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'store.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def lock_service(redis_client):
    return LockService(client=redis_client, ttl=30, wait_seconds=5)


@pytest.fixture
def gateways():
    return GatewayRegistry(
        {
            CASH_ON_DELIVERY: CashOnDeliveryGateway(),
            BANK_TRANSFER: FakeProviderGateway(BANK_TRANSFER),
            E_WALLET_B: FakeProviderGateway(E_WALLET_B),
        }
    )


@pytest.fixture
def deduplicator(redis_client):
    return CallbackDeduplicator(client=redis_client, ttl=60)


@pytest.fixture
def dispatcher():
    d = NotificationDispatcher()
    yield d
    d.close()


@pytest.fixture
def make_service(session_factory, lock_service, gateways, dispatcher):
    """Fresh session per service, like one service per request worker."""
    sessions = []

    def _make():
        session = session_factory()
        sessions.append(session)
        return OrderService(
            db=session,
            lock_service=lock_service,
            gateways=gateways,
            publisher=dispatcher,
        )

    yield _make
    for s in sessions:
        s.close()


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def owner():
    return Actor(user_id="user-1")


@pytest.fixture
def make_order(service, owner):
    def _make(items=None, payment_method="bank_transfer", note=None):
        items = items or [
            LineItem("p1", 2, Decimal("500")),
            LineItem("p2", 1, Decimal("300")),
        ]
        return service.create_order(owner.user_id, items, payment_method, note)

    return _make


@pytest.fixture
def token_issuer():
    return TokenIssuer(
        {
            TokenPurpose.ACCESS: TokenConfig(ttl=3600, secret="test-access"),
            TokenPurpose.REFRESH: TokenConfig(ttl=86400, secret="test-refresh"),
            TokenPurpose.RESET: TokenConfig(ttl=900, secret="test-reset"),
        }
    )

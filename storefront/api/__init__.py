# storefront/api/__init__.py
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from storefront.api.routers import auth, health, notifications, orders, payments, reviews
from storefront.data.database import Base, SessionLocal
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationDispatcher, RedisEventRelay
from storefront.services.payment_gateway import (
    CallbackDeduplicator,
    CallbackForwarder,
    GatewayRegistry,
    default_registry,
)
from storefront.services.product_client import ProductClient
from storefront.services.token_service import TokenIssuer, default_issuer
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def init_db(session_factory: sessionmaker):
    #import modeli rejestruje tabele w Base.metadata
    import storefront.data.models  # noqa: F401

    engine = session_factory.kw["bind"]
    logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=engine)


def create_app(
    session_factory: sessionmaker | None = None,
    redis_client: redis.Redis | None = None,
    gateways: GatewayRegistry | None = None,
    token_issuer: TokenIssuer | None = None,
    product_client: ProductClient | None = None,
    relay_events: bool = True,
) -> FastAPI:
    """
    Builds the api. Everything process-wide (dispatcher, relay, redis, db)
    is created on startup and torn down on shutdown, nothing at import time.

    relay_events=False publishes straight to the local dispatcher, fine for a
    single process.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        factory = session_factory or SessionLocal
        init_db(factory)

        client = redis_client or redis.Redis.from_url(REDIS_URL, decode_responses=True)
        registry = gateways or default_registry()
        dispatcher = NotificationDispatcher()

        relay = None
        if relay_events:
            relay = RedisEventRelay(dispatcher, client=client)
            relay.start()

        app.state.session_factory = factory
        app.state.dispatcher = dispatcher
        app.state.publisher = relay or dispatcher
        app.state.lock_service = LockService(client=client)
        app.state.gateways = registry
        app.state.callback_forwarder = CallbackForwarder(registry, CallbackDeduplicator(client=client))
        app.state.token_issuer = token_issuer or default_issuer()
        app.state.product_client = product_client or ProductClient()
        logger.info("Storefront api started")

        yield

        if relay is not None:
            relay.stop()
        dispatcher.close()
        logger.info("Storefront api stopped")

    app = FastAPI(title="Storefront Order Service", version="1.0.0", lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(reviews.router)
    app.include_router(notifications.router)

    return app

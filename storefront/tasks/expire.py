# storefront/tasks/expire.py
from datetime import datetime, timedelta, timezone

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.domain.errors import GatewayError, LedgerError
from storefront.repos.order_repo import OrderRepo
from storefront.services.lock_service import LockService
from storefront.services.notification_service import RedisEventRelay
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import GatewayRegistry, PaymentResult, default_registry
from storefront.utils.settings import PAYMENT_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def reconcile_stale_payments(
    service: OrderService,
    gateways: GatewayRegistry,
    timeout_seconds: int = PAYMENT_TIMEOUT_SECONDS,
    now: datetime | None = None,
) -> dict:
    """
    Poll-and-expire for payments that never got a callback.

    Provider knows the outcome -> that result is settled.
    Still pending after the timeout -> settled as failed.
    Provider unreachable -> skipped, next sweep tries again.
    Everything goes through settle_payment, the same path a callback takes.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=timeout_seconds)
    stale = OrderRepo(service.db).list_stale_pending_payments(cutoff)

    logger.info(f"Found {len(stale)} pending payments older than {timeout_seconds}s")

    stats = {"completed": 0, "failed": 0, "skipped": 0}
    for payment in stale:
        payment_id = payment.id
        try:
            result = gateways.for_method(payment.method).poll(payment_id)
        except GatewayError as e:
            logger.warning(f"Cannot poll provider for payment {payment_id}, skipping: {e}")
            stats["skipped"] += 1
            continue

        if result is None:
            result = PaymentResult(
                payment_id=payment_id,
                success=False,
                provider_response={"reason": "timeout", "timeout_seconds": timeout_seconds},
            )

        try:
            _, applied = service.settle_payment(payment_id, result)
        except LedgerError as e:
            logger.warning(f"Sweep could not settle payment {payment_id}: {e}")
            stats["skipped"] += 1
            continue

        if applied:
            stats["completed" if result.success else "failed"] += 1

    return stats


@celery_app.task(name="storefront.tasks.expire.expire_stale_payments_task")
def expire_stale_payments_task():
    logger.info("Expire stale payments task started")

    db = SessionLocal()
    try:
        gateways = default_registry()
        service = OrderService(
            db=db,
            lock_service=LockService(),
            gateways=gateways,
            publisher=RedisEventRelay(),
        )
        stats = reconcile_stale_payments(service, gateways)
        logger.info(f"Expire stale payments task done: {stats}")
        return stats
    finally:
        db.close()

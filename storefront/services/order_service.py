# storefront/services/order_service.py
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional, Tuple
import uuid

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.errors import GatewayError, InvalidInput, InvalidState, NotFound
from storefront.domain.events import OrderStatusChanged
from storefront.domain.requests import (
    Actor,
    CreateOrderRequest,
    InitiatePaymentRequest,
    LineItem,
    UpdateNoteRequest,
    order_total,
    validate_create_order,
    validate_initiate_payment,
    validate_status_filter,
    validate_update_note,
)
from storefront.domain.states import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_PENDING,
    ORDER_TERMINAL,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    PAYMENT_TERMINAL,
    ROLE_ADMIN,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.lock_service import LockService
from storefront.services.notification_service import EventPublisher
from storefront.services.payment_gateway import GatewayRegistry, InitiationAck, PaymentResult
from storefront.services.product_client import ProductClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _amount_mismatch(expected, result: PaymentResult) -> bool:
    return result.amount is not None and result.amount != expected


def _as_line_item(item) -> LineItem:
    if isinstance(item, LineItem):
        return item
    if isinstance(item, Mapping):
        return LineItem(
            product_id=item.get("product_id"),
            quantity=item.get("quantity"),
            unit_price=item.get("unit_price"),
        )
    raise InvalidInput({"line_items": f"unsupported line item {item!r}"})


class OrderService:
    """
    Order ledger: jedyne miejsce ktore zmienia status zamowienia i platnosci.

    Stany zamowienia: pending -> completed | cancelled (terminalne)
    Stany platnosci:  pending -> completed | failed (terminalne)

    Wspolbieznosc:
    - kazda zmiana stanu pod lockiem per zamowienie (redis), nie globalnym
    - stan czytany od nowa po wejsciu w lock
    - event publikowany dopiero po commit
    """

    def __init__(
        self,
        db: Session,
        lock_service: LockService,
        gateways: GatewayRegistry,
        publisher: Optional[EventPublisher] = None,
        product_client: Optional[ProductClient] = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.lock_service = lock_service
        self.gateways = gateways
        self.publisher = publisher
        self.product_client = product_client

    #query - odczyt bez locka
    def get_order(self, order_id: str, actor: Actor) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        self._authorize(order, actor)
        return order

    def list_orders(self, actor: Actor, status: Optional[str] = None) -> List[OrderModel]:
        """Newest first. Admins see every order, customers only their own."""
        status = validate_status_filter(status)
        owner = None if actor.role == ROLE_ADMIN else actor.user_id
        return self.repo.list_orders(user_id=owner, status=status)

    def list_payments(self, order_id: str, actor: Actor) -> List[PaymentModel]:
        order = self.get_order(order_id, actor)
        return self.repo.list_payments(order.id)

    #commands
    def create_order(
        self,
        owner: str,
        line_items: Iterable,
        payment_method: str = "cash_on_delivery",
        note: Optional[str] = None,
    ) -> OrderModel:
        req = validate_create_order(
            CreateOrderRequest(
                owner=owner,
                line_items=[_as_line_item(i) for i in (line_items or [])],
                payment_method=payment_method,
                note=note,
            )
        )

        now = _utcnow()
        order = OrderModel(
            id=str(uuid.uuid4()),
            user_id=req.owner,
            status=ORDER_PENDING,
            total_price=order_total(req.line_items),
            payment_method=req.payment_method,
            note=req.note,
            created_at=now,
            updated_at=now,
            items=[
                OrderItemModel(
                    product_id=i.product_id,
                    position=pos,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                )
                for pos, i in enumerate(req.line_items)
            ],
        )
        created = self.repo.create_order(order)

        logger.info(f"Order {created.id} created for user {owner}, total {created.total_price}")
        return created

    def checkout(
        self,
        owner: str,
        items: Iterable[Tuple[str, int]],
        payment_method: str = "cash_on_delivery",
        note: Optional[str] = None,
    ) -> OrderModel:
        """
        Use Case: zamowienie z produktow katalogu.
        Cena pobierana z product-service raz i zapisywana w zamowieniu.
        """
        if self.product_client is None:
            raise RuntimeError("checkout needs a product client")

        line_items = []
        for product_id, quantity in items:
            price = self.product_client.fetch_price(product_id)
            line_items.append(LineItem(product_id=product_id, quantity=quantity, unit_price=price))

        return self.create_order(owner, line_items, payment_method, note)

    def initiate_payment(
        self,
        order_id: str,
        method: str,
        actor: Actor,
    ) -> Tuple[OrderModel, PaymentModel, InitiationAck]:
        req = validate_initiate_payment(InitiatePaymentRequest(order_id=order_id, method=method))
        gateway = self.gateways.for_method(req.method)

        event = None
        with self.lock_service.order_lock(order_id):
            order = self.repo.get_order(order_id, fresh=True)
            if not order:
                raise NotFound(f"Order {order_id} not found")
            self._authorize(order, actor)

            if order.status != ORDER_PENDING:
                raise InvalidState(f"Order {order_id} is {order.status}, payment not allowed")

            if self.repo.get_pending_payment(order_id):
                raise InvalidState(f"Order {order_id} already has a pending payment")

            payment_id = str(uuid.uuid4())
            #GatewayError -> nic nie zapisane, zamowienie dalej pending bez platnosci
            ack = gateway.initiate(payment_id, order.id, order.total_price)
            if ack.result is not None and _amount_mismatch(order.total_price, ack.result):
                raise GatewayError(
                    f"Payment provider {req.method} settled {ack.result.amount}, order {order_id} totals {order.total_price}"
                )

            try:
                now = _utcnow()
                payment = PaymentModel(
                    id=payment_id,
                    order_id=order.id,
                    user_id=order.user_id,
                    amount=order.total_price,
                    method=req.method,
                    status=PAYMENT_PENDING,
                    provider_response=ack.provider_response,
                    created_at=now,
                    updated_at=now,
                )
                self.repo.add_payment(payment)
                order.payment_id = payment_id
                order.payment_method = req.method
                order.updated_at = now

                if ack.result is not None:
                    #cod albo provider rozliczyl od razu, ta sama sciezka co callback
                    event = self._apply_settlement(order, payment, ack.result)

                self.repo.commit()
            except Exception:
                self.repo.rollback()
                raise

        logger.info(f"Payment {payment_id} ({req.method}) initiated for order {order_id}, status {payment.status}")
        self._publish(event)
        return order, payment, ack

    def settle_payment(
        self,
        payment_id: str,
        result: PaymentResult,
        method: Optional[str] = None,
    ) -> Tuple[PaymentModel, bool]:
        """
        Idempotent. Returns (payment, applied); applied is False when the
        payment was already terminal and the call was a no-op.

        `method` is the provider the result came from (callback route); a
        result from another provider, or for another amount, is rejected.
        """
        if result.payment_id != payment_id:
            raise InvalidInput({"payment_id": "does not match the settlement result"})

        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise NotFound(f"Payment {payment_id} not found")

        errors = {}
        if method is not None and method != payment.method:
            errors["method"] = f"payment was made with {payment.method}, not {method}"
        if _amount_mismatch(payment.amount, result):
            errors["amount"] = f"provider reported {result.amount}, payment is {payment.amount}"
        if errors:
            logger.warning(f"Settlement for payment {payment_id} rejected: {errors}")
            raise InvalidInput(errors, "Settlement does not match the payment")

        event = None
        with self.lock_service.order_lock(payment.order_id):
            payment = self.repo.get_payment(payment_id, fresh=True)
            order = self.repo.get_order(payment.order_id, fresh=True)

            if payment.status in PAYMENT_TERMINAL:
                if payment.settlement_key and payment.settlement_key != result.settlement_key():
                    logger.warning(
                        f"Payment {payment_id} already {payment.status}, conflicting result ignored"
                    )
                else:
                    logger.info(f"Payment {payment_id} already {payment.status}, duplicate settlement ignored")
                return payment, False

            try:
                event = self._apply_settlement(order, payment, result)
                self.repo.commit()
            except Exception:
                self.repo.rollback()
                raise

        self._publish(event)
        return payment, True

    def update_note(self, order_id: str, note: Optional[str], actor: Actor) -> OrderModel:
        """
        Replace the buyer's note. Only the owner may edit it, in any status;
        the order status is never touched, so no event is published.
        """
        req = validate_update_note(UpdateNoteRequest(order_id=order_id, note=note))

        with self.lock_service.order_lock(order_id):
            order = self.repo.get_order(order_id, fresh=True)
            if not order:
                raise NotFound(f"Order {order_id} not found")
            #notatka kupujacego, admin tez nie edytuje
            if order.user_id != actor.user_id:
                raise PermissionError("Only the buyer may edit the order note")

            try:
                order.note = req.note
                order.updated_at = _utcnow()
                self.repo.commit()
            except Exception:
                self.repo.rollback()
                raise

        logger.info(f"Note of order {order_id} updated by {actor.user_id}")
        return order

    def cancel_order(self, order_id: str, actor: Actor) -> OrderModel:
        with self.lock_service.order_lock(order_id):
            order = self.repo.get_order(order_id, fresh=True)
            if not order:
                raise NotFound(f"Order {order_id} not found")
            self._authorize(order, actor)

            if order.status in ORDER_TERMINAL:
                raise InvalidState(f"Order {order_id} is already {order.status}")

            try:
                now = _utcnow()
                pending = self.repo.get_pending_payment(order_id)
                if pending:
                    pending.status = PAYMENT_FAILED
                    pending.provider_response = {
                        **(pending.provider_response or {}),
                        "reason": "order_cancelled",
                        "cancelled_by": actor.role,
                    }
                    pending.updated_at = now
                    logger.info(f"Payment {pending.id} failed because order {order_id} was cancelled")

                event = self._transition(order, ORDER_CANCELLED, now)
                self.repo.commit()
            except Exception:
                self.repo.rollback()
                raise

        logger.info(f"Order {order_id} cancelled by {actor.role} {actor.user_id}")
        self._publish(event)
        return order

    #internals
    def _apply_settlement(
        self,
        order: OrderModel,
        payment: PaymentModel,
        result: PaymentResult,
    ) -> Optional[OrderStatusChanged]:
        now = _utcnow()
        payment.settlement_key = result.settlement_key()
        payment.provider_response = result.provider_response or payment.provider_response
        payment.updated_at = now

        if not result.success:
            payment.status = PAYMENT_FAILED
            logger.info(f"Payment {payment.id} failed, order {order.id} stays {order.status}")
            return None

        payment.status = PAYMENT_COMPLETED
        payment.transaction_id = result.transaction_id
        payment.paid_at = now
        logger.info(f"Payment {payment.id} completed, transaction {result.transaction_id}")

        if order.status != ORDER_PENDING:
            logger.error(f"Payment {payment.id} completed but order {order.id} is {order.status}")
            return None
        return self._transition(order, ORDER_COMPLETED, now)

    def _transition(self, order: OrderModel, new_status: str, now: datetime) -> OrderStatusChanged:
        old_status = order.status
        order.status = new_status
        order.updated_at = now
        return OrderStatusChanged(
            order_id=order.id,
            owner=order.user_id,
            old_status=old_status,
            new_status=new_status,
            timestamp=now,
        )

    def _authorize(self, order: OrderModel, actor: Actor):
        if actor.role == ROLE_ADMIN:
            return
        if order.user_id != actor.user_id:
            raise PermissionError("Access to order denied")

    def _publish(self, event: Optional[OrderStatusChanged]):
        if event is None or self.publisher is None:
            return
        try:
            self.publisher.publish(event)
        except Exception as e:
            #powiadomienia best-effort, stan juz zapisany
            logger.warning(f"Publishing {event.new_status} for order {event.order_id} failed: {e}")

# storefront/repos/order_repo.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    #orders
    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: str, fresh: bool = False) -> OrderModel | None:
        #fresh=True czyta stan z bazy, ignoruje identity map (po wejsciu w lock)
        return self.db.get(OrderModel, order_id, populate_existing=fresh)

    def list_orders(self, user_id: Optional[str] = None, status: Optional[str] = None) -> List[OrderModel]:
        query = select(OrderModel)
        if user_id is not None:
            query = query.where(OrderModel.user_id == user_id)
        if status is not None:
            query = query.where(OrderModel.status == status)
        return list(self.db.execute(query.order_by(OrderModel.created_at.desc())).scalars())

    def has_completed_order_line(self, user_id: str, product_id: str) -> bool:
        row = self.db.execute(
            select(OrderItemModel.id)
            .join(OrderModel, OrderModel.id == OrderItemModel.order_id)
            .where(
                OrderModel.user_id == user_id,
                OrderModel.status == "completed",
                OrderItemModel.product_id == product_id,
            )
            .limit(1)
        ).first()
        return row is not None

    #payments
    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        return payment

    def get_payment(self, payment_id: str, fresh: bool = False) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id, populate_existing=fresh)

    def get_pending_payment(self, order_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id, PaymentModel.status == "pending")
            .execution_options(populate_existing=True)
        ).scalars().first()

    def list_payments(self, order_id: str) -> List[PaymentModel]:
        return list(
            self.db.execute(
                select(PaymentModel)
                .where(PaymentModel.order_id == order_id)
                .order_by(PaymentModel.created_at)
            ).scalars()
        )

    def list_stale_pending_payments(self, older_than: datetime, limit: int = 100) -> List[PaymentModel]:
        return list(
            self.db.execute(
                select(PaymentModel)
                .where(PaymentModel.status == "pending", PaymentModel.created_at < older_than)
                .order_by(PaymentModel.created_at)
                .limit(limit)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

# storefront/api/routers/orders.py
from typing import List, Optional

from fastapi import APIRouter, Depends

from storefront.api.deps import get_current_actor, get_order_service
from storefront.api.errors import http_errors
from storefront.domain.requests import Actor
from storefront.domain.schemas import (
    NoteUpdate,
    OrderCreate,
    OrderOut,
    PaymentCreate,
    PaymentInitiatedOut,
    PaymentOut,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    """
    Checkout: ceny z katalogu sa kopiowane do zamowienia.
    """
    with http_errors():
        return svc.checkout(
            owner=actor.user_id,
            items=[(i.product_id, i.quantity) for i in payload.items],
            payment_method=payload.payment_method,
            note=payload.note,
        )


@router.get("/", response_model=List[OrderOut])
def list_orders(
    status: Optional[str] = None,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    """
    Admin widzi wszystkie zamowienia, klient tylko swoje. ?status= filtruje.
    """
    with http_errors():
        return svc.list_orders(actor, status=status)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    with http_errors():
        return svc.get_order(order_id, actor)


@router.get("/{order_id}/payments", response_model=List[PaymentOut])
def list_payments(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    """
    Historia platnosci, rowniez nieudane proby.
    """
    with http_errors():
        return svc.list_payments(order_id, actor)


@router.post("/{order_id}/payments", response_model=PaymentInitiatedOut, status_code=201)
def initiate_payment(
    order_id: str,
    payload: PaymentCreate,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    with http_errors():
        order, payment, ack = svc.initiate_payment(order_id, payload.method, actor)
    return {"order": order, "payment": payment, "redirect_url": ack.redirect_url}


@router.patch("/{order_id}/note", response_model=OrderOut)
def update_note(
    order_id: str,
    payload: NoteUpdate,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    with http_errors():
        return svc.update_note(order_id, payload.note, actor)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: OrderService = Depends(get_order_service),
):
    with http_errors():
        return svc.cancel_order(order_id, actor)

# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import get_callback_forwarder, get_order_service
from storefront.api.errors import http_errors
from storefront.domain.schemas import SettlementOut
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import CallbackForwarder

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/callbacks/{method}", response_model=SettlementOut)
async def payment_callback(
    method: str,
    request: Request,
    x_signature: str | None = Header(default=None),
    forwarder: CallbackForwarder = Depends(get_callback_forwarder),
    svc: OrderService = Depends(get_order_service),
):
    """
    Webhook providera. Powtorzone dostarczenie -> 200, provider przestaje ponawiac.
    Blad (404, 502, 503) -> provider ponowi.
    """
    body = await request.body()
    settled = {}

    def settle(result):
        payment, applied = svc.settle_payment(result.payment_id, result, method=method)
        settled["payment"] = payment
        settled["applied"] = applied

    #ledger blokuje (lock, baza), nie w petli zdarzen
    with http_errors():
        result, forwarded = await run_in_threadpool(forwarder.handle, method, body, x_signature, settle)

    if not forwarded:
        return {"payment_id": result.payment_id, "status": "duplicate", "duplicate": True}

    payment = settled["payment"]
    return {"payment_id": payment.id, "status": payment.status, "duplicate": not settled["applied"]}

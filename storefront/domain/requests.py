# storefront/domain/requests.py
"""
Typed requests for ledger operations and one validation function per operation.

Validation never touches persistence. Each function raises InvalidInput with a
message per offending field, or returns normalized values the ledger can trust.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from storefront.domain.errors import InvalidInput
from storefront.domain.states import ORDER_PAYMENT_METHODS, ORDER_STATUSES, PAYMENT_METHODS

MAX_NOTE_LENGTH = 1000
MAX_COMMENT_LENGTH = 2000
MONEY_PLACES = Decimal("0.01")
#Numeric(12, 2): 10 cyfr przed przecinkiem
MAX_AMOUNT = Decimal("9999999999.99")
MAX_QUANTITY = 10000


@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class CreateOrderRequest:
    owner: str
    line_items: List[LineItem]
    payment_method: str = "cash_on_delivery"
    note: Optional[str] = None


@dataclass(frozen=True)
class InitiatePaymentRequest:
    order_id: str
    method: str


@dataclass(frozen=True)
class UpdateNoteRequest:
    order_id: str
    note: Optional[str] = None


@dataclass(frozen=True)
class CreateReviewRequest:
    user_id: str
    product_id: str
    rating: int
    comment: Optional[str] = None


def _is_int(value) -> bool:
    #bool to tez int w pythonie
    return isinstance(value, int) and not isinstance(value, bool)


def _money(value) -> Decimal:
    if isinstance(value, float):
        raise ValueError("must be an exact decimal, not a float")
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if not amount.is_finite():
            raise ValueError("must be a finite number")
        if amount < 0:
            raise ValueError("must be >= 0")
        if amount > MAX_AMOUNT:
            raise ValueError(f"must be at most {MAX_AMOUNT}")
        if amount != amount.quantize(MONEY_PLACES):
            raise ValueError("must have at most 2 decimal places")
    except InvalidOperation:
        raise ValueError("must be a decimal number")
    return amount


def validate_create_order(req: CreateOrderRequest) -> CreateOrderRequest:
    errors = {}

    if not req.owner:
        errors["owner"] = "is required"

    if req.payment_method not in ORDER_PAYMENT_METHODS:
        errors["payment_method"] = f"must be one of {', '.join(ORDER_PAYMENT_METHODS)}"

    if req.note is not None and len(req.note) > MAX_NOTE_LENGTH:
        errors["note"] = f"must be at most {MAX_NOTE_LENGTH} characters"

    items = []
    seen = set()
    if not req.line_items:
        errors["line_items"] = "must contain at least one item"

    for idx, item in enumerate(req.line_items or []):
        path = f"line_items[{idx}]"
        if not item.product_id:
            errors[f"{path}.product_id"] = "is required"
        elif item.product_id in seen:
            errors[f"{path}.product_id"] = f"duplicate product {item.product_id}"
        seen.add(item.product_id)

        if not _is_int(item.quantity) or not 1 <= item.quantity <= MAX_QUANTITY:
            errors[f"{path}.quantity"] = f"must be an integer between 1 and {MAX_QUANTITY}"

        try:
            price = _money(item.unit_price)
        except ValueError as e:
            errors[f"{path}.unit_price"] = str(e)
            continue
        items.append(LineItem(product_id=item.product_id, quantity=item.quantity, unit_price=price))

    if not errors and order_total(items) > MAX_AMOUNT:
        errors["line_items"] = f"order total must be at most {MAX_AMOUNT}"

    if errors:
        raise InvalidInput(errors, "Invalid order")

    note = req.note.strip() if req.note else None
    return CreateOrderRequest(
        owner=req.owner,
        line_items=items,
        payment_method=req.payment_method,
        note=note or None,
    )


def validate_initiate_payment(req: InitiatePaymentRequest) -> InitiatePaymentRequest:
    errors = {}
    if not req.order_id:
        errors["order_id"] = "is required"
    if req.method not in PAYMENT_METHODS:
        errors["method"] = f"must be one of {', '.join(PAYMENT_METHODS)}"
    if errors:
        raise InvalidInput(errors, "Invalid payment request")
    return req


def validate_update_note(req: UpdateNoteRequest) -> UpdateNoteRequest:
    errors = {}
    if not req.order_id:
        errors["order_id"] = "is required"
    if req.note is not None and not isinstance(req.note, str):
        errors["note"] = "must be text"
    elif req.note is not None and len(req.note) > MAX_NOTE_LENGTH:
        errors["note"] = f"must be at most {MAX_NOTE_LENGTH} characters"
    if errors:
        raise InvalidInput(errors, "Invalid note")

    #pusta notatka czysci pole
    note = req.note.strip() if req.note else None
    return UpdateNoteRequest(order_id=req.order_id, note=note or None)


def validate_status_filter(status: Optional[str]) -> Optional[str]:
    if status is None or status in ORDER_STATUSES:
        return status
    raise InvalidInput({"status": f"must be one of {', '.join(ORDER_STATUSES)}"}, "Invalid status filter")


def validate_create_review(req: CreateReviewRequest) -> CreateReviewRequest:
    errors = {}
    if not req.user_id:
        errors["user_id"] = "is required"
    if not req.product_id:
        errors["product_id"] = "is required"
    if not _is_int(req.rating) or not 1 <= req.rating <= 5:
        errors["rating"] = "must be an integer between 1 and 5"
    if req.comment is not None and len(req.comment) > MAX_COMMENT_LENGTH:
        errors["comment"] = f"must be at most {MAX_COMMENT_LENGTH} characters"
    if errors:
        raise InvalidInput(errors, "Invalid review")

    comment = req.comment.strip() if req.comment else None
    return CreateReviewRequest(
        user_id=req.user_id,
        product_id=req.product_id,
        rating=req.rating,
        comment=comment or None,
    )


def order_total(items: List[LineItem]) -> Decimal:
    return sum((i.unit_price * i.quantity for i in items), Decimal("0.00"))


@dataclass(frozen=True)
class Actor:
    """Who is calling, as vouched for by the auth gateway."""

    user_id: str
    role: str = "customer"

# storefront/api/deps.py
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from storefront.domain.requests import Actor
from storefront.domain.states import ROLE_ADMIN, ROLE_CUSTOMER
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import CallbackForwarder
from storefront.services.review_service import ReviewService
from storefront.services.token_service import InvalidToken, TokenIssuer, TokenPurpose

bearer = HTTPBearer(auto_error=False)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def actor_from_token(issuer: TokenIssuer, token: str | None) -> Actor:
    """Auth gateway: verified access token -> Actor. Raises InvalidToken."""
    payload = issuer.verify(TokenPurpose.ACCESS, token)
    roles = payload.get("roles") or []
    role = ROLE_ADMIN if ROLE_ADMIN in roles else ROLE_CUSTOMER
    return Actor(user_id=str(payload["sub"]), role=role)


def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Actor:
    token = credentials.credentials if credentials else request.cookies.get("accessToken")
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        return actor_from_token(issuer, token)
    except InvalidToken as e:
        raise HTTPException(status_code=401, detail=str(e))


def get_order_service(request: Request, db: Session = Depends(get_db)) -> OrderService:
    state = request.app.state
    return OrderService(
        db=db,
        lock_service=state.lock_service,
        gateways=state.gateways,
        publisher=state.publisher,
        product_client=state.product_client,
    )


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)


def get_callback_forwarder(request: Request) -> CallbackForwarder:
    return request.app.state.callback_forwarder

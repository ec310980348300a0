# storefront/api/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException

from storefront.api.deps import get_token_issuer
from storefront.domain.schemas import RefreshIn, TokenOut
from storefront.services.token_service import InvalidToken, TokenIssuer, TokenPurpose

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/refresh", response_model=TokenOut)
def refresh_access_token(payload: RefreshIn, issuer: TokenIssuer = Depends(get_token_issuer)):
    try:
        claims = issuer.verify(TokenPurpose.REFRESH, payload.refresh_token)
    except InvalidToken as e:
        raise HTTPException(status_code=401, detail=str(e))

    access = issuer.issue(
        TokenPurpose.ACCESS,
        {"sub": claims["sub"], "roles": claims.get("roles", [])},
    )
    return {"access_token": access, "expires_in": issuer.ttl(TokenPurpose.ACCESS)}

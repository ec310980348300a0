# storefront/services/token_service.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from storefront.utils.settings import (
    ACCESS_TOKEN_SECRET,
    ACCESS_TOKEN_TTL_SECONDS,
    REFRESH_TOKEN_SECRET,
    REFRESH_TOKEN_TTL_SECONDS,
    RESET_TOKEN_SECRET,
    RESET_TOKEN_TTL_SECONDS,
)


class TokenPurpose(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET = "reset"


@dataclass(frozen=True)
class TokenConfig:
    ttl: int
    secret: str


class InvalidToken(Exception):
    pass


class TokenIssuer:
    """One signer for every credential kind; purpose picks the secret and lifetime."""

    def __init__(self, configs: Dict[TokenPurpose, TokenConfig], algorithm: str = "HS256"):
        self.configs = dict(configs)
        self.algorithm = algorithm

    def _config(self, purpose: TokenPurpose) -> TokenConfig:
        try:
            return self.configs[TokenPurpose(purpose)]
        except (KeyError, ValueError):
            raise InvalidToken(f"No token configuration for purpose '{purpose}'")

    def issue(self, purpose: TokenPurpose, claims: Dict[str, Any], now: Optional[datetime] = None) -> str:
        cfg = self._config(purpose)
        now = now or datetime.now(timezone.utc)
        payload = {
            **claims,
            "purpose": TokenPurpose(purpose).value,
            "iat": now,
            "exp": now + timedelta(seconds=cfg.ttl),
        }
        return jwt.encode(payload, cfg.secret, algorithm=self.algorithm)

    def verify(self, purpose: TokenPurpose, token: str) -> Dict[str, Any]:
        if not token:
            raise InvalidToken(f"{TokenPurpose(purpose).value} token is required")
        cfg = self._config(purpose)
        try:
            payload = jwt.decode(
                token,
                cfg.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidToken(f"Expired {TokenPurpose(purpose).value} token")
        except jwt.InvalidTokenError:
            raise InvalidToken(f"Invalid {TokenPurpose(purpose).value} token")

        if payload.get("purpose") != TokenPurpose(purpose).value:
            raise InvalidToken(f"Token is not a {TokenPurpose(purpose).value} token")
        return payload

    def ttl(self, purpose: TokenPurpose) -> int:
        return self._config(purpose).ttl


def default_issuer() -> TokenIssuer:
    return TokenIssuer(
        {
            TokenPurpose.ACCESS: TokenConfig(ttl=ACCESS_TOKEN_TTL_SECONDS, secret=ACCESS_TOKEN_SECRET),
            TokenPurpose.REFRESH: TokenConfig(ttl=REFRESH_TOKEN_TTL_SECONDS, secret=REFRESH_TOKEN_SECRET),
            TokenPurpose.RESET: TokenConfig(ttl=RESET_TOKEN_TTL_SECONDS, secret=RESET_TOKEN_SECRET),
        }
    )

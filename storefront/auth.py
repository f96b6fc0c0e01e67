import hmac
import time
from typing import Optional

from fastapi import Header, Request
from jose import JWTError, jwt

from storefront.config import Settings
from storefront.errors import AuthError

ALGORITHM = "HS256"


def check_password(settings: Settings, password: Optional[str]) -> None:
    if not settings.admin_password or not password:
        raise AuthError()
    if not hmac.compare_digest(password.encode(), settings.admin_password.encode()):
        raise AuthError()


def issue_token(settings: Settings) -> str:
    now = int(time.time())
    claims = {"sub": "admin", "iat": now, "exp": now + settings.admin_token_ttl}
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def verify_token(request: Request, authorization: Optional[str] = Header(None)):
    settings: Settings = request.app.state.settings
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer":
            raise AuthError()
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except (ValueError, JWTError):
        raise AuthError()
    if claims.get("sub") != "admin":
        raise AuthError()
    return claims

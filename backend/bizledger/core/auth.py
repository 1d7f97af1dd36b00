import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Header, HTTPException

from bizledger.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    id: str
    email: Optional[str] = None


def _decode_options(settings):
    """Build shared audience kwargs + options dict."""
    audience = (settings.auth_jwt_audience or "").strip()
    decode_kwargs = {}
    options = {}
    if audience:
        decode_kwargs["audience"] = audience
        options["verify_aud"] = True
    else:
        options["verify_aud"] = False
    return decode_kwargs, options


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    """Resolve the caller from an HS256 bearer token issued by the session provider."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    settings = get_settings()

    if not settings.auth_jwt_secret:
        raise HTTPException(500, "AUTH_JWT_SECRET is not configured")

    decode_kwargs, options = _decode_options(settings)

    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            options=options,
            **decode_kwargs,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(401, "Token expired")
    except jwt.InvalidTokenError as exc:
        logger.debug("Token verification failed: %s", exc)
        raise HTTPException(401, "Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(401, "Invalid token")

    return CurrentUser(id=str(user_id), email=payload.get("email"))

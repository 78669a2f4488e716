import hmac
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import OAuth2PasswordBearer

from cinebook.core.config import settings
from cinebook.core.exceptions import Forbidden, NotAuthenticated
from cinebook.core.security import decode_token
from cinebook.integrations.payments import get_payment_gateway  # noqa: F401
from cinebook.models.booking import GUEST_USER_ID

# Tokens are issued by the account service; this API only verifies them
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/token", auto_error=False
)


def get_current_claims(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[dict]:
    """Claims of the bearer token; None for anonymous callers."""
    if not token:
        return None
    claims = decode_token(token)
    if claims is None:
        raise NotAuthenticated("Could not validate credentials")
    return claims


def get_current_user_id(claims: Optional[dict] = Depends(get_current_claims)) -> str:
    """Caller identity; anonymous callers book as the guest user."""
    if claims is None:
        return GUEST_USER_ID
    return str(claims["sub"])


def require_user(user_id: str = Depends(get_current_user_id)) -> str:
    if user_id == GUEST_USER_ID:
        raise NotAuthenticated("Not authenticated")
    return user_id


def get_current_admin(claims: Optional[dict] = Depends(get_current_claims)) -> str:
    if claims is None:
        raise NotAuthenticated("Not authenticated")
    if claims.get("role") != "admin":
        raise Forbidden("Admin access required")
    return str(claims["sub"])


def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    x_cron_secret: Optional[str] = Header(None),
) -> None:
    """
    Scheduler calls carry ``Authorization: Bearer <CRON_SECRET>`` or
    ``X-Cron-Secret``. Without a configured secret the endpoint is open.
    """
    if not settings.CRON_SECRET:
        return
    supplied = x_cron_secret
    if not supplied and authorization and authorization.startswith("Bearer "):
        supplied = authorization[len("Bearer "):]
    if not supplied or not hmac.compare_digest(supplied, settings.CRON_SECRET):
        raise NotAuthenticated("Invalid cron secret")

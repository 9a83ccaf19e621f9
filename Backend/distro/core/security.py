import logging
import jwt
from fastapi import Request
from pydantic import BaseModel

from distro.core.config import settings
from distro.core.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

LOGIN_COOKIE = "loginToken"


class Identity(BaseModel):
    """Verified staff member behind a request."""
    id: str
    name: str = "Usuario sin nombre"
    role: str = ""


def decode_login_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise UnauthorizedError("Invalid token")
    if not payload.get("id"):
        raise UnauthorizedError("Invalid token")
    return Identity(
        id=str(payload["id"]),
        name=payload.get("name") or "Usuario sin nombre",
        role=payload.get("role") or "",
    )


async def get_current_identity(request: Request) -> Identity:
    """
    Dependency that reads the panel login cookie and returns who is calling.
    """
    token = request.cookies.get(LOGIN_COOKIE)
    if not token:
        raise UnauthorizedError("Not authenticated")
    return decode_login_token(token)


def client_ip(request: Request) -> str:
    return request.headers.get("x-forwarded-for") or "unknown"

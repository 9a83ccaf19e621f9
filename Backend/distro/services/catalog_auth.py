import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from distro.core.config import settings
from distro.core.exceptions import ExternalApiError

logger = logging.getLogger(__name__)


class CatalogCredentials:
    """
    Cached access token for the distribution API.

    Only one coroutine refreshes at a time; the others wait on the lock and
    reuse the token it obtained.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = (base_url or settings.CATALOG_API_URL).rstrip("/")
        self.username = username if username is not None else settings.CATALOG_USERNAME
        self.password = password if password is not None else settings.CATALOG_PASSWORD
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.CATALOG_TOKEN_TTL_SECONDS
        self._transport = transport
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    async def get_token(self) -> str:
        if self._is_fresh():
            return self._token
        async with self._lock:
            if not self._is_fresh():
                self._token = await self._obtain_token()
                self._expires_at = self._clock() + self.ttl_seconds
            return self._token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def _obtain_token(self) -> str:
        logger.info("CatalogCredentials: POST /auth/obtain-token/")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self._transport,
                timeout=settings.CATALOG_TIMEOUT_SECONDS,
            ) as client:
                response = await client.post(
                    "/auth/obtain-token/",
                    json={"username": self.username, "password": self.password},
                    headers={
                        "x-api-key": settings.CATALOG_API_KEY,
                        "Referer": settings.CATALOG_REFERER,
                    },
                )
        except httpx.RequestError as e:
            logger.error(f"Request error obtaining catalog token: {e}")
            raise ExternalApiError(f"No se pudo conectar con la API de distribución: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.is_success or not data.get("access"):
            logger.error(f"Catalog token request failed with {response.status_code}: {response.text}")
            raise ExternalApiError(data or "No access token received", status_code=401)
        return data["access"]


_credentials: Optional[CatalogCredentials] = None

def get_catalog_credentials() -> CatalogCredentials:
    """Process-wide credential cache."""
    global _credentials
    if _credentials is None:
        _credentials = CatalogCredentials()
    return _credentials

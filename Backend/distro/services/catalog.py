from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse, unquote
import asyncio
import logging

import httpx
from fastapi import Depends

from distro.core.config import settings
from distro.core.exceptions import ExternalApiError
from distro.services.catalog_auth import CatalogCredentials, get_catalog_credentials

logger = logging.getLogger(__name__)


@dataclass
class UploadedResource:
    url: str   # full object-store URL, kept on local records
    path: str  # relative path the catalog API expects


def resource_path_from_url(url: str) -> str:
    """
    Turn an object-store URL into the path the catalog stores.

    Host and query string are dropped, the path is percent-decoded and the
    leading ``media/`` prefix removed.
    """
    if not url:
        return ""
    decoded = unquote(urlparse(url).path.lstrip("/"))
    return decoded.replace("media/", "", 1)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class CatalogClient:
    """Client for the external distribution API and its signed-URL object store."""

    def __init__(
        self,
        credentials: CatalogCredentials,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.credentials = credentials
        self.base_url = (base_url or settings.CATALOG_API_URL).rstrip("/")
        self.timeout = timeout or settings.CATALOG_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    async def _headers(self) -> Dict[str, str]:
        token = await self.credentials.get_token()
        return {
            "Authorization": f"JWT {token}",
            "x-api-key": settings.CATALOG_API_KEY,
            "Referer": settings.CATALOG_REFERER,
        }

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        headers = await self._headers()
        headers.update(kwargs.pop("headers", {}))
        logger.info(f"CatalogClient: {method} {path}")
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Request error to catalog API: {e}")
            raise ExternalApiError(f"No se pudo conectar con la API de distribución: {e}")

        if response.status_code == 401:
            # Token revoked upstream before its TTL ran out
            self.credentials.invalidate()
        body = _response_body(response)
        if not response.is_success:
            logger.error(f"Catalog API returned status {response.status_code} for {method} {path}: {response.text}")
            raise ExternalApiError(body, status_code=response.status_code)
        return body

    # --- signed uploads -------------------------------------------------

    async def request_upload_slot(self, file_name: str, mime_type: str, upload_type: str) -> Dict[str, Any]:
        """Ask the catalog for a pre-signed object-store target."""
        body = await self._request(
            "GET",
            "/obtain-signed-url-for-upload/",
            params={"filename": file_name, "filetype": mime_type, "upload_type": upload_type},
        )
        signed = body.get("signed_url") if isinstance(body, dict) else None
        if not signed or not signed.get("url"):
            logger.error(f"Catalog did not return a signed URL for {file_name}: {body}")
            raise ExternalApiError("Error al obtener la URL firmada")
        return {"url": signed["url"], "fields": signed.get("fields") or {}}

    async def upload_binary(
        self,
        url: str,
        fields: Dict[str, Any],
        source: Path | bytes,
        file_name: str,
        mime_type: str,
    ) -> UploadedResource:
        """Multipart POST of a binary to a signed URL."""
        form_fields = {}
        for key, value in fields.items():
            if isinstance(value, str):
                form_fields[key] = value
            else:
                logger.warning(f"Skipping signed field '{key}' with non-string value: {value!r}")

        logger.info(f"Uploading {file_name} to object store")
        try:
            async with self._client() as client:
                if isinstance(source, (bytes, bytearray)):
                    response = await client.post(
                        url, data=form_fields, files={"file": (file_name, bytes(source), mime_type)}
                    )
                else:
                    fh = await asyncio.to_thread(open, source, "rb")
                    try:
                        response = await client.post(
                            url, data=form_fields, files={"file": (file_name, fh, mime_type)}
                        )
                    finally:
                        fh.close()
        except httpx.RequestError as e:
            logger.error(f"Request error uploading {file_name}: {e}")
            raise ExternalApiError(f"Error al subir el archivo: {e}")

        if not response.is_success:
            logger.error(f"Object store returned {response.status_code} for {file_name}: {response.text}")
            raise ExternalApiError(
                _response_body(response) or "Error al subir el archivo", status_code=response.status_code
            )

        if fields.get("key"):
            resource_url = f"{url}{fields['key']}"
        else:
            resource_url = response.headers.get("location", "")
        return UploadedResource(url=resource_url, path=resource_path_from_url(resource_url))

    async def upload_file(
        self,
        source: Path | bytes,
        file_name: str,
        mime_type: str,
        upload_type: str,
    ) -> UploadedResource:
        slot = await self.request_upload_slot(file_name, mime_type, upload_type)
        return await self.upload_binary(slot["url"], slot["fields"], source, file_name, mime_type)

    # --- catalog records ------------------------------------------------

    async def register_track(self, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        body = await self._request("POST", "/tracks/", json=payload, headers=headers)
        if not isinstance(body, dict) or body.get("id") is None:
            raise ExternalApiError(body or "El catálogo no devolvió el id del track")
        return body

    async def update_track(self, external_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/tracks/{external_id}/", json=payload)

    async def get_release(self, external_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/releases/{external_id}/")

    async def update_release(self, external_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/releases/{external_id}/", json=payload)

    async def create_artist(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request("POST", "/artists/", json=payload)
        if not isinstance(body, dict) or body.get("id") is None:
            raise ExternalApiError(body or "El catálogo no devolvió el id del artista")
        return body

    async def submit_user_declaration(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request("POST", "/release-user-declaration/", json=payload)
        if not isinstance(body, dict) or not body.get("release"):
            raise ExternalApiError(body or "Error al guardar la declaración de usuario", status_code=400)
        return body


# Dependency
async def get_catalog_client(
    credentials: CatalogCredentials = Depends(get_catalog_credentials),
) -> CatalogClient:
    """Dependency injection for CatalogClient"""
    return CatalogClient(credentials)

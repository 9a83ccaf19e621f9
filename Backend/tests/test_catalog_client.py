"""Tests for the distribution API client and its token cache."""

import asyncio
import json

import httpx
import pytest

from distro.core.exceptions import ExternalApiError
from distro.services.catalog import CatalogClient, resource_path_from_url
from distro.services.catalog_auth import CatalogCredentials

from conftest import CATALOG_URL


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestResourcePath:
    """Tests for turning object-store URLs into catalog paths."""

    @pytest.mark.parametrize("url,expected", [
        ("https://bucket.s3.amazonaws.com/media/tracks/Song.wav", "tracks/Song.wav"),
        ("https://bucket.s3.amazonaws.com/media/tracks/Mi%20Cancion.wav?X-Amz=1", "tracks/Mi Cancion.wav"),
        ("https://cdn.test/artwork/cover.jpg", "artwork/cover.jpg"),
        ("", ""),
    ])
    def test_resource_path(self, url, expected) -> None:
        assert resource_path_from_url(url) == expected


class TestCatalogCredentials:
    """Tests for the cached access token."""

    async def test_token_is_cached_until_expiry(self, fake_catalog) -> None:
        clock = FakeClock()
        credentials = CatalogCredentials(
            base_url=CATALOG_URL, username="panel", password="secret", ttl_seconds=60,
            transport=httpx.MockTransport(fake_catalog.handler), clock=clock,
        )

        assert await credentials.get_token() == "token-1"
        assert await credentials.get_token() == "token-1"
        clock.now += 61
        assert await credentials.get_token() == "token-2"
        assert fake_catalog.token_calls == 2

        login = json.loads(fake_catalog.calls("POST", "/auth/obtain-token/")[0].content)
        assert login == {"username": "panel", "password": "secret"}

    async def test_concurrent_callers_share_one_refresh(self, fake_catalog) -> None:
        credentials = CatalogCredentials(
            base_url=CATALOG_URL, username="panel", password="secret", ttl_seconds=60,
            transport=httpx.MockTransport(fake_catalog.handler),
        )

        tokens = await asyncio.gather(*(credentials.get_token() for _ in range(5)))

        assert set(tokens) == {"token-1"}
        assert fake_catalog.token_calls == 1

    async def test_missing_access_token_is_an_error(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        credentials = CatalogCredentials(
            base_url=CATALOG_URL, username="panel", password="bad", ttl_seconds=60, transport=transport
        )

        with pytest.raises(ExternalApiError) as exc_info:
            await credentials.get_token()
        assert exc_info.value.status_code == 401


class TestCatalogClient:
    """Tests for the signed-URL upload and record calls."""

    async def test_upload_file_requests_slot_then_posts_binary(self, catalog, fake_catalog, wav_file) -> None:
        path = wav_file("song.wav")

        uploaded = await catalog.upload_file(path, "MySong.wav", "audio/wav", "track.audio")

        assert uploaded.url == "https://storage.test/media/uploads/MySong.wav"
        assert uploaded.path == "uploads/MySong.wav"

        slot_request = fake_catalog.calls("GET", "/obtain-signed-url-for-upload/")[0]
        assert slot_request.url.params["filetype"] == "audio/wav"
        assert slot_request.url.params["upload_type"] == "track.audio"
        assert slot_request.headers["Authorization"] == "JWT token-1"

        storage_request = [r for r in fake_catalog.requests if r.url.host == "storage.test"][0]
        assert b'name="policy"' in storage_request.content
        assert b'filename="MySong.wav"' in storage_request.content

    async def test_upload_uses_location_header_without_key(self, catalog) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(201, headers={"Location": "https://storage.test/media/x/y.pdf"})
        )
        client = CatalogClient(catalog.credentials, base_url=CATALOG_URL, transport=transport)

        uploaded = await client.upload_binary("https://storage.test/", {}, b"%PDF", "y.pdf", "application/pdf")

        assert uploaded.path == "x/y.pdf"

    async def test_failed_binary_upload_carries_store_body(self, catalog) -> None:
        denied = "<Error><Code>AccessDenied</Code></Error>"
        transport = httpx.MockTransport(lambda request: httpx.Response(403, text=denied))
        client = CatalogClient(catalog.credentials, base_url=CATALOG_URL, transport=transport)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.upload_binary("https://storage.test/", {"key": "media/a.wav"}, b"RIFF", "a.wav", "audio/wav")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == denied

    async def test_non_string_signed_fields_are_skipped(self, catalog, fake_catalog) -> None:
        await catalog.upload_binary(
            "https://storage.test/", {"key": "media/a.wav", "conditions": [1, 2]}, b"RIFF", "a.wav", "audio/wav"
        )

        storage_request = [r for r in fake_catalog.requests if r.url.host == "storage.test"][0]
        assert b'name="key"' in storage_request.content
        assert b'name="conditions"' not in storage_request.content

    async def test_register_track_sends_idempotency_key(self, catalog, fake_catalog) -> None:
        body = await catalog.register_track({"name": "Song"}, idempotency_key="key-1")

        assert body["id"] == 5001
        assert fake_catalog.calls("POST", "/tracks/")[0].headers["Idempotency-Key"] == "key-1"

    async def test_upstream_error_carries_body_and_status(self, catalog, fake_catalog) -> None:
        fake_catalog.fail_track_calls = {1}

        with pytest.raises(ExternalApiError) as exc_info:
            await catalog.register_track({"name": "Song"})

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == {"detail": "catalog unavailable"}

    async def test_unauthorized_response_invalidates_token(self, catalog, fake_catalog) -> None:
        fake_catalog.reject_token_once = True

        with pytest.raises(ExternalApiError) as exc_info:
            await catalog.get_release(1)
        assert exc_info.value.status_code == 401

        await catalog.update_release(1, {"name": "x"})
        assert fake_catalog.token_calls == 2

    async def test_connection_error_is_bad_gateway(self, catalog) -> None:
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = CatalogClient(catalog.credentials, base_url=CATALOG_URL, transport=httpx.MockTransport(refuse))
        catalog.credentials._token = "cached"
        catalog.credentials._expires_at = float("inf")

        with pytest.raises(ExternalApiError) as exc_info:
            await client.update_track(1, {})
        assert exc_info.value.status_code == 502

    async def test_missing_signed_url_is_an_error(self, catalog) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"access": "t"} if "auth" in request.url.path else {})
        )
        client = CatalogClient(
            CatalogCredentials(base_url=CATALOG_URL, username="u", password="p", ttl_seconds=60, transport=transport),
            base_url=CATALOG_URL, transport=transport,
        )

        with pytest.raises(ExternalApiError) as exc_info:
            await client.request_upload_slot("a.wav", "audio/wav", "track.audio")
        assert exc_info.value.detail == "Error al obtener la URL firmada"

"""Shared fixtures: throwaway SQLite database, fake distribution API, WAV files."""

import json
import os
import wave
from pathlib import Path

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("CATALOG_API_URL", "https://catalog.test")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from distro.core.config import settings
from distro.models.audit_log import AuditLog  # noqa: F401 - registers the table
from distro.models.release import Release
from distro.models.staged_track import StagedTrack  # noqa: F401
from distro.models.track import Track  # noqa: F401
from distro.services.catalog import CatalogClient
from distro.services.catalog_auth import CatalogCredentials
from distro.services.chunk_assembler import ChunkAssembler
from distro.services.database import Base

CATALOG_URL = "https://catalog.test"
STORAGE_URL = "https://storage.test/"


class FakeCatalog:
    """In-memory stand-in for the distribution API and its object store."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.next_track_id = 5000
        self.next_artist_id = 900
        # 1-based POST /tracks/ call numbers that answer 500
        self.fail_track_calls: set[int] = set()
        self.fail_artist_names: set[str] = set()
        self.track_calls = 0
        self.token_calls = 0
        self.reject_token_once = False

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "storage.test":
            return httpx.Response(204)

        if path == "/auth/obtain-token/":
            self.token_calls += 1
            return httpx.Response(200, json={"access": f"token-{self.token_calls}"})

        if self.reject_token_once:
            self.reject_token_once = False
            return httpx.Response(401, json={"detail": "Token expired"})

        if path == "/obtain-signed-url-for-upload/":
            file_name = request.url.params["filename"]
            return httpx.Response(200, json={
                "signed_url": {
                    "url": STORAGE_URL,
                    "fields": {"key": f"media/uploads/{file_name}", "policy": "abc"},
                }
            })

        if request.method == "POST" and path == "/tracks/":
            self.track_calls += 1
            if self.track_calls in self.fail_track_calls:
                return httpx.Response(500, json={"detail": "catalog unavailable"})
            self.next_track_id += 1
            return httpx.Response(201, json={
                "id": self.next_track_id,
                "ISRC": f"ESA012500{self.next_track_id}",
            })

        if request.method == "PUT" and path.startswith("/tracks/"):
            return httpx.Response(200, json=json.loads(request.content))

        if request.method == "PUT" and path.startswith("/releases/"):
            return httpx.Response(200, json=json.loads(request.content))

        if request.method == "POST" and path == "/artists/":
            body = json.loads(request.content)
            if body["name"] in self.fail_artist_names:
                return httpx.Response(400, json={"name": ["invalid"]})
            self.next_artist_id += 1
            return httpx.Response(201, json={"id": self.next_artist_id, **body})

        if request.method == "POST" and path == "/release-user-declaration/":
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": 77, **body})

        return httpx.Response(404, json={"detail": "not found"})


def write_wav(path: Path, sample_rate: int = 44100, sample_width: int = 2, frames: int = 2000) -> Path:
    """Write a silent stereo WAV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as fh:
        fh.setnchannels(2)
        fh.setsampwidth(sample_width)
        fh.setframerate(sample_rate)
        fh.writeframes(b"\x00" * frames * 2 * sample_width)
    return path


@pytest.fixture
def wav_file(tmp_path):
    return lambda name="track.wav", **kwargs: write_wav(tmp_path / "source" / name, **kwargs)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def assembler(tmp_path):
    return ChunkAssembler(str(tmp_path / "uploads"))


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


@pytest.fixture
def catalog(fake_catalog):
    transport = httpx.MockTransport(fake_catalog.handler)
    credentials = CatalogCredentials(
        base_url=CATALOG_URL, username="panel", password="secret", ttl_seconds=3000, transport=transport
    )
    return CatalogClient(credentials, base_url=CATALOG_URL, transport=transport)


@pytest.fixture
async def release(db):
    release = Release(external_id=100, name="Primer Album", catalogue_number="CAT-1", tracks=[], artists=[])
    db.add(release)
    await db.commit()
    return release


@pytest.fixture
def login_cookie():
    token = jwt.encode(
        {"id": "staff-1", "name": "Ana Admin", "role": "admin"},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    return {"loginToken": token}


@pytest.fixture
async def client(session_factory, assembler, catalog, login_cookie):
    from main import app
    from distro.services.catalog import get_catalog_client
    from distro.services.chunk_assembler import get_chunk_assembler
    from distro.services.database import get_db, get_session_factory

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_chunk_assembler] = lambda: assembler
    app.dependency_overrides[get_catalog_client] = lambda: catalog

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://panel.test", cookies=login_cookie) as ac:
        yield ac
    app.dependency_overrides.clear()

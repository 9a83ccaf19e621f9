"""Endpoint tests for the track and release upload routes."""

import json

from sqlalchemy.future import select

from distro.models.audit_log import AuditLog
from distro.models.release import Release
from distro.models.staged_track import StagedTrack
from distro.models.track import Track


def _chunks(content: bytes, parts: int) -> list:
    size = -(-len(content) // parts)
    return [content[i:i + size] for i in range(0, len(content), size)]


async def _post_chunks(client, content: bytes, parts: int, form: dict, url: str = "/api/tracks") -> list:
    responses = []
    for index, chunk in enumerate(_chunks(content, parts)):
        responses.append(await client.post(
            url,
            data={**form, "chunkIndex": str(index), "totalChunks": str(parts)},
            files={"chunk": ("blob", chunk, "application/octet-stream")},
        ))
    return responses


async def _all(session_factory, model) -> list:
    async with session_factory() as session:
        result = await session.execute(select(model))
        return list(result.scalars().all())


def _staged_form(name: str = "Song", session_id: str = "abc") -> dict:
    return {
        "data": json.dumps({"name": name, "release": 100, "genre": 3}),
        "isTemporary": "true",
        "sessionId": session_id,
        "fileName": f"{name}.wav",
    }


class TestStagedUpload:
    """Upload in three chunks, then commit or roll back the session."""

    async def test_three_chunk_staged_upload(self, client, session_factory, release, wav_file) -> None:
        content = wav_file("big.wav", frames=125000).read_bytes()

        responses = await _post_chunks(client, content, 3, _staged_form())

        assert [r.status_code for r in responses] == [200, 200, 200]
        assert responses[0].json() == {"success": True, "message": "Chunk 0 recibido"}
        assert responses[1].json() == {"success": True, "message": "Chunk 1 recibido"}
        final = responses[2].json()
        assert final["success"] is True
        assert final["tempId"]
        assert final["data"]["name"] == "Song"

        staged = await _all(session_factory, StagedTrack)
        assert [(s.session_id, str(s.id)) for s in staged] == [("abc", final["tempId"])]

    async def test_commit_session(self, client, session_factory, release, wav_file) -> None:
        content = wav_file("song.wav").read_bytes()
        await _post_chunks(client, content, 1, _staged_form())

        response = await client.post("/api/tracks/commit", json={"sessionId": "abc", "action": "commit"})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "1 tracks procesados exitosamente"
        assert [t["name"] for t in body["data"]] == ["Song"]
        assert await _all(session_factory, StagedTrack) == []

        logs = await _all(session_factory, AuditLog)
        assert [(log.action, log.entity, log.user_name) for log in logs] == [("CREATE", "PRODUCT", "Ana Admin")]

    async def test_same_file_name_in_one_session(self, client, session_factory, fake_catalog, release, wav_file) -> None:
        short = wav_file("one.wav", frames=1000).read_bytes()
        long = wav_file("two.wav", frames=3000).read_bytes()
        for name, content in (("One", short), ("Two", long)):
            form = {**_staged_form(name), "fileName": "master.wav"}
            response = (await _post_chunks(client, content, 1, form))[0]
            assert response.status_code == 200

        staged = await _all(session_factory, StagedTrack)
        assert len({s.temp_file_path for s in staged}) == 2

        response = await client.post("/api/tracks/commit", json={"sessionId": "abc", "action": "commit"})

        assert response.status_code == 201
        uploads = [r.content for r in fake_catalog.requests if r.url.host == "storage.test"]
        assert len(uploads) == 2
        assert short in uploads[0] and long not in uploads[0]
        assert long in uploads[1]

    async def test_commit_unknown_session(self, client) -> None:
        response = await client.post("/api/tracks/commit", json={"sessionId": "nope", "action": "commit"})

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "No se encontraron tracks temporales para esta sesión"

    async def test_rollback_session(self, client, session_factory, release, wav_file) -> None:
        await _post_chunks(client, wav_file().read_bytes(), 1, _staged_form())

        response = await client.post("/api/tracks/commit", json={"sessionId": "abc", "action": "rollback"})

        assert response.json() == {
            "success": True,
            "message": "Tracks temporales eliminados completamente",
            "deletedTracks": 1,
        }
        assert await _all(session_factory, StagedTrack) == []

    async def test_commit_requires_session_and_action(self, client) -> None:
        response = await client.post("/api/tracks/commit", json={"action": "commit"})
        assert response.status_code == 400
        assert response.json()["error"] == "SessionId y action son requeridos"

        response = await client.post("/api/tracks/commit", json={"sessionId": "abc", "action": "publish"})
        assert response.status_code == 400
        assert response.json()["error"] == 'Action debe ser "commit" o "rollback"'

    async def test_purge_without_session(self, client) -> None:
        response = await client.post("/api/tracks/commit", json={"action": "purge"})
        assert response.json() == {"success": True, "purged": 0}


class TestInlineUpload:
    """Single-request registration without staging."""

    async def test_inline_create(self, client, session_factory, release, wav_file) -> None:
        form = {"data": json.dumps({"name": "Inline", "release": 100}), "fileName": "inline.wav"}

        responses = await _post_chunks(client, wav_file().read_bytes(), 2, form)

        assert responses[0].json() == {"success": True, "message": "Chunk 0 recibido"}
        assert responses[1].status_code == 201
        assert responses[1].json()["data"]["external_id"] == 5001
        assert [t.name for t in await _all(session_factory, Track)] == ["Inline"]

    async def test_out_of_order_chunk(self, client, release, wav_file) -> None:
        form = {"data": json.dumps({"name": "Inline", "release": 100}), "fileName": "inline.wav"}

        response = await client.post(
            "/api/tracks",
            data={**form, "chunkIndex": "1", "totalChunks": "3"},
            files={"chunk": ("blob", b"data", "application/octet-stream")},
        )

        assert response.status_code == 409
        assert response.json()["success"] is False

    async def test_invalid_audio_is_rejected(self, client, session_factory, assembler, release, wav_file) -> None:
        content = wav_file("song.wav", sample_rate=22050).read_bytes()

        responses = await _post_chunks(client, content, 1, _staged_form())

        assert responses[0].status_code == 400
        assert "44100" in responses[0].json()["error"]
        assert list(assembler.upload_dir.glob("*.tmp")) == []
        assert await _all(session_factory, StagedTrack) == []

    async def test_missing_session_for_temporary_upload(self, client) -> None:
        response = await client.post("/api/tracks", data={"isTemporary": "true", "data": "{}"})
        assert response.status_code == 400

    async def test_requires_login(self, client) -> None:
        client.cookies.clear()
        response = await client.post("/api/tracks/commit", json={"sessionId": "abc", "action": "commit"})
        assert response.status_code == 401

    async def test_update_single(self, client, session_factory, release, wav_file) -> None:
        form = {"data": json.dumps({"name": "Inline", "release": 100}), "fileName": "inline.wav"}
        await _post_chunks(client, wav_file().read_bytes(), 1, form)

        response = await client.put("/api/tracks/5001", data={"data": json.dumps({"title": "Renamed"})})

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Renamed"

    async def test_update_unknown_track(self, client) -> None:
        response = await client.put("/api/tracks/404", data={"data": "{}"})
        assert response.status_code == 404


class TestReleaseRoutes:
    """Release update and rights declaration."""

    async def test_update_release_with_new_track(self, client, release, wav_file) -> None:
        response = await client.put(
            "/api/releases/100",
            data={
                "data": json.dumps({"name": "Renamed Album", "newTracks": [{"title": "Bonus"}]}),
                "picture": "https://cdn.test/media/artwork/cover.jpg",
            },
            files={"track_file_0": ("bonus.wav", wav_file("bonus.wav").read_bytes(), "audio/wav")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Release actualizado correctamente"
        assert body["data"]["name"] == "Renamed Album"
        assert [t["title"] for t in body["data"]["tracks"]] == ["Bonus"]
        assert body["data"]["picture"]["path"] == "artwork/cover.jpg"

    async def test_update_unknown_release(self, client) -> None:
        response = await client.put("/api/releases/999", data={"data": "{}"})
        assert response.status_code == 404
        assert response.json()["error"] == "Release no encontrado"

    async def test_user_declaration(self, client, session_factory, fake_catalog, release) -> None:
        response = await client.post(
            "/api/releases/user-declaration",
            data={"release": "100", "user_declaration": "2", "fileName": "license.pdf"},
            files={"file": ("license.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.json() == {"success": True}
        slot = fake_catalog.calls("GET", "/obtain-signed-url-for-upload/")[0]
        assert slot.url.params["upload_type"] == "release.license"
        stored = await _all(session_factory, Release)
        assert stored[0].release_user_declaration["release_license"] == "uploads/license.pdf"

    async def test_user_declaration_requires_release(self, client, fake_catalog) -> None:
        response = await client.post(
            "/api/releases/user-declaration",
            data={"user_declaration": "2", "fileName": "license.pdf"},
            files={"file": ("license.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "release es requerido"
        assert fake_catalog.requests == []

    async def test_user_declaration_requires_pdf(self, client, release) -> None:
        response = await client.post(
            "/api/releases/user-declaration",
            data={"release": "100", "fileName": "license.docx"},
            files={"file": ("license.docx", b"doc", "application/msword")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "El archivo debe ser formato PDF"

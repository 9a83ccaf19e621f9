import datetime
import logging
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from distro.api.forms import chunk_ack, form_flag, parse_json_field, receive_upload
from distro.core.config import settings
from distro.core.exceptions import MissingField
from distro.core.security import Identity, client_ip, get_current_identity
from distro.schemas.track import CommitRequest, StagedTrackResponse, TrackResponse
from distro.services.audio_validator import validate_audio
from distro.services.audit_log import AuditLogger, get_audit_logger
from distro.services.catalog import CatalogClient, get_catalog_client
from distro.services.chunk_assembler import ChunkAssembler, get_chunk_assembler, inline_disambiguator
from distro.services.commit_coordinator import CommitCoordinator
from distro.services.database import get_db
from distro.services.staging_store import StagingStore


logger = logging.getLogger(__name__)


router = APIRouter()


@router.post("/tracks")
async def create_single(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    assembler: ChunkAssembler = Depends(get_chunk_assembler),
    audit: AuditLogger = Depends(get_audit_logger),
    identity: Identity = Depends(get_current_identity),
):
    """
    Receive one chunk of a track's audio.

    Intermediate chunks are only acknowledged. On the last chunk the file is
    validated, then either staged under ``sessionId`` (``isTemporary``) or
    registered in the catalog straight away.
    """
    form = await request.form()
    track_data = parse_json_field(form.get("data"))
    is_temporary = form_flag(form, "isTemporary")
    session_id = form.get("sessionId") or None
    if is_temporary and not session_id:
        raise MissingField("sessionId es requerido para tracks temporales")

    upload_id = form.get("uploadId") or None
    # Tracks of one session may share a file name; the key must tell them apart
    track_key = upload_id or inline_disambiguator(
        form.get("fileName") or "", track_data.get("release"), track_data.get("name")
    )
    disambiguator = f"{session_id}-{track_key}" if session_id else track_key

    upload = await receive_upload(form, assembler, disambiguator)
    if upload is None:
        raise MissingField("Archivo de audio requerido")
    if not upload.done:
        return chunk_ack(upload.chunk_index)

    await validate_audio(upload.path, upload.file_name)

    if is_temporary:
        staging = StagingStore(db, assembler)
        try:
            staged = await staging.stage(session_id, track_data, str(upload.path))
            await db.commit()
        except Exception:
            await assembler.discard(upload.path)
            raise
        return StagedTrackResponse(tempId=str(staged.id), sessionId=session_id, data=staged.track_data).model_dump()

    coordinator = CommitCoordinator(db, catalog, assembler=assembler)
    track = await coordinator.commit_inline(track_data, upload.path)
    await audit.record(
        "CREATE", "TRACK", str(track.id), identity,
        f"Track creado: {track.name}", client_ip(request),
    )
    response.status_code = status.HTTP_201_CREATED
    return {"success": True, "data": TrackResponse.model_validate(track)}


@router.post("/tracks/commit")
async def commit_tracks(
    body: CommitRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    assembler: ChunkAssembler = Depends(get_chunk_assembler),
    audit: AuditLogger = Depends(get_audit_logger),
    identity: Identity = Depends(get_current_identity),
):
    """Promote (``commit``), discard (``rollback``) or expire (``purge``) staged tracks."""
    if body.action == "purge":
        staging = StagingStore(db, assembler)
        purged = await staging.purge_expired(datetime.timedelta(seconds=settings.STAGING_TTL_SECONDS))
        await db.commit()
        return {"success": True, "purged": purged}

    if not body.sessionId or not body.action:
        raise MissingField("SessionId y action son requeridos")

    coordinator = CommitCoordinator(db, catalog, assembler=assembler)
    if body.action == "commit":
        tracks = await coordinator.commit(body.sessionId)
        for track in tracks:
            await audit.record(
                "CREATE", "PRODUCT", str(track.id), identity,
                f"Track creado: {track.name}", client_ip(request),
            )
        response.status_code = status.HTTP_201_CREATED
        return {
            "success": True,
            "data": [TrackResponse.model_validate(track) for track in tracks],
            "message": f"{len(tracks)} tracks procesados exitosamente",
        }

    if body.action == "rollback":
        deleted = await coordinator.rollback(body.sessionId)
        return {
            "success": True,
            "message": "Tracks temporales eliminados completamente",
            "deletedTracks": deleted,
        }

    raise MissingField('Action debe ser "commit" o "rollback"')


@router.put("/tracks/{external_id}")
async def update_single(
    external_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    assembler: ChunkAssembler = Depends(get_chunk_assembler),
    audit: AuditLogger = Depends(get_audit_logger),
    identity: Identity = Depends(get_current_identity),
):
    """Edit a registered track, optionally replacing its audio."""
    form = await request.form()
    changes = parse_json_field(form.get("data"))

    upload = await receive_upload(form, assembler, form.get("uploadId") or f"track-{external_id}")
    if upload is not None and not upload.done:
        return chunk_ack(upload.chunk_index)
    temp_path = None
    if upload is not None:
        await validate_audio(upload.path, upload.file_name)
        temp_path = upload.path

    coordinator = CommitCoordinator(db, catalog, assembler=assembler)
    track = await coordinator.update_track(external_id, changes, temp_path)
    await db.commit()
    await audit.record(
        "UPDATE", "TRACK", str(track.id), identity,
        f"Track actualizado: {track.name}", client_ip(request),
    )
    return {"success": True, "data": TrackResponse.model_validate(track)}

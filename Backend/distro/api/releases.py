import logging
import os
import re
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from starlette.datastructures import UploadFile

from distro.api.forms import chunk_ack, parse_json_field, receive_upload
from distro.core.exceptions import MissingField, UnsupportedDocumentFormat
from distro.core.security import Identity, client_ip, get_current_identity
from distro.models.release import Release
from distro.schemas.release import ReleaseResponse
from distro.services.audit_log import AuditLogger, get_audit_logger
from distro.services.catalog import CatalogClient, get_catalog_client
from distro.services.chunk_assembler import ChunkAssembler, get_chunk_assembler
from distro.services.database import get_db
from distro.services.release_merger import IncomingFile, ReleaseTrackMerger
from distro.services.release_service import get_release
from distro.services.track_payloads import as_int


logger = logging.getLogger(__name__)


router = APIRouter()

LICENSE_UPLOAD_TYPE = "release.license"
_FILE_PART = re.compile(r"^(track_file|edited_file)_(\d+)$")


async def _incoming(part: UploadFile) -> IncomingFile:
    return IncomingFile(
        file_name=part.filename or "upload",
        content=await part.read(),
        content_type=part.content_type or "application/octet-stream",
    )


# Static routes first
@router.post("/releases/user-declaration")
async def release_user_declaration(
    request: Request,
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    assembler: ChunkAssembler = Depends(get_chunk_assembler),
    audit: AuditLogger = Depends(get_audit_logger),
    identity: Identity = Depends(get_current_identity),
):
    """Attach the rights holder's declaration (and its signed PDF) to a release."""
    form = await request.form()
    release_id = as_int(form.get("release")) or None
    if release_id is None:
        raise MissingField("release es requerido")
    user_declaration = as_int(form.get("user_declaration")) or None

    upload = await receive_upload(form, assembler, form.get("uploadId") or f"declaration-{release_id}")
    if upload is not None and not upload.done:
        return chunk_ack(upload.chunk_index)

    release_license = ""
    if upload is not None:
        try:
            if os.path.splitext(upload.file_name)[1].lower() != ".pdf":
                raise UnsupportedDocumentFormat()
            uploaded = await catalog.upload_file(
                upload.path, upload.file_name.replace(" ", ""), "application/pdf", LICENSE_UPLOAD_TYPE
            )
            release_license = uploaded.path
        finally:
            await assembler.discard(upload.path)

    declaration = await catalog.submit_user_declaration({
        "release": release_id,
        "user_declaration": user_declaration,
        "release_license": release_license,
    })

    result = await db.execute(select(Release).where(Release.external_id == release_id))
    release = result.scalar_one_or_none()
    if release is not None:
        release.release_user_declaration = declaration
        await db.commit()
        await audit.record(
            "UPDATE", "RELEASE", str(release.id), identity,
            f"Declaracion de usuario creado: {release.name}", client_ip(request),
        )
    else:
        logger.warning(f"User declaration stored upstream for release {release_id}, which has no local copy")
    return {"success": True}


@router.put("/releases/{external_id}")
async def update_release(
    external_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    assembler: ChunkAssembler = Depends(get_chunk_assembler),
    audit: AuditLogger = Depends(get_audit_logger),
    identity: Identity = Depends(get_current_identity),
):
    """
    Update a release together with the artists and tracks edited alongside it.

    Multipart fields: ``data`` (JSON release body with optional
    ``newArtists``/``newTracks``/``editedTracks``), ``picture`` (file or URL),
    ``track_file_<i>`` for ``newTracks[i]`` and ``edited_file_<i>`` for
    ``editedTracks[i]``.
    """
    form = await request.form()
    changes = parse_json_field(form.get("data"))
    release = await get_release(external_id, db)
    old_name = release.name

    picture = form.get("picture")
    if isinstance(picture, UploadFile):
        picture = await _incoming(picture)
    elif not picture:
        picture = None

    track_files, edited_files = {}, {}
    for key, part in form.multi_items():
        match = _FILE_PART.match(key)
        if match and isinstance(part, UploadFile):
            target = track_files if match.group(1) == "track_file" else edited_files
            target[int(match.group(2))] = await _incoming(part)

    merger = ReleaseTrackMerger(db, catalog, assembler=assembler)
    release = await merger.merge(release, changes, picture, track_files, edited_files)
    await db.commit()

    details = f"Release actualizado: {release.name}"
    if old_name != release.name:
        details += f" (nombre: {old_name} → {release.name})"
    await audit.record("UPDATE", "RELEASE", str(release.id), identity, details, client_ip(request))
    return {
        "success": True,
        "data": ReleaseResponse.model_validate(release),
        "message": "Release actualizado correctamente",
    }

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from distro.core.config import settings
from distro.core.exceptions import (
    DuplicateTrackTitle,
    NoStagedTracks,
    PartialCommitFailure,
    StagedFileMissing,
    TrackNotFound,
)
from distro.models.staged_track import StagedTrack
from distro.models.track import Track
from distro.schemas.track import TrackResponse
from distro.services.catalog import CatalogClient, resource_path_from_url
from distro.services.chunk_assembler import ChunkAssembler
from distro.services.release_service import find_track_by_title, lookup_release, upsert_track_summary
from distro.services.staging_store import StagingStore
from distro.services.track_payloads import (
    as_int,
    release_summary,
    to_catalog_track_payload,
    to_track_columns,
    track_title,
)

logger = logging.getLogger(__name__)

AUDIO_MIME_TYPE = "audio/wav"
TRACK_UPLOAD_TYPE = "track.audio"


@dataclass
class RegisteredTrack:
    """Outcome of a successful upload + registration against the catalog."""
    external_id: int
    isrc: Optional[str]
    da_isrc: Optional[str]
    resource_url: str
    resource_path: str


def upload_file_name(title: str) -> str:
    return title.replace(" ", "") + ".wav"


class CommitCoordinator:
    """
    Promotes uploaded tracks into the catalog and the local database.

    Local writes for a whole batch share one transaction. Registrations made
    upstream cannot be undone, so when a batch fails after some of its tracks
    were registered, their catalog ids are saved on the staged records and a
    later commit of the same session picks up from there.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        catalog: CatalogClient,
        staging: Optional[StagingStore] = None,
        assembler: Optional[ChunkAssembler] = None,
    ):
        self.db = db_session
        self.catalog = catalog
        self.assembler = assembler or ChunkAssembler()
        self.staging = staging or StagingStore(db_session, self.assembler)

    # --- batch mode -----------------------------------------------------

    async def commit(self, session_id: str) -> List[Track]:
        staged_tracks = await self.staging.list_by_session(session_id)
        if not staged_tracks:
            raise NoStagedTracks(session_id)

        logger.info(f"Committing {len(staged_tracks)} staged tracks for session {session_id}")
        processed: List[Track] = []
        # (staged id, title, resolved track data, registration) for tracks registered by this call
        newly_registered: List[Tuple[Any, str, Dict[str, Any], RegisteredTrack]] = []
        current = None
        try:
            for staged in staged_tracks:
                current = staged.id
                if staged.is_registered:
                    track_data, registered = self._resume(staged)
                    logger.info(f"Track '{track_title(track_data)}' already registered as {registered.external_id}, skipping upload")
                else:
                    track_data, registered = await self._register(
                        staged.track_data, staged.temp_file_path, staged.idempotency_key
                    )
                    newly_registered.append((staged.id, track_title(track_data), track_data, registered))
                processed.append(await self._persist(track_data, registered))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Commit of session {session_id} failed: {e}")
            await self._save_progress(newly_registered, current)
            if newly_registered and len(staged_tracks) > 1:
                raise PartialCommitFailure([title for _, title, _, _ in newly_registered], e) from e
            raise

        # Files were consumed by the uploads; anything left over is stale
        await self.staging.discard_session(session_id)
        await self.db.commit()
        logger.info(f"{len(processed)} tracks committed for session {session_id}")
        return processed

    async def rollback(self, session_id: str) -> int:
        """Throw away a staged session. Idempotent."""
        count = await self.staging.discard_session(session_id)
        await self.db.commit()
        logger.info(f"Rolled back session {session_id}: {count} staged tracks removed")
        return count

    def _resume(self, staged: StagedTrack) -> Tuple[Dict[str, Any], RegisteredTrack]:
        registered = RegisteredTrack(
            external_id=staged.external_id,
            isrc=staged.isrc,
            da_isrc=staged.da_isrc,
            resource_url=staged.resource_url or "",
            resource_path=staged.resource_path or "",
        )
        return self._apply_registration(copy.deepcopy(staged.track_data), registered), registered

    async def _save_progress(self, newly_registered, failed=None) -> None:
        """
        Keep what a failed batch achieved upstream so the next commit resumes it.

        The failing track's record is dropped when its file was already
        consumed; the client uploads that track again into the same session.
        """
        for staged_id, title, track_data, registered in newly_registered:
            await self.staging.mark_registered(
                staged_id,
                track_data,
                registered.external_id,
                registered.isrc,
                registered.da_isrc,
                registered.resource_url,
                registered.resource_path,
            )
        if failed is not None:
            await self.staging.drop_if_orphaned(failed)
        await self.db.commit()
        if newly_registered:
            logger.warning(
                f"Saved catalog progress for {len(newly_registered)} tracks: "
                + ", ".join(f"'{title}'" for _, title, _, _ in newly_registered)
            )

    # --- inline mode ----------------------------------------------------

    async def commit_inline(self, track_data: Dict[str, Any], temp_file_path: str | Path) -> Track:
        """Register and persist one track whose file is already assembled."""
        try:
            resolved, registered = await self._register(track_data, temp_file_path)
            track = await self._persist(resolved, registered)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self.assembler.discard(temp_file_path)
            raise
        return track

    # --- shared steps ---------------------------------------------------

    async def _register(
        self,
        track_data: Dict[str, Any],
        temp_file_path: Optional[str | Path],
        idempotency_key: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], RegisteredTrack]:
        data = copy.deepcopy(track_data)
        title = track_title(data)
        release_id = as_int(data.get("release")) or settings.DEFAULT_RELEASE
        data["release"] = release_id

        release = await lookup_release(release_id, self.db)
        existing = find_track_by_title(release["tracks"], title)
        if existing:
            logger.info(f"Track '{title}' already exists in release {release_id}")
            raise DuplicateTrackTitle(existing.get("title") or title)

        if not temp_file_path or not os.path.exists(temp_file_path):
            raise StagedFileMissing(title)

        data["order"] = len(release["tracks"])
        if release.get("is_new_release"):
            data["release_version"] = release.get("release_version")

        try:
            uploaded = await self.catalog.upload_file(
                Path(temp_file_path), upload_file_name(title), AUDIO_MIME_TYPE, TRACK_UPLOAD_TYPE
            )
            payload = to_catalog_track_payload(data, uploaded.path)
            response = await self.catalog.register_track(payload, idempotency_key)
        finally:
            await self.assembler.discard(temp_file_path)

        registered = RegisteredTrack(
            external_id=as_int(response["id"]),
            isrc=response.get("ISRC"),
            da_isrc=response.get("DA_ISRC"),
            resource_url=uploaded.url,
            resource_path=uploaded.path,
        )
        logger.info(f"Track '{title}' registered in catalog as {registered.external_id}")
        return self._apply_registration(data, registered), registered

    @staticmethod
    def _apply_registration(data: Dict[str, Any], registered: RegisteredTrack) -> Dict[str, Any]:
        data["external_id"] = registered.external_id
        if registered.isrc:
            data["ISRC"] = registered.isrc
        if registered.da_isrc:
            data["DA_ISRC"] = registered.da_isrc
        data["resource"] = registered.resource_url
        return data

    async def _persist(self, track_data: Dict[str, Any], registered: RegisteredTrack) -> Track:
        result = await self.db.execute(
            select(Track).where(Track.external_id == registered.external_id)
        )
        track = result.scalar_one_or_none()
        columns = to_track_columns(track_data)
        if track is None:
            track = Track(**columns)
            self.db.add(track)
        else:
            for key, value in columns.items():
                setattr(track, key, value)
        await self.db.flush()
        await self.db.refresh(track)

        await upsert_track_summary(
            track.release,
            release_summary(track_data, registered.resource_url),
            self.db,
        )
        return track

    # --- updates --------------------------------------------------------

    async def update_track(
        self,
        external_id: int,
        changes: Dict[str, Any],
        temp_file_path: Optional[str | Path] = None,
    ) -> Track:
        """Push edits of an existing track upstream, then mirror them locally."""
        result = await self.db.execute(select(Track).where(Track.external_id == external_id))
        track = result.scalar_one_or_none()
        if track is None:
            if temp_file_path:
                await self.assembler.discard(temp_file_path)
            raise TrackNotFound(external_id)

        current = TrackResponse.model_validate(track).model_dump(exclude={"id", "created_at", "updated_at"})
        merged = {**current, **changes, "external_id": external_id}
        if changes.get("title") and not changes.get("name"):
            merged["name"] = changes["title"]
        title = track_title(merged)

        resource_url = track.resource or ""
        resource_path = resource_path_from_url(resource_url)
        if temp_file_path:
            try:
                uploaded = await self.catalog.upload_file(
                    Path(temp_file_path), upload_file_name(title), AUDIO_MIME_TYPE, TRACK_UPLOAD_TYPE
                )
            finally:
                await self.assembler.discard(temp_file_path)
            resource_url, resource_path = uploaded.url, uploaded.path

        payload = to_catalog_track_payload(merged, resource_path)
        response = await self.catalog.update_track(external_id, payload)
        if isinstance(response, dict):
            if response.get("ISRC"):
                merged["ISRC"] = response["ISRC"]
            if response.get("DA_ISRC"):
                merged["DA_ISRC"] = response["DA_ISRC"]
        merged["resource"] = resource_url

        for key, value in to_track_columns(merged).items():
            if key != "external_id":
                setattr(track, key, value)
        await self.db.flush()
        await self.db.refresh(track)

        if track.release:
            await upsert_track_summary(track.release, release_summary(merged, resource_url), self.db)
        logger.info(f"Track {external_id} updated")
        return track

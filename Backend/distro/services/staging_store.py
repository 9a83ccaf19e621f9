import datetime
import logging
import os
from typing import List, Optional

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from distro.core.exceptions import StagedFileConflict
from distro.models.staged_track import StagedTrack
from distro.services.chunk_assembler import ChunkAssembler

logger = logging.getLogger(__name__)


class StagingStore:
    """Temporary home for tracks uploaded ahead of a batch commit."""

    def __init__(self, db_session: AsyncSession, assembler: Optional[ChunkAssembler] = None):
        self.db = db_session
        self.assembler = assembler or ChunkAssembler()

    async def stage(self, session_id: str, track_data: dict, temp_file_path: str) -> StagedTrack:
        """Record one track of a batch. Repeated calls with the same session id accumulate."""
        taken = await self.db.execute(
            select(StagedTrack.id).where(
                StagedTrack.session_id == session_id,
                StagedTrack.temp_file_path == str(temp_file_path),
            )
        )
        if taken.first() is not None:
            logger.warning(f"Temp file {temp_file_path} is already staged in session {session_id}")
            raise StagedFileConflict(track_data.get("name") or "")
        result = await self.db.execute(
            select(func.count()).select_from(StagedTrack).where(StagedTrack.session_id == session_id)
        )
        sequence = result.scalar_one()
        staged = StagedTrack(
            session_id=session_id,
            track_data=track_data,
            temp_file_path=str(temp_file_path),
            sequence=sequence,
        )
        self.db.add(staged)
        await self.db.flush()
        await self.db.refresh(staged)
        logger.info(f"Staged track '{track_data.get('name')}' as #{sequence} of session {session_id}")
        return staged

    async def list_by_session(self, session_id: str) -> List[StagedTrack]:
        result = await self.db.execute(
            select(StagedTrack)
            .where(StagedTrack.session_id == session_id)
            .order_by(StagedTrack.sequence, StagedTrack.created_at)
        )
        return list(result.scalars().all())

    async def delete_by_session(self, session_id: str) -> int:
        result = await self.db.execute(
            delete(StagedTrack).where(StagedTrack.session_id == session_id)
        )
        return result.rowcount or 0

    async def mark_registered(
        self,
        staged_id,
        track_data: dict,
        external_id: int,
        isrc: Optional[str],
        da_isrc: Optional[str],
        resource_url: Optional[str],
        resource_path: Optional[str],
    ) -> None:
        """Remember that a staged track already exists upstream."""
        staged = await self.db.get(StagedTrack, staged_id)
        if staged is None:
            logger.warning(f"Staged track {staged_id} vanished before its progress was saved")
            return
        staged.track_data = track_data
        staged.external_id = external_id
        staged.isrc = isrc
        staged.da_isrc = da_isrc
        staged.resource_url = resource_url
        staged.resource_path = resource_path
        staged.registered_at = datetime.datetime.now(datetime.timezone.utc)
        await self.db.flush()

    async def drop_if_orphaned(self, staged_id) -> bool:
        """Delete a staged record that is not registered and whose file is gone."""
        staged = await self.db.get(StagedTrack, staged_id)
        if staged is None or staged.is_registered:
            return False
        if staged.temp_file_path and os.path.exists(staged.temp_file_path):
            return False
        await self.db.delete(staged)
        await self.db.flush()
        logger.info(f"Dropped staged track {staged_id}: its file was consumed by a failed registration")
        return True

    async def discard_session(self, session_id: str) -> int:
        """Delete every staged record of a session and its temp file. Safe to repeat."""
        staged_tracks = await self.list_by_session(session_id)
        for staged in staged_tracks:
            await self._discard_file(staged)
        await self.delete_by_session(session_id)
        return len(staged_tracks)

    async def purge_expired(self, older_than: datetime.timedelta) -> int:
        """Drop abandoned sessions: staged records older than ``older_than``."""
        cutoff = datetime.datetime.now(datetime.timezone.utc) - older_than
        result = await self.db.execute(
            select(StagedTrack).where(StagedTrack.created_at < cutoff)
        )
        expired = list(result.scalars().all())
        for staged in expired:
            await self._discard_file(staged)
            await self.db.delete(staged)
        await self.db.flush()
        if expired:
            logger.info(f"Purged {len(expired)} staged tracks older than {older_than}")
        return len(expired)

    async def _discard_file(self, staged: StagedTrack) -> None:
        if not staged.temp_file_path:
            return
        try:
            await self.assembler.discard(staged.temp_file_path)
        except OSError as e:
            # Best-effort: one unreadable file must not block the rest
            logger.error(f"Error deleting temp file {staged.temp_file_path}: {e}")

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from distro.core.exceptions import ReleaseNotFound, ReleaseUpdateConflict
from distro.models.release import Release
from distro.services.track_payloads import as_int

logger = logging.getLogger(__name__)

MAX_SUMMARY_ATTEMPTS = 5


async def get_release(release_external_id: int, db: AsyncSession) -> Release:
    result = await db.execute(select(Release).where(Release.external_id == release_external_id))
    release = result.scalar_one_or_none()
    if release is None:
        raise ReleaseNotFound(release_external_id)
    return release


async def lookup_release(release_external_id: int, db: AsyncSession) -> Dict[str, Any]:
    """
    Current state of a release as seen by the commit pipeline.

    Reads columns rather than the ORM object so a release already loaded in
    the session never hides writes made since.
    """
    result = await db.execute(
        select(
            Release.external_id,
            Release.tracks,
            Release.release_version,
            Release.is_new_release,
        ).where(Release.external_id == release_external_id)
    )
    row = result.one_or_none()
    if row is None:
        raise ReleaseNotFound(release_external_id)
    return {
        "external_id": row.external_id,
        "tracks": list(row.tracks or []),
        "release_version": row.release_version,
        "is_new_release": row.is_new_release,
    }


def find_track_by_title(tracks: List[Dict[str, Any]], title: str) -> Optional[Dict[str, Any]]:
    return next((t for t in tracks if t.get("title") == title), None)


async def upsert_track_summary(
    release_external_id: int,
    summary: Dict[str, Any],
    db: AsyncSession,
) -> List[Dict[str, Any]]:
    """
    Add a track summary to a release's embedded list, or replace the entry
    with the same external_id.

    Each attempt is a compare-and-swap on Release.version; a concurrent writer
    makes the update match no row and the list is read again.
    """
    external_id = as_int(summary.get("external_id"))
    for attempt in range(1, MAX_SUMMARY_ATTEMPTS + 1):
        result = await db.execute(
            select(Release.id, Release.tracks, Release.version)
            .where(Release.external_id == release_external_id)
        )
        row = result.one_or_none()
        if row is None:
            raise ReleaseNotFound(release_external_id)

        tracks = [dict(t) for t in (row.tracks or [])]
        index = next(
            (i for i, t in enumerate(tracks) if as_int(t.get("external_id")) == external_id),
            None,
        )
        if index is None:
            tracks.append(summary)
        else:
            tracks[index] = {**tracks[index], **summary}

        swapped = await db.execute(
            update(Release)
            .where(Release.id == row.id, Release.version == row.version)
            .values(tracks=tracks, version=row.version + 1)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount == 1:
            return tracks
        logger.warning(
            f"Release {release_external_id} changed during track list update "
            f"(attempt {attempt}/{MAX_SUMMARY_ATTEMPTS}), retrying"
        )
    raise ReleaseUpdateConflict(release_external_id)

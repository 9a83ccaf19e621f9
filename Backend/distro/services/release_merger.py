import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from distro.core.exceptions import PanelException
from distro.models.release import Release
from distro.models.track import Track
from distro.services.audio_validator import validate_audio
from distro.services.catalog import CatalogClient, resource_path_from_url
from distro.services.chunk_assembler import ChunkAssembler
from distro.services.commit_coordinator import CommitCoordinator
from distro.services.track_payloads import (
    as_int,
    new_track_defaults,
    normalize_artists,
    split_reference,
)

logger = logging.getLogger(__name__)

ARTWORK_UPLOAD_TYPE = "release.artwork"

# Keys of the update body that are handled here rather than copied onto the release
_MERGE_KEYS = {"newArtists", "newTracks", "editedTracks", "picture", "tracks", "artists"}
_PROTECTED_COLUMNS = {"id", "external_id", "tracks", "version", "created_at", "updated_at", "artists", "picture"}


@dataclass
class IncomingFile:
    file_name: str
    content: bytes
    content_type: str = "application/octet-stream"


def title_case(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in (name or "").split(" "))


class ReleaseTrackMerger:
    """Applies a release edit that may also add artists and add or edit tracks."""

    def __init__(
        self,
        db_session: AsyncSession,
        catalog: CatalogClient,
        coordinator: Optional[CommitCoordinator] = None,
        assembler: Optional[ChunkAssembler] = None,
    ):
        self.db = db_session
        self.catalog = catalog
        self.assembler = assembler or ChunkAssembler()
        self.coordinator = coordinator or CommitCoordinator(db_session, catalog, assembler=self.assembler)

    async def create_artists(self, new_artists: Any) -> List[Dict[str, Any]]:
        """Create artists upstream. An artist that fails is logged and left out."""
        created = []
        for artist in new_artists or []:
            name = title_case(artist.get("name", ""))
            if not name:
                logger.warning(f"Skipping new artist without a name: {artist}")
                continue
            try:
                response = await self.catalog.create_artist({
                    "name": name,
                    "email": artist.get("email"),
                    "amazon_music_identifier": artist.get("amazon_music_identifier"),
                    "apple_identifier": artist.get("apple_identifier"),
                    "deezer_identifier": artist.get("deezer_identifier"),
                    "spotify_identifier": artist.get("spotify_identifier"),
                })
            except PanelException as e:
                logger.error(f"Error creating artist '{name}': {e.detail}")
                continue
            created.append({
                "order": as_int(artist.get("order")),
                "artist": as_int(response["id"]),
                "kind": artist.get("kind") or "main",
                "name": name,
            })
        return created

    async def _store_audio(self, incoming: IncomingFile) -> str:
        path = await self.assembler.write_whole(incoming.file_name, uuid.uuid4().hex, incoming.content)
        await validate_audio(path, incoming.file_name)
        return str(path)

    async def add_new_tracks(self, release: Release, new_tracks: Any, files: Dict[int, IncomingFile]) -> int:
        added = 0
        for index, new_track in enumerate(new_tracks or []):
            incoming = files.get(index)
            if incoming is None:
                logger.warning(f"New track #{index} of release {release.external_id} has no audio part, skipping")
                continue
            track_data = new_track_defaults(new_track, release.external_id, order=len(release.tracks or []) + added)
            path = await self._store_audio(incoming)
            # Any failure here aborts the whole release update
            await self.coordinator.commit_inline(track_data, path)
            added += 1
        return added

    async def apply_edited_tracks(self, edited_tracks: Any, files: Dict[int, IncomingFile]) -> int:
        edited = 0
        for index, edited_track in enumerate(edited_tracks or []):
            external_id = as_int(edited_track.get("external_id"))
            changes = {k: v for k, v in edited_track.items() if k not in ("newArtists", "file", "external_id")}
            new_artists = await self.create_artists(edited_track.get("newArtists"))
            if new_artists:
                base = changes.get("artists")
                if base is None:
                    base = await self._current_artists(external_id)
                changes["artists"] = list(base) + new_artists

            path = None
            incoming = files.get(index)
            if incoming is not None:
                path = await self._store_audio(incoming)
            try:
                await self.coordinator.update_track(external_id, changes, path)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            edited += 1
        return edited

    async def _current_artists(self, track_external_id: int) -> List[Dict[str, Any]]:
        result = await self.db.execute(select(Track.artists).where(Track.external_id == track_external_id))
        return list(result.scalar_one_or_none() or [])

    async def resolve_picture(self, picture: Any) -> Optional[Dict[str, Any]]:
        """Upload fresh artwork, or normalise the path of artwork already stored."""
        if isinstance(picture, IncomingFile):
            uploaded = await self.catalog.upload_file(
                picture.content, picture.file_name.replace(" ", ""), picture.content_type, ARTWORK_UPLOAD_TYPE
            )
            url, path = uploaded.url, uploaded.path
        elif isinstance(picture, dict) and picture.get("full_size"):
            url = picture["full_size"]
            path = resource_path_from_url(url)
        elif isinstance(picture, str) and picture:
            url, path = picture, resource_path_from_url(picture)
        else:
            return None
        return {"full_size": url, "thumb_medium": url, "thumb_small": url, "path": path}

    async def merge(
        self,
        release: Release,
        changes: Dict[str, Any],
        picture: Any = None,
        track_files: Optional[Dict[int, IncomingFile]] = None,
        edited_files: Optional[Dict[int, IncomingFile]] = None,
    ) -> Release:
        external_id = release.external_id
        artists = list(changes.get("artists") if changes.get("artists") is not None else release.artists or [])
        artists.extend(await self.create_artists(changes.get("newArtists")))

        await self.add_new_tracks(release, changes.get("newTracks"), track_files or {})
        await self.apply_edited_tracks(changes.get("editedTracks"), edited_files or {})

        resolved_picture = await self.resolve_picture(picture if picture is not None else changes.get("picture"))

        payload = {k: v for k, v in changes.items() if k not in _MERGE_KEYS and not k.startswith("_")}
        for field in ("genre", "subgenre"):
            if field in payload:
                payload[field], name = split_reference(payload[field])
                if name and not payload.get(f"{field}_name"):
                    payload[f"{field}_name"] = name
        to_api = {k: v for k, v in payload.items() if not k.endswith("_name") and k not in _PROTECTED_COLUMNS}
        to_api["artists"] = normalize_artists(artists)
        if resolved_picture:
            to_api["artwork"] = resolved_picture["path"]
        await self.catalog.update_release(external_id, to_api)

        # Track writes above went through compare-and-swap updates
        await self.db.refresh(release)
        columns = Release.__table__.columns.keys()
        for key, value in payload.items():
            if key in columns and key not in _PROTECTED_COLUMNS:
                setattr(release, key, value)
        release.artists = artists
        if resolved_picture:
            release.picture = resolved_picture
        await self.db.flush()
        logger.info(f"Release {external_id} updated with {len(artists)} artists and {len(release.tracks or [])} tracks")
        return release

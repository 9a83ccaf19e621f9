"""
Translation between the panel's track documents and the distribution API schema.

Local documents carry display-only fields (artist names, genre names, role
names, status flags) that the catalog rejects, and the UI sends numeric ids
as strings. Everything the catalog receives goes through
``to_catalog_track_payload``.
"""
import copy
import datetime
from typing import Any, Dict, List, Optional

from distro.core.config import settings

# Fields that only exist on our side
_LOCAL_ONLY_FIELDS = (
    "title", "file", "id", "_id", "status", "available",
    "genre_name", "subgenre_name", "external_id", "qc_feedback",
    "createdAt", "updatedAt", "created_at", "updated_at",
)


def as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def _as_list(value: Any) -> List[dict]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def track_title(track_data: Dict[str, Any]) -> str:
    return (track_data.get("name") or track_data.get("title") or "").strip()


def split_reference(value: Any) -> tuple[int, str]:
    """Genre/subgenre arrive either as an id or as {id, name}."""
    if isinstance(value, dict):
        return as_int(value.get("id")), value.get("name") or ""
    return as_int(value), ""


def normalize_artists(artists: Any) -> List[Dict[str, Any]]:
    return [
        {
            "order": as_int(a.get("order")),
            "artist": as_int(a.get("artist")),
            "kind": a.get("kind") or "",
        }
        for a in _as_list(artists)
    ]


def normalize_publishers(publishers: Any) -> List[Dict[str, Any]]:
    return [
        {
            "order": as_int(p.get("order")),
            "publisher": as_int(p.get("publisher")),
            "author": p.get("author") or "",
        }
        for p in _as_list(publishers)
    ]


def normalize_contributors(contributors: Any) -> List[Dict[str, Any]]:
    return [
        {
            "order": as_int(c.get("order")),
            "contributor": as_int(c.get("contributor")),
            "role": as_int(c.get("role")),
        }
        for c in _as_list(contributors)
    ]


def to_catalog_track_payload(track_data: Dict[str, Any], resource_path: Optional[str]) -> Dict[str, Any]:
    """Build the POST /tracks/ body from a local track document."""
    payload = copy.deepcopy(track_data)
    payload["name"] = track_title(track_data)
    for field in _LOCAL_ONLY_FIELDS:
        payload.pop(field, None)

    payload["genre"], _ = split_reference(track_data.get("genre"))
    payload["subgenre"], _ = split_reference(track_data.get("subgenre"))
    payload["release"] = as_int(track_data.get("release"))
    payload["order"] = as_int(track_data.get("order"))
    if resource_path:
        payload["resource"] = resource_path
    payload["artists"] = normalize_artists(track_data.get("artists"))
    payload["publishers"] = normalize_publishers(track_data.get("publishers"))
    payload["contributors"] = normalize_contributors(track_data.get("contributors"))
    payload["generate_isrc"] = bool(track_data.get("generate_isrc"))
    payload["album_only"] = bool(track_data.get("album_only"))
    payload["explicit_content"] = bool(track_data.get("explicit_content"))
    return payload


def new_track_defaults(track: Dict[str, Any], release_external_id: int, order: int) -> Dict[str, Any]:
    """Track document for a track added from the release editor."""
    genre, genre_name = split_reference(track.get("genre"))
    subgenre, subgenre_name = split_reference(track.get("subgenre"))
    return {
        "order": order,
        "release": release_external_id,
        "name": track_title(track),
        "mix_name": track.get("mix_name") or track.get("mixName") or "",
        "language": track.get("language") or "ES",
        "vocals": track.get("vocals") or "ZXX",
        "artists": _as_list(track.get("artists")),
        "publishers": _as_list(track.get("publishers")),
        "contributors": _as_list(track.get("contributors")),
        "label_share": track.get("label_share") or "",
        "genre": genre,
        "genre_name": track.get("genre_name") or genre_name,
        "subgenre": subgenre,
        "subgenre_name": track.get("subgenre_name") or subgenre_name,
        "dolby_atmos_resource": track.get("dolby_atmos_resource") or "",
        "copyright_holder": track.get("copyright_holder") or "",
        "copyright_holder_year": track.get("copyright_holder_year") or settings.DEFAULT_COPYRIGHT_YEAR
            or str(datetime.date.today().year),
        "album_only": bool(track.get("album_only")),
        "sample_start": track.get("sample_start") or "",
        "explicit_content": bool(track.get("explicit_content")),
        "ISRC": track.get("ISRC") or "",
        "generate_isrc": bool(track.get("generate_isrc", True)),
        "DA_ISRC": track.get("DA_ISRC") or "",
        "track_length": track.get("track_length") or "",
    }


def to_track_columns(track_data: Dict[str, Any]) -> Dict[str, Any]:
    """Keyword arguments for the Track model from a (possibly partial) track document."""
    columns: Dict[str, Any] = {}
    simple_fields = (
        "mix_name", "language", "vocals", "ISRC", "DA_ISRC", "label_share",
        "resource", "dolby_atmos_resource", "copyright_holder", "copyright_holder_year",
        "sample_start", "track_length", "status",
    )
    for field in simple_fields:
        if field in track_data and track_data[field] is not None:
            columns[field] = track_data[field]
    for field in ("generate_isrc", "album_only", "explicit_content"):
        if field in track_data:
            columns[field] = bool(track_data[field])
    for field in ("artists", "publishers", "contributors"):
        if field in track_data:
            columns[field] = _as_list(track_data[field])
    if "name" in track_data or "title" in track_data:
        columns["name"] = track_title(track_data)
    if "order" in track_data:
        columns["order"] = as_int(track_data["order"])
    if "release" in track_data:
        columns["release"] = as_int(track_data["release"]) or None
    if "external_id" in track_data:
        columns["external_id"] = as_int(track_data["external_id"])
    for field in ("genre", "subgenre"):
        if field in track_data:
            ref_id, ref_name = split_reference(track_data[field])
            columns[field] = ref_id
            name = track_data.get(f"{field}_name") or ref_name
            if name:
                columns[f"{field}_name"] = name
    return columns


def release_summary(track_data: Dict[str, Any], resource_url: Optional[str]) -> Dict[str, Any]:
    """Entry stored in Release.tracks for a committed track."""
    return {
        "title": track_title(track_data),
        "mixName": track_data.get("mix_name") or "",
        "external_id": as_int(track_data.get("external_id")),
        "resource": resource_url or track_data.get("resource") or "",
        "available": track_data.get("available", True),
    }

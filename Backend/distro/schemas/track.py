from datetime import datetime
from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict, Any

class TrackResponse(BaseModel):
    id: int
    external_id: int
    release: Optional[int] = None
    order: int = 0
    status: Optional[str] = None
    name: str
    mix_name: Optional[str] = None
    language: Optional[str] = None
    vocals: Optional[str] = None
    ISRC: Optional[str] = None
    DA_ISRC: Optional[str] = None
    generate_isrc: bool = False
    genre: int = 0
    genre_name: str = ""
    subgenre: int = 0
    subgenre_name: str = ""
    artists: List[Dict[str, Any]] = []
    contributors: List[Dict[str, Any]] = []
    publishers: List[Dict[str, Any]] = []
    label_share: Optional[str] = None
    resource: Optional[str] = None
    dolby_atmos_resource: Optional[str] = None
    copyright_holder: Optional[str] = None
    copyright_holder_year: Optional[str] = None
    album_only: bool = False
    sample_start: Optional[str] = None
    explicit_content: bool = False
    track_length: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class StagedTrackResponse(BaseModel):
    """What the client keeps for a track waiting in a commit batch."""
    success: bool = True
    tempId: str
    sessionId: str
    data: Dict[str, Any]

class CommitRequest(BaseModel):
    sessionId: Optional[str] = None
    action: Optional[str] = None

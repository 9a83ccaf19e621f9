from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict, Any

class ReleaseTrackSummary(BaseModel):
    title: str
    mixName: Optional[str] = None
    external_id: int
    resource: Optional[str] = None
    available: Optional[bool] = True

class ReleaseResponse(BaseModel):
    id: int
    external_id: Optional[int] = None
    name: str
    catalogue_number: Optional[str] = None
    status: Optional[str] = None
    label: Optional[int] = None
    language: Optional[str] = None
    release_version: Optional[str] = None
    picture: Optional[Dict[str, Any]] = None
    artists: List[Dict[str, Any]] = []
    tracks: List[ReleaseTrackSummary] = []
    release_user_declaration: Optional[Dict[str, Any]] = None
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

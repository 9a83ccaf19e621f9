from fastapi import HTTPException
from typing import Any, Dict, List, Optional

class PanelException(HTTPException):
    """Base exception for the distribution panel API"""
    def __init__(
        self,
        status_code: int,
        detail: Any,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

class MissingField(PanelException):
    """A required form or body field was not sent"""
    def __init__(self, message: str):
        super().__init__(status_code=400, detail=message)

class InvalidChunkMetadata(PanelException):
    """chunkIndex / totalChunks are missing or not integers"""
    def __init__(self, message: str = "Datos de chunk inválidos"):
        super().__init__(status_code=400, detail=message)

class ChunkOutOfOrder(PanelException):
    """A chunk arrived that is not the next one expected for its upload"""
    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            status_code=409,
            detail=f"Chunk fuera de orden: se esperaba {expected} y se recibió {received}"
        )

class UnsupportedAudioFormat(PanelException):
    """The assembled audio file breaks the delivery format contract"""
    def __init__(self, message: str):
        super().__init__(status_code=400, detail=message)

class UnsupportedDocumentFormat(PanelException):
    def __init__(self, message: str = "El archivo debe ser formato PDF"):
        super().__init__(status_code=400, detail=message)

class DuplicateTrackTitle(PanelException):
    """The target release already holds a track with this title"""
    def __init__(self, title: str):
        self.title = title
        super().__init__(
            status_code=400,
            detail=f"El track {title} ya existe en el release"
        )

class ExternalApiError(PanelException):
    """The distribution API answered with a non-success status"""
    def __init__(self, body: Any, status_code: Optional[int] = None):
        self.body = body
        if not status_code or status_code < 400:
            status_code = 502
        super().__init__(
            status_code=status_code,
            detail=body or "Ha habido un error, estamos trabajando para arreglarlo"
        )

class NoStagedTracks(PanelException):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            status_code=404,
            detail="No se encontraron tracks temporales para esta sesión"
        )

class StagedFileConflict(PanelException):
    """Another staged track of the session already points at this temp file"""
    def __init__(self, title: str):
        super().__init__(
            status_code=409,
            detail=f"El archivo del track {title} ya pertenece a otro track de la sesión"
        )

class StagedFileMissing(PanelException):
    """A staged track lost its audio file before it was registered"""
    def __init__(self, title: str):
        super().__init__(
            status_code=410,
            detail=f"El archivo del track {title} ya no existe, vuelva a subirlo"
        )

class PartialCommitFailure(PanelException):
    """Some tracks of a batch were registered upstream before another one failed"""
    def __init__(self, registered: List[str], cause: Exception):
        self.registered = registered
        self.cause = cause
        cause_detail = getattr(cause, "detail", None) or str(cause)
        super().__init__(
            status_code=502,
            detail={
                "message": (
                    f"{len(registered)} tracks ya fueron registrados en el catálogo "
                    "antes del error; vuelva a confirmar la sesión para completarla"
                ),
                "registered": registered,
                "cause": cause_detail,
            }
        )

class ReleaseNotFound(PanelException):
    def __init__(self, release_id: Any):
        super().__init__(status_code=404, detail="Release no encontrado")
        self.release_id = release_id

class TrackNotFound(PanelException):
    def __init__(self, track_id: Any):
        super().__init__(status_code=404, detail="Track no encontrado")
        self.track_id = track_id

class UnauthorizedError(PanelException):
    """User is not authorized"""
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(status_code=401, detail=message)

class ReleaseUpdateConflict(PanelException):
    """The release track list kept changing under us"""
    def __init__(self, release_id: Any):
        super().__init__(
            status_code=409,
            detail="El release fue modificado por otra operación, intente de nuevo"
        )
        self.release_id = release_id

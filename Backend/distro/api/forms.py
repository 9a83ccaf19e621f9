import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from starlette.datastructures import FormData, UploadFile

from distro.core.exceptions import InvalidChunkMetadata, MissingField
from distro.services.chunk_assembler import ChunkAssembler, parse_chunk_metadata

logger = logging.getLogger(__name__)


@dataclass
class ReceivedUpload:
    file_name: str
    chunk_index: int
    done: bool
    path: Optional[Path]


def parse_json_field(raw: Any, field: str = "data") -> Dict[str, Any]:
    """Decode a JSON-encoded multipart field. Absent means empty."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, UploadFile):
        raise MissingField(f"El campo {field} debe ser JSON")
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        raise MissingField(f"El campo {field} debe ser JSON válido")
    if not isinstance(value, dict):
        raise MissingField(f"El campo {field} debe ser un objeto JSON")
    return value


def form_flag(form: FormData, name: str) -> bool:
    return str(form.get(name, "")).strip().lower() in ("true", "1", "yes", "on")


def _optional_offset(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidChunkMetadata()


async def receive_upload(
    form: FormData,
    assembler: ChunkAssembler,
    disambiguator: str,
) -> Optional[ReceivedUpload]:
    """
    Take the file part of a request, chunked (``chunk`` + ``chunkIndex`` +
    ``totalChunks``) or whole (``file``). Returns None when neither is present.
    """
    chunk = form.get("chunk")
    if isinstance(chunk, UploadFile):
        chunk_index, total_chunks = parse_chunk_metadata(form.get("chunkIndex"), form.get("totalChunks"))
        file_name = form.get("fileName") or chunk.filename or ""
        if not file_name:
            raise MissingField("fileName es requerido")
        content = await chunk.read()
        result = await assembler.append_chunk(
            file_name,
            disambiguator,
            content,
            chunk_index,
            total_chunks,
            _optional_offset(form.get("chunkOffset")),
        )
        return ReceivedUpload(file_name=file_name, chunk_index=chunk_index, done=result.done, path=result.path)

    whole = form.get("file")
    if isinstance(whole, UploadFile):
        file_name = form.get("fileName") or whole.filename or ""
        if not file_name:
            raise MissingField("fileName es requerido")
        path = await assembler.write_whole(file_name, disambiguator, await whole.read())
        return ReceivedUpload(file_name=file_name, chunk_index=0, done=True, path=path)
    return None


def chunk_ack(chunk_index: int) -> Dict[str, Any]:
    return {"success": True, "message": f"Chunk {chunk_index} recibido"}

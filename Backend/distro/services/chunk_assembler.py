import asyncio
import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple

from distro.core.config import settings
from distro.core.exceptions import InvalidChunkMetadata, ChunkOutOfOrder

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name or "")


def parse_chunk_metadata(chunk_index: Any, total_chunks: Any) -> Tuple[int, int]:
    """Parse the chunkIndex / totalChunks form fields into integers."""
    try:
        index = int(str(chunk_index).strip())
        total = int(str(total_chunks).strip())
    except (TypeError, ValueError):
        raise InvalidChunkMetadata()
    if total < 1 or index < 0 or index >= total:
        raise InvalidChunkMetadata()
    return index, total


def inline_disambiguator(file_name: str, release: Any, track_name: Any) -> str:
    """Stable id for inline uploads, identical for every chunk of one file."""
    digest = hashlib.sha1(f"{file_name}|{release}|{track_name}".encode("utf-8")).hexdigest()
    return f"inline-{digest[:12]}"


@dataclass
class ChunkResult:
    done: bool
    path: Path
    size: int


class ChunkAssembler:
    """
    Rebuilds a file sent as sequential chunks over independent requests.

    Every in-progress file has a sidecar ``<file>.next`` holding the next chunk
    index it accepts. Chunk 0 always starts the file over; any other chunk must
    match the sidecar or it is rejected without touching the file.
    """

    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.TEMP_UPLOAD_DIR).resolve()

    def resolve_path(self, file_name: str, disambiguator: str) -> Path:
        safe_name = sanitize_file_name(file_name)
        safe_key = sanitize_file_name(str(disambiguator))
        return self.upload_dir / f"upload_{safe_key}_{safe_name}.tmp"

    @staticmethod
    def _sidecar(path: Path) -> Path:
        return path.with_name(path.name + ".next")

    async def append_chunk(
        self,
        file_name: str,
        disambiguator: str,
        chunk: bytes,
        chunk_index: int,
        total_chunks: int,
        offset: Optional[int] = None,
    ) -> ChunkResult:
        path = self.resolve_path(file_name, disambiguator)
        size = await asyncio.to_thread(
            self._write, path, chunk, chunk_index, total_chunks, offset
        )
        done = chunk_index == total_chunks - 1
        logger.debug(f"Chunk {chunk_index + 1}/{total_chunks} written to {path.name} ({size} bytes)")
        return ChunkResult(done=done, path=path, size=size)

    def _write(
        self,
        path: Path,
        chunk: bytes,
        chunk_index: int,
        total_chunks: int,
        offset: Optional[int],
    ) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        sidecar = self._sidecar(path)

        if chunk_index == 0:
            if offset not in (None, 0):
                raise ChunkOutOfOrder(expected=0, received=chunk_index)
            mode = "wb"
        else:
            expected = self._expected_index(sidecar)
            if chunk_index != expected:
                raise ChunkOutOfOrder(expected=expected, received=chunk_index)
            if offset is not None and offset != path.stat().st_size:
                raise ChunkOutOfOrder(expected=expected, received=chunk_index)
            mode = "ab"

        with open(path, mode) as fh:
            fh.write(chunk)

        if chunk_index == total_chunks - 1:
            sidecar.unlink(missing_ok=True)
        else:
            sidecar.write_text(str(chunk_index + 1))
        return path.stat().st_size

    @staticmethod
    def _expected_index(sidecar: Path) -> int:
        try:
            return int(sidecar.read_text().strip())
        except (FileNotFoundError, ValueError):
            return 0

    async def write_whole(self, file_name: str, disambiguator: str, content: bytes) -> Path:
        """Store a file that arrived in a single part."""
        result = await self.append_chunk(file_name, disambiguator, content, 0, 1)
        return result.path

    async def discard(self, path: Optional[str | Path]) -> bool:
        """Delete an assembled file and its sidecar. Returns True if the file existed."""
        if not path:
            return False
        return await asyncio.to_thread(self._discard, Path(path))

    def _discard(self, path: Path) -> bool:
        self._sidecar(path).unlink(missing_ok=True)
        try:
            os.unlink(path)
            return True
        except FileNotFoundError:
            return False


def get_chunk_assembler() -> ChunkAssembler:
    return ChunkAssembler()

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from mutagen import MutagenError
from mutagen.wave import WAVE

from distro.core.exceptions import UnsupportedAudioFormat

logger = logging.getLogger(__name__)

# Delivery format agreed with the distribution partner. Not configurable.
ALLOWED_EXTENSIONS = (".wav", ".wave")
REQUIRED_SAMPLE_RATE = 44100
REQUIRED_BITS_PER_SAMPLE = 16
MAX_SIZE_MB = 159
MAX_SIZE_BYTES = MAX_SIZE_MB * 1024 * 1024


@dataclass
class AudioInfo:
    sample_rate: int
    bits_per_sample: int
    size_bytes: int


def _inspect(path: str, declared_file_name: str) -> AudioInfo:
    extension = os.path.splitext(declared_file_name or "")[1].lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedAudioFormat("Formato de audio no soportado. Solo se permiten archivos WAV")

    size = os.path.getsize(path)
    if size > MAX_SIZE_BYTES:
        raise UnsupportedAudioFormat(
            f"El archivo supera el tamaño máximo de {MAX_SIZE_MB} MB ({size / 1024 / 1024:.1f} MB)"
        )

    try:
        info = WAVE(path).info
    except MutagenError as e:
        logger.info(f"Could not parse {declared_file_name} as WAV: {e}")
        raise UnsupportedAudioFormat("El archivo no es un WAV válido")

    if info.sample_rate != REQUIRED_SAMPLE_RATE:
        raise UnsupportedAudioFormat(
            f"La frecuencia de muestreo debe ser {REQUIRED_SAMPLE_RATE} Hz (recibido {info.sample_rate} Hz)"
        )
    if info.bits_per_sample != REQUIRED_BITS_PER_SAMPLE:
        raise UnsupportedAudioFormat(
            f"La profundidad de bits debe ser {REQUIRED_BITS_PER_SAMPLE} bits (recibido {info.bits_per_sample} bits)"
        )
    return AudioInfo(
        sample_rate=info.sample_rate,
        bits_per_sample=info.bits_per_sample,
        size_bytes=size,
    )


async def validate_audio(path: str | Path, declared_file_name: str) -> AudioInfo:
    """
    Check a fully assembled upload against the delivery format.

    The file is deleted before UnsupportedAudioFormat is raised, so callers
    never have to clean up after a rejected upload.
    """
    path = str(path)
    try:
        return await asyncio.to_thread(_inspect, path, declared_file_name)
    except UnsupportedAudioFormat as e:
        logger.warning(f"Rejected audio upload {declared_file_name}: {e.detail}")
        await asyncio.to_thread(_remove_quietly, path)
        raise


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass

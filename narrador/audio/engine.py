"""
Motor de Audio
Mide la duración real del voiceover (ffprobe) y arma la pista final:
voiceover + música de fondo opcional, rellenada con silencio hasta el
TotalDuration del timeline.
"""
import asyncio
import logging
import math
from pathlib import Path
from typing import Optional

from pydub import AudioSegment

from ..errors import AudioProbeError

logger = logging.getLogger(__name__)


async def probe_voiceover(
    path: str,
    declared_duration: Optional[float] = None,
    ffprobe_bin: str = "ffprobe",
) -> float:
    """
    Duración del voiceover en segundos.

    ffprobe es la fuente de verdad. Si el binario no está instalado se usa la
    duración declarada por la API.

    Raises:
        AudioProbeError: archivo ilegible o sin duración utilizable
    """
    if not Path(path).exists():
        raise AudioProbeError(f"No existe el voiceover: {path}")

    try:
        process = await asyncio.create_subprocess_exec(
            ffprobe_bin, "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        if declared_duration is not None and math.isfinite(declared_duration) and declared_duration > 0:
            logger.warning(f"{ffprobe_bin} no encontrado; usando duración declarada {declared_duration:.2f}s")
            return float(declared_duration)
        raise AudioProbeError(f"{ffprobe_bin} no encontrado y la API no declaró duración")

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise AudioProbeError(
            f"ffprobe no pudo leer {Path(path).name}: {stderr.decode(errors='replace').strip()[-300:]}"
        )

    try:
        duration = float(stdout.decode().strip())
    except ValueError:
        raise AudioProbeError(f"ffprobe devolvió una duración ilegible para {Path(path).name}")

    if not math.isfinite(duration) or duration <= 0:
        raise AudioProbeError(f"Duración inválida del voiceover: {duration}")

    if declared_duration and abs(declared_duration - duration) > 0.5:
        logger.info(f"Duración medida {duration:.2f}s difiere de la declarada {declared_duration:.2f}s")
    return duration


class AudioEngine:
    """
    Mezcla de audio con pydub.
    """

    def __init__(self, music_gain_db: float = -6.0):
        """
        Args:
            music_gain_db: Ganancia aplicada a la música de fondo (-6 dB ~ 50%)
        """
        self.music_gain_db = music_gain_db

    def mix(
        self,
        voiceover_path: str,
        output_path: str,
        total_duration: float,
        music_path: Optional[str] = None,
    ) -> str:
        """
        Mezcla síncrona (pensada para correr en un hilo).

        La música se repite en bucle, se atenúa y queda limitada al largo
        del voiceover; después se rellena con silencio hasta total_duration.
        """
        voice = AudioSegment.from_file(voiceover_path)
        track = voice

        if music_path:
            try:
                music = AudioSegment.from_file(music_path) + self.music_gain_db
                track = voice.overlay(music, loop=True)
                logger.info(f"Música de fondo mezclada a {self.music_gain_db:+.1f} dB")
            except Exception as e:
                logger.warning(f"No se pudo mezclar la música de fondo, se omite: {e}")

        target_ms = int(math.ceil(total_duration * 1000))
        if len(track) < target_ms:
            track = track + AudioSegment.silent(duration=target_ms - len(track), frame_rate=track.frame_rate)

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        track.export(output_path, format="wav")
        logger.debug(f"Pista de audio: {len(track) / 1000:.2f}s -> {output_path}")
        return output_path

    async def prepare_track(
        self,
        voiceover_path: str,
        output_path: str,
        total_duration: float,
        music_path: Optional[str] = None,
    ) -> str:
        """Versión async de mix(); pydub es bloqueante."""
        return await asyncio.to_thread(
            self.mix, voiceover_path, output_path, total_duration, music_path
        )

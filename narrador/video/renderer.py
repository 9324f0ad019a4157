"""
Renderizador de video con FFmpeg.
Ejecuta el comando armado por el compositor y traduce la salida de
`-progress pipe:1` en un callback de avance.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..errors import EncodeError

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 40

ProgressCallback = Callable[[float], None]


def parse_out_time(line: str) -> Optional[float]:
    """
    Segundos codificados a partir de una línea de -progress.

    Acepta 'out_time_us=1500000' y 'out_time=00:00:01.500000'.
    """
    key, _, value = line.strip().partition("=")
    if key in ("out_time_us", "out_time_ms"):
        # out_time_ms también viene en microsegundos
        try:
            return int(value) / 1_000_000
        except ValueError:
            return None
    if key == "out_time":
        try:
            hours, minutes, seconds = value.split(":")
            return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
        except ValueError:
            return None
    return None


class Encoder:
    """Ejecuta FFmpeg de forma asíncrona."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg"):
        self.ffmpeg_bin = ffmpeg_bin

    async def check_ffmpeg(self) -> bool:
        """Verifica que FFmpeg esté instalado."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_bin, "-version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError:
            return False
        return await process.wait() == 0

    @staticmethod
    async def _terminate(process) -> None:
        if process.returncode is None:
            logger.warning(f"Deteniendo FFmpeg (pid {process.pid})")
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def run(
        self,
        command: Sequence[str],
        total_duration: float,
        progress: Optional[ProgressCallback] = None,
        output_path: Optional[str] = None,
    ) -> Optional[str]:
        """
        Ejecuta el comando de render.

        Args:
            command: Comando completo (incluye -progress pipe:1)
            total_duration: TotalDuration del timeline, para la fracción de avance
            progress: Callback con la fracción codificada [0, 1]
            output_path: Archivo esperado; se verifica al terminar

        Returns:
            Ruta al video generado

        Raises:
            EncodeError: FFmpeg no encontrado, salida no nula o archivo vacío
        """
        logger.info("Renderizando video final...")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EncodeError(f"FFmpeg no encontrado: {command[0]}") from e

        stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        stdout_tail: deque = deque(maxlen=STDERR_TAIL_LINES)

        async def drain_stderr():
            async for raw in process.stderr:
                stderr_tail.append(raw.decode(errors="replace").rstrip())

        async def read_progress():
            last = -1.0
            async for raw in process.stdout:
                line = raw.decode(errors="replace").strip()
                stdout_tail.append(line)
                seconds = parse_out_time(line)
                if seconds is not None and progress and total_duration > 0:
                    fraction = min(max(seconds / total_duration, 0.0), 1.0)
                    if fraction > last:
                        last = fraction
                        progress(fraction)
                elif line == "progress=end" and progress:
                    progress(1.0)

        returncode = None
        try:
            await asyncio.gather(read_progress(), drain_stderr())
            returncode = await process.wait()
        finally:
            if returncode is None:
                # Cancelación o fallo leyendo el avance: no dejar FFmpeg huérfano
                await self._terminate(process)

        stderr_text = "\n".join(stderr_tail)
        stdout_text = "\n".join(stdout_tail)
        if returncode != 0:
            logger.error(f"FFmpeg terminó con código {returncode}:\n{stderr_text}")
            raise EncodeError(
                f"FFmpeg terminó con código {returncode}",
                returncode=returncode,
                stderr=stderr_text,
                stdout=stdout_text,
            )

        if output_path:
            path = Path(output_path)
            if not path.exists() or path.stat().st_size == 0:
                raise EncodeError(
                    f"FFmpeg no produjo salida en {path}",
                    returncode=returncode,
                    stderr=stderr_text,
                    stdout=stdout_text,
                )
            logger.info(f"Video renderizado: {path}")
        return output_path

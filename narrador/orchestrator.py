"""
Orquestador Central
Coordina todos los subsistemas para convertir una petición de texto en un
video final: API de contenido -> descargas -> timeline -> subtítulos ->
grafo de FFmpeg -> encode -> subida.
"""
import asyncio
import logging
import random
import shutil
import uuid
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx

from .audio.engine import AudioEngine, probe_voiceover
from .captions.layout import layout_words
from .config import Settings
from .domain.models import ContentResponse, RenderRequest, RenderResult
from .domain.styles import StyleConfig
from .errors import AssetDownloadError, EmptyTimelineError, EncodeError, UploadError, UpstreamAPIError, ValidationError
from .infrastructure.content_api import ContentApiClient
from .infrastructure.materializer import AssetMaterializer
from .publisher.storage import Storage
from .timeline.builder import TimelineBuilder
from .utils.resources import ResourceGate
from .video.compositor import CompositeBuilder
from .video.renderer import Encoder
from .video.subtitles import SubtitleDocument

logger = logging.getLogger(__name__)

PhaseCallback = Callable[[str, float], None]
ProbeFunction = Callable[..., Awaitable[float]]


def _suffix(url: str, default: str) -> str:
    return PurePosixPath(urlparse(url).path).suffix.lower() or default


class RenderOrchestrator:
    """
    El 'Director de Orquesta'.
    Recibe una RenderRequest y coordina su producción de punta a punta.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        storage: Storage,
        encoder: Optional[Encoder] = None,
        audio_engine: Optional[AudioEngine] = None,
        resource_gate: Optional[ResourceGate] = None,
        rng: Optional[random.Random] = None,
        content_api: Optional[ContentApiClient] = None,
        probe: ProbeFunction = probe_voiceover,
    ):
        self.settings = settings
        self.http_client = http_client
        self.storage = storage
        self.encoder = encoder or Encoder(settings.ffmpeg_bin)
        self.audio_engine = audio_engine or AudioEngine(settings.music_gain_db)
        self.resource_gate = resource_gate or ResourceGate(
            settings.resource_policy,
            min_free_ram_mb=settings.min_free_ram_mb,
            max_cpu_percent=settings.max_cpu_percent,
        )
        self.rng = rng or random.Random(settings.motion_seed)
        self.content_api = content_api or ContentApiClient(
            http_client,
            settings.content_api_url,
            policy=settings.api_policy,
            timeout=settings.content_api_timeout,
        )
        self.probe = probe
        self.timeline_builder = TimelineBuilder(settings.trailing_buffer_seconds)

        self.output_dir = Path(settings.output_dir)
        self.temp_dir = Path(settings.temp_dir)

    @staticmethod
    async def _optional_fetch(materializer: AssetMaterializer, url: Optional[str], destination: Path, label: str):
        if not url:
            return None
        try:
            return await materializer.fetch(url, str(destination))
        except AssetDownloadError as e:
            logger.warning(f"No se pudo descargar {label}, se omite: {e}")
            return None

    async def _download(self, content: ContentResponse, scenes, job_dir: Path):
        """Descarga en paralelo assets de escena, voiceover y auxiliares."""
        materializer = AssetMaterializer(
            self.http_client,
            str(job_dir),
            policy=self.settings.download_policy,
            timeout=self.settings.download_timeout,
            concurrency=self.settings.download_concurrency,
        )
        voice_path = job_dir / f"voiceover{_suffix(content.voiceover_url, '.mp3')}"

        font_task = None
        if content.font_name and content.font_name.lower().startswith(("http://", "https://")):
            font_file = PurePosixPath(urlparse(content.font_name).path).name or "font.ttf"
            font_task = self._optional_fetch(materializer, content.font_name, job_dir / "fonts" / font_file, "la fuente")

        logo_task = None
        if content.watermark_icon:
            logo_task = self._optional_fetch(
                materializer, content.watermark_icon, job_dir / f"logo{_suffix(content.watermark_icon, '.png')}", "el logo"
            )

        music_task = None
        if content.bg_music_file:
            music_task = self._optional_fetch(
                materializer, content.bg_music_file, job_dir / f"music{_suffix(content.bg_music_file, '.mp3')}", "la música"
            )

        async def nothing():
            return None

        results = await asyncio.gather(
            materializer.materialize(scenes),
            materializer.fetch(content.voiceover_url, str(voice_path)),
            font_task or nothing(),
            logo_task or nothing(),
            music_task or nothing(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    async def _encode(self, job, total_duration: float, on_progress: Optional[PhaseCallback]) -> None:
        midpoint_checked = False

        def report(fraction: float):
            nonlocal midpoint_checked
            if fraction >= 0.5 and not midpoint_checked:
                midpoint_checked = True
                self.resource_gate.check_now("encode")
            if on_progress:
                on_progress("encode", fraction)

        async for attempt in self.settings.encode_policy.retrying((EncodeError,)):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.warning(f"Reintentando encode (intento {number})")
                await self.encoder.run(job.command, total_duration, report, job.output_path)

    async def render(self, request: RenderRequest, on_progress: Optional[PhaseCallback] = None) -> RenderResult:
        """
        Ejecuta el pipeline completo para una petición.

        Args:
            request: Petición validada de render
            on_progress: Callback opcional (fase, fracción)

        Returns:
            RenderResult con la URL remota o, si la subida falla, el path local

        Raises:
            RenderError: cualquier error fatal, después de limpiar temporales
        """
        if not request.text or not request.text.strip():
            raise ValidationError("text required")

        job_id = uuid.uuid4().hex[:12]
        job_dir = self.temp_dir / job_id
        job_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / f"{job_id}.mp4"

        def phase(name: str, fraction: float = 0.0):
            if on_progress:
                on_progress(name, fraction)

        logger.info(f"Trabajo {job_id}: iniciando render (style={request.style})")
        try:
            # 1. Contenido
            phase("contenido")
            content = await self.content_api.fetch(request)
            scenes = content.to_scenes()
            if not scenes:
                raise EmptyTimelineError("La API no devolvió escenas")
            if not content.voiceover_url:
                raise UpstreamAPIError("La API no devolvió voiceoverUrl")

            # 2. Descargas
            await self.resource_gate.wait_for_capacity("descarga")
            phase("descarga")
            assets, voice_path, font_path, logo_path, music_path = await self._download(content, scenes, job_dir)

            # 3. Timeline y audio
            phase("timeline")
            voice_duration = await self.probe(str(voice_path), content.duration, self.settings.ffprobe_bin)
            style = StyleConfig.from_content(content, request, font_file=str(font_path) if font_path else None)
            timeline = self.timeline_builder.build(voice_duration, scenes, assets)
            audio_path = await self.audio_engine.prepare_track(
                str(voice_path),
                str(job_dir / "audio.wav"),
                timeline.total_duration,
                str(music_path) if music_path else None,
            )

            # 4. Subtítulos y grafo
            phase("composicion")
            track = layout_words(list(timeline.words), timeline.total_duration, style)
            subtitles_path = SubtitleDocument.from_track(track).save(str(job_dir / "captions.ass"))

            watermark_path = None
            if style.watermark_enabled:
                if logo_path:
                    watermark_path = str(logo_path)
                else:
                    logger.warning("Marca de agua activada pero sin logo disponible; se omite")

            fonts_dir = self.settings.fonts_dir or (str(Path(font_path).parent) if font_path else None)
            builder = CompositeBuilder(
                style,
                transition_seconds=self.settings.transition_seconds,
                rng=self.rng,
                ffmpeg_bin=self.settings.ffmpeg_bin,
                fonts_dir=fonts_dir,
            )
            job = builder.build(
                timeline,
                audio_path,
                str(output_path),
                subtitles_path=str(subtitles_path),
                watermark_path=watermark_path,
                progress_bar=track.progress_bar,
            )

            # 5. Encode
            await self.resource_gate.wait_for_capacity("encode")
            phase("encode")
            await self._encode(job, timeline.total_duration, on_progress)

            # 6. Subida
            await self.resource_gate.wait_for_capacity("subida")
            phase("subida")
            url = None
            try:
                url = await self.storage.upload(str(output_path), output_path.name)
            except UploadError as e:
                logger.warning(f"Subida fallida, se conserva el archivo local: {e}")

            if url:
                if not self.settings.keep_local_copy:
                    output_path.unlink(missing_ok=True)
                logger.info(f"Trabajo {job_id} completado: {url}")
                return RenderResult(job_id=job_id, location=url, is_remote=True, duration=timeline.total_duration)

            logger.info(f"Trabajo {job_id} completado (local): {output_path}")
            return RenderResult(
                job_id=job_id,
                location=str(output_path),
                is_remote=False,
                duration=timeline.total_duration,
            )

        except BaseException as e:
            output_path.unlink(missing_ok=True)
            logger.error(f"Trabajo {job_id} fallido: {e}")
            raise
        finally:
            shutil.rmtree(job_dir, ignore_errors=True)

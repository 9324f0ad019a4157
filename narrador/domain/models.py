"""
Modelos de Dominio
Definen la estructura de datos central del renderizador: lo que llega de la
API de contenido, lo que pide el cliente HTTP y lo que deriva el timeline.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".mkv", ".avi", ".m4v")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp")

MIN_DURATION = 0.1


class AssetType(str, Enum):
    VIDEO = "video"
    IMAGE = "image"


def asset_type_from_url(url: str) -> Optional[AssetType]:
    """Heurística por extensión del path de la URL."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    if suffix in VIDEO_EXTENSIONS:
        return AssetType.VIDEO
    if suffix in IMAGE_EXTENSIONS:
        return AssetType.IMAGE
    return None


def safe_duration(value: Optional[float], label: str = "duración") -> float:
    """
    Normaliza una duración: negativas, nulas o no finitas se llevan a 0.1s.
    Preferimos degradar la precisión antes que abortar un render largo.
    """
    if value is None or not math.isfinite(value) or value < MIN_DURATION:
        logger.warning(f"{label} inválida ({value!r}), usando {MIN_DURATION}s")
        return MIN_DURATION
    return float(value)


class WordTiming(BaseModel):
    """Palabra con timestamps absolutos tal como la entrega la API."""

    model_config = ConfigDict(populate_by_name=True)

    word: str = Field(..., validation_alias=AliasChoices("word", "text"))
    start: float
    end: float


class SceneDescriptor(BaseModel):
    """
    Un segmento narrado: texto, ventana de tiempo y asset visual asociado.
    """

    asset_url: Optional[str] = None
    asset_type: AssetType = AssetType.VIDEO
    segment_start: float
    segment_end: float
    segment_duration: Optional[float] = None
    text: str = ""
    words: List[WordTiming] = Field(default_factory=list)

    @property
    def declared_duration(self) -> float:
        """Duración declarada por la API (segmentDuration o end - start)."""
        if self.segment_duration is not None:
            return self.segment_duration
        return self.segment_end - self.segment_start


class ApiVideo(BaseModel):
    """Entrada de `videos` en la respuesta de la API de contenido."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    asset_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("assetUrl", "videoUrl", "imageUrl", "asset_url")
    )
    asset_type: Optional[str] = Field(None, validation_alias=AliasChoices("assetType", "type", "asset_type"))
    segment_start: float = Field(0.0, validation_alias=AliasChoices("segmentStart", "segment_start"))
    segment_end: float = Field(0.0, validation_alias=AliasChoices("segmentEnd", "segment_end"))
    segment_duration: Optional[float] = Field(
        None, validation_alias=AliasChoices("segmentDuration", "segment_duration")
    )
    transcription_part: str = Field(
        "", validation_alias=AliasChoices("transcriptionPart", "text", "transcription_part")
    )


def _window_distance(t: float, start: float, end: float) -> float:
    """Distancia de t a la ventana [start, end); 0 si cae dentro."""
    if not math.isfinite(t):
        return math.inf
    if start <= t < end:
        return 0.0
    if t < start:
        return start - t
    # t >= end: se suma un mínimo para que una ventana que lo contiene gane
    return t - end + 1e-9


def _parse_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return value


def _parse_words_per_line(value):
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == "more":
            return 4
        if normalized == "less":
            return 2
        if normalized.isdigit():
            return int(normalized)
        return None
    return value


class ContentResponse(BaseModel):
    """Respuesta JSON de la API de contenido."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    videos: List[ApiVideo] = Field(default_factory=list)
    voiceover_url: Optional[str] = Field(None, alias="voiceoverUrl")
    video_type: Optional[str] = Field(None, alias="videoType")
    no_of_words: Optional[int] = Field(None, alias="noOfWords")
    font_size: Optional[int] = Field(None, alias="fontSize")
    animation: Optional[bool] = None
    resolution: Optional[str] = None
    compression: Optional[str] = None
    show_progress_bar: Optional[bool] = Field(None, alias="showProgressBar")
    watermark: Optional[bool] = None
    watermark_icon: Optional[str] = Field(None, alias="watermarkIcon")
    color_text1: Optional[str] = Field(None, alias="colorText1")
    color_text2: Optional[str] = Field(None, alias="colorText2")
    color_bg: Optional[str] = Field(None, alias="colorBg")
    position_y: Optional[float] = Field(None, alias="positionY")
    duration: Optional[float] = None
    words: List[WordTiming] = Field(default_factory=list)
    font_name: Optional[str] = Field(None, alias="fontName")
    bg_music_file: Optional[str] = None

    @field_validator("animation", "show_progress_bar", "watermark", mode="before")
    @classmethod
    def _bools(cls, value):
        return _parse_bool(value)

    @field_validator("no_of_words", mode="before")
    @classmethod
    def _words_per_line(cls, value):
        return _parse_words_per_line(value)

    @field_validator("duration", "position_y", mode="before")
    @classmethod
    def _blank_numbers(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def _assign_words(self) -> List[List[WordTiming]]:
        """
        Cada palabra global va a exactamente una escena: la primera cuya
        ventana contiene su inicio o, si ninguna la contiene, la más cercana.
        """
        assigned: List[List[WordTiming]] = [[] for _ in self.videos]
        if not self.videos:
            if self.words:
                logger.warning(f"{len(self.words)} palabras descartadas: la respuesta no trae escenas")
            return assigned

        outside = 0
        for word in self.words:
            distances = [
                _window_distance(word.start, video.segment_start, video.segment_end)
                for video in self.videos
            ]
            nearest = min(range(len(distances)), key=lambda index: distances[index])
            if distances[nearest] > 0:
                outside += 1
            assigned[nearest].append(word)

        if outside:
            logger.warning(f"{outside} palabras fuera de toda ventana de escena; asignadas a la más cercana")
        return assigned

    def to_scenes(self) -> List[SceneDescriptor]:
        """
        Convierte `videos` en SceneDescriptor.
        Si la API envía las palabras a nivel global, se reparten por escena
        según su inicio dentro de [segmentStart, segmentEnd), sin duplicar
        ni perder ninguna.
        """
        words_by_scene = self._assign_words()
        scenes = []
        for video, scene_words in zip(self.videos, words_by_scene):
            declared = None
            if video.asset_type:
                try:
                    declared = AssetType(video.asset_type.strip().lower())
                except ValueError:
                    declared = None
            asset_type = declared or (
                asset_type_from_url(video.asset_url) if video.asset_url else None
            ) or AssetType.VIDEO
            scenes.append(
                SceneDescriptor(
                    asset_url=video.asset_url,
                    asset_type=asset_type,
                    segment_start=video.segment_start,
                    segment_end=video.segment_end,
                    segment_duration=video.segment_duration,
                    text=video.transcription_part,
                    words=scene_words,
                )
            )
        return scenes


class RenderRequest(BaseModel):
    """Petición de render (cuerpo de POST /generate-video)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: Optional[str] = None
    language: str = "en"
    style: str = "style_1"
    transcription_format: str = "segment"
    video_type: Optional[str] = Field(None, alias="videoType")
    no_of_words: Optional[int] = Field(None, alias="noOfWords")
    font_size: Optional[int] = Field(None, alias="fontSize")
    animation: Optional[bool] = None
    resolution: Optional[str] = None
    compression: Optional[str] = None
    show_progress_bar: Optional[bool] = Field(None, alias="showProgressBar")
    watermark: Optional[bool] = None
    color_text1: Optional[str] = Field(None, alias="colorText1")
    color_text2: Optional[str] = Field(None, alias="colorText2")
    color_bg: Optional[str] = Field(None, alias="colorBg")
    position_y: Optional[float] = Field(None, alias="positionY")

    @field_validator("animation", "show_progress_bar", "watermark", mode="before")
    @classmethod
    def _bools(cls, value):
        return _parse_bool(value)

    @field_validator("no_of_words", mode="before")
    @classmethod
    def _words_per_line(cls, value):
        return _parse_words_per_line(value)

    def query_params(self) -> dict:
        """Parámetros de query para la API de contenido (todas las perillas de estilo)."""
        params = {
            "text": self.text or "",
            "language": self.language,
            "style": self.style,
            "transcription_format": self.transcription_format,
        }
        overrides = self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"text", "language", "style", "transcription_format"},
        )
        for key, value in overrides.items():
            params[key] = str(value).lower() if isinstance(value, bool) else str(value)
        return params


class RenderResult(BaseModel):
    """Resultado de un render: URL remota o path local."""

    job_id: str
    location: str
    is_remote: bool
    duration: float


@dataclass(frozen=True)
class VisualSegment:
    """Segmento visual ya reconciliado con el TotalDuration."""

    asset_path: str
    asset_type: AssetType
    effective_duration: float
    position: int


@dataclass(frozen=True)
class Word:
    """Palabra con tiempos reparados (absolutos, en segundos)."""

    text: str
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class MaterializedAsset:
    """Asset descargado a disco local."""

    url: str
    path: str
    asset_type: AssetType
    size_bytes: int

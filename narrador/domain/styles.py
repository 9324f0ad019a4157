"""
Estilos visuales soportados.
Cada estilo es una variante de StyleConfig consumida por el mismo pipeline,
no un camino de código separado.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ContentResponse, RenderRequest

logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = re.compile(r"^#?([0-9a-fA-F]{6})$")


class StyleId(str, Enum):
    STYLE_1 = "style_1"
    STYLE_2 = "style_2"
    STYLE_3 = "style_3"
    STYLE_4 = "style_4"


class CaptionMode(str, Enum):
    WORD_BOXES = "word_boxes"  # caja redondeada "pop" por palabra
    KARAOKE = "karaoke"  # barrido progresivo de color por slide


class MotionEffect(str, Enum):
    ZOOM_IN = "zoom_in"
    ANCHOR_ZOOM = "anchor_zoom"
    DIRECTIONAL_PAN = "directional_pan"


class Stitching(str, Enum):
    CONCAT = "concat"
    CROSSFADE = "crossfade"


@dataclass(frozen=True)
class StylePreset:
    caption_mode: CaptionMode
    motion: MotionEffect
    stitching: Stitching


STYLE_PRESETS = {
    StyleId.STYLE_1: StylePreset(CaptionMode.WORD_BOXES, MotionEffect.ZOOM_IN, Stitching.CONCAT),
    StyleId.STYLE_2: StylePreset(CaptionMode.KARAOKE, MotionEffect.ANCHOR_ZOOM, Stitching.CROSSFADE),
    StyleId.STYLE_3: StylePreset(CaptionMode.WORD_BOXES, MotionEffect.ANCHOR_ZOOM, Stitching.CROSSFADE),
    StyleId.STYLE_4: StylePreset(CaptionMode.WORD_BOXES, MotionEffect.DIRECTIONAL_PAN, Stitching.CROSSFADE),
}

# Dimensiones en landscape; portrait invierte, square usa el lado corto
RESOLUTIONS = {
    "480p": (854, 480),
    "720p": (1280, 720),
    "1080p": (1920, 1080),
}

ORIENTATIONS = ("landscape", "portrait", "square")


@dataclass(frozen=True)
class EncodingPreset:
    """Calidad de salida por nivel de compresión."""

    crf: int
    maxrate: str
    bufsize: str
    audio_bitrate: str


COMPRESSION_PRESETS = {
    "studio": EncodingPreset(crf=18, maxrate="12M", bufsize="24M", audio_bitrate="256k"),
    "social_media": EncodingPreset(crf=23, maxrate="6M", bufsize="12M", audio_bitrate="192k"),
    "web": EncodingPreset(crf=28, maxrate="3M", bufsize="6M", audio_bitrate="128k"),
}

COMPRESSION_ALIASES = {
    "archival": "studio",
    "social": "social_media",
}


def normalize_color(value: str) -> str:
    """'#ff00ff' -> 'FF00FF'."""
    match = HEX_COLOR_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"color inválido: {value!r}")
    return match.group(1).upper()


def font_family_name(font_name: str) -> str:
    """
    Nombre de familia para el ASS. Si la API manda la URL del archivo
    ('.../PoetsenOne-Regular.ttf') se deriva del nombre ('PoetsenOne').
    """
    if not font_name.lower().startswith(("http://", "https://")):
        return font_name
    stem = PurePosixPath(urlparse(font_name).path).stem
    return stem.split("-")[0] or font_name


def frame_size(resolution: str, orientation: str) -> Tuple[int, int]:
    """(ancho, alto) para una resolución y orientación."""
    long_side, short_side = RESOLUTIONS[resolution]
    if orientation == "portrait":
        return short_side, long_side
    if orientation == "square":
        return short_side, short_side
    return long_side, short_side


class StyleConfig(BaseModel):
    """Configuración visual de un render."""

    model_config = ConfigDict(frozen=True)

    style_id: StyleId = StyleId.STYLE_1
    words_per_line: int = Field(4, ge=1, le=12)
    font_family: str = "Arial"
    font_file: Optional[str] = None
    font_size_px: int = Field(100, ge=8, le=256)
    text_color: str = "FFFFFF"
    highlight_color: str = "FF00FF"
    background_color: str = "000000"
    vertical_position_percent: float = Field(50.0, ge=0.0, le=100.0)
    animation_enabled: bool = True
    progress_bar_enabled: bool = False
    watermark_enabled: bool = False
    resolution: str = "1080p"
    orientation: str = "portrait"
    compression: str = "social_media"

    @field_validator("text_color", "highlight_color", "background_color", mode="before")
    @classmethod
    def _colors(cls, value):
        return normalize_color(value)

    @field_validator("resolution")
    @classmethod
    def _resolution(cls, value):
        if value not in RESOLUTIONS:
            raise ValueError(f"resolución no soportada: {value!r}")
        return value

    @field_validator("orientation")
    @classmethod
    def _orientation(cls, value):
        if value not in ORIENTATIONS:
            raise ValueError(f"orientación no soportada: {value!r}")
        return value

    @field_validator("compression", mode="before")
    @classmethod
    def _compression(cls, value):
        value = COMPRESSION_ALIASES.get(value, value)
        if value not in COMPRESSION_PRESETS:
            raise ValueError(f"compresión no soportada: {value!r}")
        return value

    @property
    def preset(self) -> StylePreset:
        return STYLE_PRESETS[self.style_id]

    @property
    def frame_size(self) -> Tuple[int, int]:
        return frame_size(self.resolution, self.orientation)

    @property
    def encoding(self) -> EncodingPreset:
        return COMPRESSION_PRESETS[self.compression]

    @classmethod
    def from_content(
        cls,
        content: ContentResponse,
        request: Optional[RenderRequest] = None,
        font_file: Optional[str] = None,
    ) -> "StyleConfig":
        """
        Construye el estilo desde la respuesta de la API.
        Los campos presentes en la petición tienen prioridad sobre la API;
        valores inválidos se ignoran con un warning y se usa el default.
        """
        request = request or RenderRequest()

        def pick(name: str):
            value = getattr(request, name, None)
            return value if value is not None else getattr(content, name, None)

        candidates = {
            "style_id": request.style,
            "words_per_line": pick("no_of_words"),
            "font_size_px": pick("font_size"),
            "text_color": pick("color_text1"),
            "highlight_color": pick("color_bg"),
            "background_color": pick("color_text2"),
            "vertical_position_percent": pick("position_y"),
            "animation_enabled": pick("animation"),
            "progress_bar_enabled": pick("show_progress_bar"),
            "watermark_enabled": pick("watermark"),
            "resolution": pick("resolution"),
            "orientation": pick("video_type"),
            "compression": pick("compression"),
        }
        if content.font_name:
            candidates["font_family"] = font_family_name(content.font_name)
        if font_file:
            candidates["font_file"] = font_file

        values = {}
        defaults = cls()
        for name, value in candidates.items():
            if value is None:
                continue
            try:
                cls(**{name: value})
            except ValueError as e:
                logger.warning(f"Valor de estilo inválido {name}={value!r}, usando {getattr(defaults, name)!r}: {e}")
                continue
            values[name] = value
        return cls(**values)

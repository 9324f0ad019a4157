"""
Motor de layout de subtítulos.

Convierte la lista canónica de palabras en una pista declarativa de
overlays: slides posicionados y centrados, ventanas de resaltado por palabra
y barra de progreso. No rasteriza nada; la pista se serializa a ASS en
`narrador.video.subtitles`.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..domain.models import SceneDescriptor, Word
from ..domain.styles import CaptionMode, StyleConfig
from .words import derive_words

logger = logging.getLogger(__name__)

AVERAGE_CHAR_RATIO = 0.6
NARROW_CHARS = frozenset("ijl1.,:;'!|It")
WIDE_CHARS = frozenset("mwMW@")
NARROW_FACTOR = 0.5
WIDE_FACTOR = 1.2
SPACE_RATIO = 0.3
SIDE_MARGIN_RATIO = 0.05
LINE_HEIGHT_RATIO = 1.2
MAX_LINES = 2
PROGRESS_BAR_RATIO = 0.02


def text_width(text: str, font_size: float) -> float:
    """
    Estimación del ancho en píxeles con un modelo fijo por carácter:
    angostos x0.5, anchos x1.2, resto x1.0 sobre 0.6 * tamaño de fuente.
    """
    average = font_size * AVERAGE_CHAR_RATIO
    units = 0.0
    for character in text:
        if character in NARROW_CHARS:
            units += NARROW_FACTOR
        elif character in WIDE_CHARS:
            units += WIDE_FACTOR
        else:
            units += 1.0
    return math.ceil(units * average)


def space_width(font_size: float) -> float:
    return font_size * SPACE_RATIO


def progress_fraction(t: float, total_duration: float) -> float:
    """Fracción llena de la barra en el instante t: min(t / total, 1)."""
    if total_duration <= 0:
        return 1.0
    return min(max(t, 0.0) / total_duration, 1.0)


@dataclass(frozen=True)
class Slide:
    """Grupo de palabras visibles a la vez (hasta 2 líneas)."""

    lines: Tuple[Tuple[Word, ...], ...]
    start: float
    end: float

    @property
    def words(self) -> Tuple[Word, ...]:
        return tuple(word for line in self.lines for word in line)

    @property
    def text(self) -> str:
        return " ".join(word.text for word in self.words)


@dataclass(frozen=True)
class PlacedWord:
    """Palabra con su ancla en pantalla (centro de la palabra)."""

    word: Word
    x: float
    y: float
    width: float
    line: int


@dataclass(frozen=True)
class SlideLayout:
    slide: Slide
    placed: Tuple[PlacedWord, ...]
    line_centers: Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class ProgressBar:
    """Barra horizontal de dos colores dividida en progress_fraction(t)."""

    y: int
    height: int
    fill_color: str
    track_color: str
    total_duration: float

    def fraction_at(self, t: float) -> float:
        return progress_fraction(t, self.total_duration)


@dataclass(frozen=True)
class CaptionTrack:
    """Descripción declarativa de todos los overlays de texto."""

    width: int
    height: int
    style: StyleConfig
    mode: Optional[CaptionMode]
    slides: Tuple[SlideLayout, ...]
    progress_bar: Optional[ProgressBar]
    total_duration: float


def _close_slide(lines: List[List[Word]], previous_end: float) -> Optional[Slide]:
    words = [word for line in lines for word in line]
    if not words:
        return None
    start = max(words[0].start, previous_end)
    end = words[-1].end
    if start >= end:
        logger.debug(f"Slide vacío descartado en {start:.3f}s")
        return None
    return Slide(lines=tuple(tuple(line) for line in lines if line), start=start, end=end)


def group_slides(
    words: Sequence[Word],
    words_per_line: int,
    font_size: float,
    max_width: float,
) -> List[Slide]:
    """
    Empaqueta palabras en slides de forma greedy.

    Un slide lleva como máximo `words_per_line` palabras; si el ancho
    estimado supera `max_width` se pasa a una segunda línea, y si ya hay dos
    líneas la palabra abre el siguiente slide.
    """
    slides: List[Slide] = []
    lines: List[List[Word]] = [[]]
    line_width = 0.0
    count = 0
    previous_end = 0.0
    gap = space_width(font_size)

    def flush():
        nonlocal lines, line_width, count, previous_end
        slide = _close_slide(lines, previous_end)
        if slide is not None:
            slides.append(slide)
            previous_end = slide.end
        lines = [[]]
        line_width = 0.0
        count = 0

    for word in words:
        width = text_width(word.text, font_size)
        line = lines[-1]
        needed = width if not line else line_width + gap + width

        if line and needed > max_width:
            if len(lines) >= MAX_LINES:
                flush()
                lines[-1].append(word)
                line_width = width
            else:
                lines.append([word])
                line_width = width
        else:
            line.append(word)
            line_width = needed

        count += 1
        if count >= words_per_line:
            flush()

    flush()
    return slides


def place_slide(slide: Slide, width: int, height: int, style: StyleConfig) -> SlideLayout:
    """Centra cada línea en horizontal y ancla el bloque en positionY %."""
    font_size = style.font_size_px
    gap = space_width(font_size)
    line_height = font_size * LINE_HEIGHT_RATIO
    center_y = height * style.vertical_position_percent / 100.0

    block_height = line_height * len(slide.lines)
    center_y = min(max(center_y, block_height / 2), height - block_height / 2)
    first_y = center_y - (len(slide.lines) - 1) * line_height / 2

    placed: List[PlacedWord] = []
    centers = []
    for index, line in enumerate(slide.lines):
        widths = [text_width(word.text, font_size) for word in line]
        total = sum(widths) + gap * (len(line) - 1)
        x = (width - total) / 2
        y = first_y + index * line_height
        centers.append((width / 2, y))
        for word, word_width in zip(line, widths):
            placed.append(PlacedWord(word=word, x=x + word_width / 2, y=y, width=word_width, line=index))
            x += word_width + gap

    return SlideLayout(slide=slide, placed=tuple(placed), line_centers=tuple(centers))


def layout_words(words: Sequence[Word], total_duration: float, style: StyleConfig) -> CaptionTrack:
    """
    Layout de la lista canónica de palabras (ya reparada y recortada).
    """
    width, height = style.frame_size
    max_width = width * (1 - 2 * SIDE_MARGIN_RATIO)
    slides = group_slides(words, style.words_per_line, style.font_size_px, max_width)
    layouts = tuple(place_slide(slide, width, height, style) for slide in slides)

    progress_bar = None
    if style.progress_bar_enabled:
        progress_bar = ProgressBar(
            y=0,
            height=max(4, round(height * PROGRESS_BAR_RATIO)),
            fill_color=style.highlight_color,
            track_color=style.background_color,
            total_duration=total_duration,
        )

    mode = style.preset.caption_mode if style.animation_enabled else None
    logger.info(f"Layout de subtítulos: {len(words)} palabras en {len(layouts)} slides")
    return CaptionTrack(
        width=width,
        height=height,
        style=style,
        mode=mode,
        slides=layouts,
        progress_bar=progress_bar,
        total_duration=total_duration,
    )


def layout_captions(
    scenes: Iterable[SceneDescriptor],
    total_duration: float,
    style: StyleConfig,
) -> CaptionTrack:
    """Deriva las palabras de las escenas y arma la pista de subtítulos."""
    words = derive_words(scenes, total_duration)
    return layout_words(words, total_duration, style)

"""
Generador de subtítulos en formato ASS.
Serializa la pista de layout (slides, palabras posicionadas, modo de
animación) a un documento ASS con el lienzo del tamaño de salida.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..captions.layout import CaptionTrack, SlideLayout
from ..domain.styles import CaptionMode, StyleConfig

logger = logging.getLogger(__name__)

HIGHLIGHT_ALPHA = 0x40
HIGHLIGHT_PADDING_RATIO = 0.25
HIGHLIGHT_HEIGHT_RATIO = 1.15
CORNER_RADIUS_RATIO = 0.2
POP_START_SCALE = 80
POP_MS = 80


def format_time(seconds: float) -> str:
    """
    Formatea segundos a formato ASS (H:MM:SS.cc).
    """
    centiseconds = int(round(max(seconds, 0.0) * 100))
    hours, centiseconds = divmod(centiseconds, 360000)
    minutes, centiseconds = divmod(centiseconds, 6000)
    secs, centiseconds = divmod(centiseconds, 100)
    return f"{hours}:{minutes:02d}:{secs:02d}.{centiseconds:02d}"


def ass_color(hex_rgb: str, alpha: int = 0) -> str:
    """'RRGGBB' -> '&HAABBGGRR' (orden BGR con alpha, como pide ASS)."""
    rr, gg, bb = hex_rgb[0:2], hex_rgb[2:4], hex_rgb[4:6]
    return f"&H{alpha:02X}{bb}{gg}{rr}".upper()


def inline_color(hex_rgb: str) -> str:
    """Color para override tags: '&HBBGGRR&'."""
    rr, gg, bb = hex_rgb[0:2], hex_rgb[2:4], hex_rgb[4:6]
    return f"&H{bb}{gg}{rr}&".upper()


def escape_text(text: str) -> str:
    """Evita que el texto abra bloques de override o secuencias de escape."""
    return (
        text.replace("\\", "/")
        .replace("{", "(")
        .replace("}", ")")
        .replace("\n", " ")
    )


def rounded_rect(width: float, height: float, radius: float) -> str:
    """Trazado de dibujo ASS (\\p1) de un rectángulo con esquinas redondeadas."""
    w, h = int(round(width)), int(round(height))
    r = int(round(min(radius, w / 2, h / 2)))
    return (
        f"m {r} 0 l {w - r} 0 b {w} 0 {w} 0 {w} {r} "
        f"l {w} {h - r} b {w} {h} {w} {h} {w - r} {h} "
        f"l {r} {h} b 0 {h} 0 {h} 0 {h - r} "
        f"l 0 {r} b 0 0 0 0 {r} 0"
    )


@dataclass(frozen=True)
class SubtitleEvent:
    layer: int
    start: float
    end: float
    style: str
    text: str

    def to_line(self) -> str:
        return (
            f"Dialogue: {self.layer},{format_time(self.start)},{format_time(self.end)},"
            f"{self.style},,0,0,0,,{self.text}"
        )


class SubtitleDocument:
    """Documento ASS: header, estilos y eventos."""

    def __init__(self, width: int, height: int, style: StyleConfig, title: str = "Narrador"):
        """
        Args:
            width: Ancho del lienzo (igual al video de salida)
            height: Alto del lienzo
            style: Configuración visual del render
            title: Título del script
        """
        self.width = width
        self.height = height
        self.style = style
        self.title = title
        self.events: List[SubtitleEvent] = []

    def _style_line(self, name: str, outline: int, shadow: int) -> str:
        s = self.style
        return (
            f"Style: {name},{s.font_family},{s.font_size_px},"
            f"{ass_color(s.text_color)},{ass_color(s.text_color)},"
            f"{ass_color('000000')},{ass_color('000000', 0x80)},"
            f"-1,0,0,0,100,100,0,0,1,{outline},{shadow},5,0,0,0,1"
        )

    def header(self) -> str:
        return f"""[Script Info]
Title: {self.title}
ScriptType: v4.00+
WrapStyle: 2
ScaledBorderAndShadow: yes
YCbCr Matrix: TV.709
PlayResX: {self.width}
PlayResY: {self.height}

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding
{self._style_line("Default", 3, 0)}
{self._style_line("Box", 0, 0)}

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
"""

    def add_event(self, layer: int, start: float, end: float, text: str, style: str = "Default") -> None:
        if end <= start:
            logger.debug(f"Evento vacío descartado en {start:.3f}s")
            return
        self.events.append(SubtitleEvent(layer=layer, start=start, end=end, style=style, text=text))

    # -- Modos de animación --

    def _add_static(self, layout: SlideLayout) -> None:
        color = inline_color(self.style.text_color)
        for index, line in enumerate(layout.slide.lines):
            cx, cy = layout.line_centers[index]
            text = " ".join(escape_text(word.text) for word in line)
            self.add_event(
                1, layout.slide.start, layout.slide.end,
                f"{{\\an5\\pos({cx:.0f},{cy:.0f})\\1c{color}}}{text}",
            )

    def _add_word_boxes(self, layout: SlideLayout) -> None:
        font_size = self.style.font_size_px
        text_color = inline_color(self.style.text_color)
        box_color = inline_color(self.style.highlight_color)
        box_height = font_size * HIGHLIGHT_HEIGHT_RATIO
        padding = font_size * HIGHLIGHT_PADDING_RATIO

        for placed in layout.placed:
            self.add_event(
                1, layout.slide.start, layout.slide.end,
                f"{{\\an5\\pos({placed.x:.0f},{placed.y:.0f})\\1c{text_color}}}{escape_text(placed.word.text)}",
            )
            shape = rounded_rect(placed.width + 2 * padding, box_height, font_size * CORNER_RADIUS_RATIO)
            self.add_event(
                0, placed.word.start, placed.word.end,
                f"{{\\an5\\pos({placed.x:.0f},{placed.y:.0f})\\p1\\bord0\\shad0"
                f"\\1c{box_color}\\alpha&H{HIGHLIGHT_ALPHA:02X}&"
                f"\\fscx{POP_START_SCALE}\\fscy{POP_START_SCALE}"
                f"\\t(0,{POP_MS},\\fscx100\\fscy100)}}{shape}",
                style="Box",
            )

    def _add_karaoke(self, layout: SlideLayout) -> None:
        sung = inline_color(self.style.highlight_color)
        unsung = inline_color(self.style.text_color)
        slide = layout.slide

        for index, line in enumerate(slide.lines):
            cx, cy = layout.line_centers[index]
            parts = [f"{{\\an5\\pos({cx:.0f},{cy:.0f})\\1c{sung}\\2c{unsung}}}"]

            # Límites en centésimas acumuladas para no arrastrar error de redondeo
            cursor = 0
            lead = int(round((line[0].start - slide.start) * 100))
            if lead > 0:
                parts.append(f"{{\\k{lead}}}")
                cursor = lead
            for position, word in enumerate(line):
                until = line[position + 1].start if position + 1 < len(line) else word.end
                boundary = max(int(round((until - slide.start) * 100)), cursor)
                separator = " " if position + 1 < len(line) else ""
                parts.append(f"{{\\kf{boundary - cursor}}}{escape_text(word.text)}{separator}")
                cursor = boundary

            self.add_event(1, slide.start, slide.end, "".join(parts))

    @classmethod
    def from_track(cls, track: CaptionTrack) -> "SubtitleDocument":
        """Construye el documento a partir de la pista de layout."""
        document = cls(track.width, track.height, track.style)
        for layout in track.slides:
            if track.mode is CaptionMode.WORD_BOXES:
                document._add_word_boxes(layout)
            elif track.mode is CaptionMode.KARAOKE:
                document._add_karaoke(layout)
            else:
                document._add_static(layout)
        logger.info(f"Subtítulos ASS: {len(document.events)} eventos ({track.mode.value if track.mode else 'static'})")
        return document

    def render(self) -> str:
        events = sorted(self.events, key=lambda event: (event.start, event.layer))
        return self.header() + "\n".join(event.to_line() for event in events) + "\n"

    def save(self, path: str) -> Path:
        """
        Escribe el documento en disco.

        Returns:
            Ruta al archivo generado
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(self.render())
        logger.debug(f"Subtítulos guardados en {target}")
        return target

"""
Compositor de video.
Arma el filtergraph completo (movimiento por segmento, transiciones,
subtítulos ASS, marca de agua y barra de progreso) y el comando de FFmpeg
que lo codifica en una sola pasada.
"""
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..captions.layout import ProgressBar
from ..domain.models import AssetType, VisualSegment
from ..domain.styles import MotionEffect, Stitching, StyleConfig
from ..timeline.builder import Timeline
from .graph import Filter, FilterGraph, format_number

logger = logging.getLogger(__name__)

FPS = 30
GOP_SECONDS = 2
MIN_OFFSET = 0.001
PREV_TRANSITION_RATIO = 0.7
CURR_TRANSITION_RATIO = 0.5
ZOOM_AMOUNT = 0.25
PAN_ZOOM = 1.25
WATERMARK_WIDTH_RATIO = 0.15
WATERMARK_MARGIN = 10
WATERMARK_OPACITY = 0.2

ANCHORS = {
    "center": (0.5, 0.5),
    "top_left": (0.0, 0.0),
    "top_right": (1.0, 0.0),
    "bottom_left": (0.0, 1.0),
    "bottom_right": (1.0, 1.0),
}
CORNERS = ("top_left", "top_right", "bottom_left", "bottom_right")


@dataclass(frozen=True)
class Transition:
    """Crossfade entre el segmento index-1 y el segmento index."""

    index: int
    duration: float
    offset: float


@dataclass(frozen=True)
class RenderJob:
    """Comando de FFmpeg listo para ejecutar."""

    command: List[str]
    graph: str
    total_duration: float
    output_path: str


def transition_duration(previous: float, current: float, fixed: float) -> float:
    """t = min(fijo, 0.7 * anterior, 0.5 * actual)."""
    return min(fixed, PREV_TRANSITION_RATIO * previous, CURR_TRANSITION_RATIO * current)


def plan_transitions(durations: Sequence[float], fixed: float) -> Tuple[List[float], List[Transition]]:
    """
    Largos de clip y crossfades para que el resultado dure sum(durations).

    Cada clip se alarga con la duración de su transición saliente; el offset
    de cada xfade es el largo acumulado menos t (mínimo MIN_OFFSET).
    """
    clips = list(durations)
    if fixed <= 0 or len(clips) < 2:
        return clips, []

    fades = [0.0] + [
        transition_duration(durations[i - 1], durations[i], fixed) for i in range(1, len(durations))
    ]
    for i in range(1, len(clips)):
        clips[i - 1] += fades[i]

    transitions = []
    stitched = clips[0]
    for i in range(1, len(clips)):
        offset = max(stitched - fades[i], MIN_OFFSET)
        transitions.append(Transition(index=i, duration=fades[i], offset=offset))
        stitched += clips[i] - fades[i]
    return clips, transitions


def escape_filter_path(path: str) -> str:
    """Path absoluto citado para opciones de filtros (ass, fontsdir)."""
    escaped = Path(path).resolve().as_posix().replace(":", "\\:")
    return "'" + escaped.replace("'", "'\\''") + "'"


class CompositeBuilder:
    """Construye el filtergraph y el comando de render para un timeline."""

    def __init__(
        self,
        style: StyleConfig,
        transition_seconds: float = 0.5,
        rng: Optional[random.Random] = None,
        ffmpeg_bin: str = "ffmpeg",
        fonts_dir: Optional[str] = None,
    ):
        """
        Args:
            style: Configuración visual del render
            transition_seconds: Duración nominal de los crossfades
            rng: Generador para anclas de zoom/paneo (inyectable en tests)
            ffmpeg_bin: Binario de FFmpeg
            fonts_dir: Carpeta con fuentes adicionales para libass
        """
        self.style = style
        self.transition_seconds = transition_seconds
        self.rng = rng or random.Random()
        self.ffmpeg_bin = ffmpeg_bin
        self.fonts_dir = fonts_dir
        self.width, self.height = style.frame_size

    # -- Movimiento --

    def motion_filter(self, clip_duration: float) -> Filter:
        """zoompan con expresiones según el efecto del estilo."""
        frames = max(1, round(clip_duration * FPS))
        progress = f"min(on/{frames},1)"
        motion = self.style.preset.motion

        if motion is MotionEffect.ZOOM_IN:
            zoom = f"1+{format_number(ZOOM_AMOUNT)}*{progress}"
            x, y = "iw/2-(iw/zoom/2)", "ih/2-(ih/zoom/2)"
        elif motion is MotionEffect.ANCHOR_ZOOM:
            ax, ay = ANCHORS[self.rng.choice(list(ANCHORS))]
            zoom = f"1+{format_number(ZOOM_AMOUNT)}*{progress}"
            x = f"(iw-iw/zoom)*{format_number(ax)}"
            y = f"(ih-ih/zoom)*{format_number(ay)}"
        else:
            ax, ay = ANCHORS[self.rng.choice(CORNERS)]
            zoom = format_number(PAN_ZOOM)
            x = f"(iw-iw/zoom)*(0.5+{format_number(ax - 0.5)}*{progress})"
            y = f"(ih-ih/zoom)*(0.5+{format_number(ay - 0.5)}*{progress})"

        return Filter.of("zoompan", z=zoom, x=x, y=y, d=1, s=f"{self.width}x{self.height}", fps=FPS)

    def segment_filters(self, clip_duration: float) -> List[Filter]:
        """Escala a 2x, recorte centrado, movimiento y recorte temporal."""
        work_w, work_h = self.width * 2, self.height * 2
        return [
            Filter.of("scale", work_w, work_h, force_original_aspect_ratio="increase"),
            Filter.of("crop", work_w, work_h),
            Filter.of("setsar", 1),
            Filter.of("fps", FPS),
            self.motion_filter(clip_duration),
            Filter.of("trim", duration=clip_duration),
            Filter.of("setpts", "PTS-STARTPTS"),
        ]

    @staticmethod
    def input_args(segment: VisualSegment, clip_duration: float) -> List[str]:
        duration = format_number(clip_duration)
        if segment.asset_type is AssetType.IMAGE:
            return ["-loop", "1", "-framerate", str(FPS), "-t", duration, "-i", segment.asset_path]
        return ["-stream_loop", "-1", "-t", duration, "-i", segment.asset_path]

    # -- Grafo --

    def _stitch(self, graph: FilterGraph, labels: List[str], transitions: List[Transition]) -> str:
        if len(labels) == 1:
            return labels[0]

        if not transitions:
            graph.add(labels, [Filter.of("concat", n=len(labels), v=1, a=0)], ["vcat"])
            return "vcat"

        current = labels[0]
        for transition in transitions:
            target = f"xf{transition.index}"
            graph.add(
                [current, labels[transition.index]],
                [Filter.of(
                    "xfade",
                    transition="fade",
                    duration=transition.duration,
                    offset=transition.offset,
                )],
                [target],
            )
            current = target
        return current

    def _progress_bar(self, graph: FilterGraph, current: str, bar: ProgressBar) -> str:
        size = f"{self.width}x{bar.height}"
        total = format_number(bar.total_duration)
        graph.add([], [Filter.of("color", c=f"0x{bar.track_color}", s=size, r=FPS, d=bar.total_duration)], ["pbtrack"])
        graph.add([], [Filter.of("color", c=f"0x{bar.fill_color}", s=size, r=FPS, d=bar.total_duration)], ["pbfill"])
        graph.add([current, "pbtrack"], [Filter.of("overlay", x=0, y=bar.y)], ["vpbt"])
        graph.add(
            ["vpbt", "pbfill"],
            [Filter.of("overlay", x=f"-w+w*min(t/{total},1)", y=bar.y, eval="frame")],
            ["vpb"],
        )
        return "vpb"

    def build_graph(
        self,
        segments: Sequence[VisualSegment],
        clip_durations: Sequence[float],
        transitions: List[Transition],
        subtitles_path: Optional[str],
        watermark_input: Optional[int],
        progress_bar: Optional[ProgressBar],
    ) -> FilterGraph:
        graph = FilterGraph()
        labels = []
        for index, clip_duration in enumerate(clip_durations):
            label = f"v{index}"
            graph.add([f"{index}:v"], self.segment_filters(clip_duration), [label])
            labels.append(label)

        current = self._stitch(graph, labels, transitions)

        if subtitles_path:
            options = {"filename": escape_filter_path(subtitles_path)}
            if self.fonts_dir:
                options["fontsdir"] = escape_filter_path(self.fonts_dir)
            graph.add([current], [Filter("ass", options=options)], ["vsub"])
            current = "vsub"

        if watermark_input is not None:
            graph.add(
                [f"{watermark_input}:v"],
                [
                    Filter.of("scale", round(self.width * WATERMARK_WIDTH_RATIO), -1),
                    Filter.of("format", "rgba"),
                    Filter.of("colorchannelmixer", aa=WATERMARK_OPACITY),
                ],
                ["wm"],
            )
            graph.add(
                [current, "wm"],
                [Filter.of("overlay", x=f"W-w-{WATERMARK_MARGIN}", y=f"H-h-{WATERMARK_MARGIN}")],
                ["vwm"],
            )
            current = "vwm"

        if progress_bar is not None:
            current = self._progress_bar(graph, current, progress_bar)

        graph.add([current], [Filter.of("format", "yuv420p")], ["vout"])
        return graph

    def build(
        self,
        timeline: Timeline,
        audio_path: str,
        output_path: str,
        subtitles_path: Optional[str] = None,
        watermark_path: Optional[str] = None,
        progress_bar: Optional[ProgressBar] = None,
    ) -> RenderJob:
        """
        Comando completo de FFmpeg para el timeline.

        Args:
            timeline: Timeline reconciliado
            audio_path: Pista de audio ya rellenada a TotalDuration
            output_path: Archivo MP4 de salida
            subtitles_path: Documento ASS a quemar
            watermark_path: Logo para la marca de agua
            progress_bar: Barra de progreso a superponer al final

        Returns:
            RenderJob con el comando y el grafo serializado
        """
        segments = list(timeline.segments)
        durations = [segment.effective_duration for segment in segments]
        fixed = self.transition_seconds if self.style.preset.stitching is Stitching.CROSSFADE else 0.0
        clip_durations, transitions = plan_transitions(durations, fixed)

        inputs: List[str] = []
        for segment, clip_duration in zip(segments, clip_durations):
            inputs.extend(self.input_args(segment, clip_duration))

        audio_input = len(segments)
        inputs.extend(["-i", audio_path])

        watermark_input = None
        if watermark_path:
            watermark_input = audio_input + 1
            inputs.extend(["-loop", "1", "-framerate", str(FPS), "-t", format_number(timeline.total_duration), "-i", watermark_path])

        graph = self.build_graph(segments, clip_durations, transitions, subtitles_path, watermark_input, progress_bar)
        external = [f"{index}:v" for index in range(len(segments))]
        if watermark_input is not None:
            external.append(f"{watermark_input}:v")
        graph.validate(external, ["vout"])
        graph_text = graph.serialize()

        encoding = self.style.encoding
        command = [
            self.ffmpeg_bin, "-y", "-hide_banner",
            *inputs,
            "-filter_complex", graph_text,
            "-map", "[vout]",
            "-map", f"{audio_input}:a",
            "-r", str(FPS),
            "-c:v", "libx264",
            "-preset", "medium",
            "-crf", str(encoding.crf),
            "-maxrate", encoding.maxrate,
            "-bufsize", encoding.bufsize,
            "-g", str(FPS * GOP_SECONDS),
            "-keyint_min", str(FPS * GOP_SECONDS),
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", encoding.audio_bitrate,
            "-movflags", "+faststart",
            "-t", format_number(timeline.total_duration),
            "-progress", "pipe:1",
            "-nostats",
            str(output_path),
        ]

        logger.info(
            f"Grafo: {len(segments)} segmentos, {len(transitions)} transiciones, "
            f"{self.width}x{self.height}, CRF {encoding.crf}"
        )
        logger.debug(f"filter_complex: {graph_text}")
        return RenderJob(
            command=command,
            graph=graph_text,
            total_duration=timeline.total_duration,
            output_path=str(output_path),
        )

"""
Constructor del timeline.

Calcula UNA sola vez el TotalDuration del trabajo y deriva de él los
segmentos visuales y la lista de palabras. Ningún consumidor posterior
recalcula tiempos por su cuenta.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..captions.words import cap_words, derive_words
from ..domain.models import (
    MIN_DURATION,
    MaterializedAsset,
    SceneDescriptor,
    VisualSegment,
    Word,
    safe_duration,
)
from ..errors import EmptyTimelineError, NoAssetsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Timeline:
    """Timeline canónico de un render."""

    total_duration: float
    voiceover_duration: float
    segments: Tuple[VisualSegment, ...]
    words: Tuple[Word, ...]

    @property
    def segments_duration(self) -> float:
        return sum(segment.effective_duration for segment in self.segments)


class TimelineBuilder:
    """Reconcilia duración de voiceover, escenas y palabras."""

    def __init__(self, trailing_buffer_seconds: float = 0.5):
        """
        Args:
            trailing_buffer_seconds: Margen tras el último subtítulo
        """
        self.trailing_buffer_seconds = max(0.0, trailing_buffer_seconds)

    def caption_span(self, scenes: Sequence[SceneDescriptor], words: Sequence[Word]) -> float:
        """Fin del último segmento o palabra, más el margen final."""
        ends = [scene.segment_end for scene in scenes]
        ends.extend(word.end for word in words)
        latest = max((end for end in ends if math.isfinite(end)), default=0.0)
        return max(latest, 0.0) + self.trailing_buffer_seconds

    def total_duration(
        self,
        voiceover_duration: float,
        scenes: Sequence[SceneDescriptor],
        words: Sequence[Word],
    ) -> float:
        """TotalDuration = max(voiceover, caption span)."""
        voiceover = safe_duration(voiceover_duration, "duración de voiceover")
        return max(voiceover, self.caption_span(scenes, words))

    def build_segments(
        self,
        scenes: Sequence[SceneDescriptor],
        assets: Sequence[Optional[MaterializedAsset]],
        total_duration: float,
    ) -> List[VisualSegment]:
        """
        Segmentos visuales cuya suma es exactamente total_duration.

        Todos conservan su duración declarada salvo el último, que se estira
        hasta completar. Si el acumulado alcanza el total antes, se recorta
        el segmento que desborda y se descartan los siguientes (truncado
        "last-wins"). La duración de una escena sin asset se suma al
        segmento anterior que sobrevivió (o al siguiente si no hay anterior).
        """
        if not scenes:
            raise EmptyTimelineError("La API no devolvió escenas")
        if len(scenes) != len(assets):
            raise ValueError(f"Se esperaban {len(scenes)} assets, llegaron {len(assets)}")

        kept: List[List] = []
        pending = 0.0
        for index, (scene, asset) in enumerate(zip(scenes, assets)):
            duration = safe_duration(scene.declared_duration, f"duración de escena {index}")
            if asset is None:
                if kept:
                    kept[-1][1] += duration
                else:
                    pending += duration
                continue
            kept.append([asset, duration + pending])
            pending = 0.0

        if not kept:
            raise NoAssetsError("No quedan assets visuales para el timeline")

        segments: List[VisualSegment] = []
        elapsed = 0.0
        for position, (asset, duration) in enumerate(kept):
            remaining = total_duration - elapsed
            is_last = position == len(kept) - 1

            if is_last or duration >= remaining - MIN_DURATION:
                if not is_last:
                    dropped = len(kept) - position - 1
                    logger.warning(
                        f"Segmento {position} desborda la duración total; recortado a "
                        f"{remaining:.3f}s y {dropped} segmento(s) descartado(s)"
                    )
                elif remaining < duration:
                    logger.warning(
                        f"Último segmento recortado de {duration:.3f}s a {remaining:.3f}s"
                    )
                segments.append(
                    VisualSegment(
                        asset_path=asset.path,
                        asset_type=asset.asset_type,
                        effective_duration=remaining,
                        position=position,
                    )
                )
                break

            segments.append(
                VisualSegment(
                    asset_path=asset.path,
                    asset_type=asset.asset_type,
                    effective_duration=duration,
                    position=position,
                )
            )
            elapsed += duration

        return segments

    def build(
        self,
        voiceover_duration: float,
        scenes: Sequence[SceneDescriptor],
        assets: Sequence[Optional[MaterializedAsset]],
    ) -> Timeline:
        """
        Construye el timeline completo.

        Args:
            voiceover_duration: Duración medida del voiceover
            scenes: Escenas de la API, en orden
            assets: Assets materializados alineados 1:1 con las escenas (None = perdido)

        Returns:
            Timeline con TotalDuration, segmentos y palabras
        """
        if not scenes:
            raise EmptyTimelineError("La API no devolvió escenas")

        voiceover = safe_duration(voiceover_duration, "duración de voiceover")
        words = derive_words(scenes)
        total = self.total_duration(voiceover, scenes, words)
        segments = self.build_segments(scenes, assets, total)
        words = cap_words(words, total)

        logger.info(
            f"Timeline: total {total:.2f}s (voiceover {voiceover:.2f}s), "
            f"{len(segments)} segmentos, {len(words)} palabras"
        )
        return Timeline(
            total_duration=total,
            voiceover_duration=voiceover,
            segments=tuple(segments),
            words=tuple(words),
        )

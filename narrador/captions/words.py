"""
Derivación de la lista canónica de palabras.

Una única pasada secuencial garantiza orden monótono, separación mínima
entre palabras y duración mínima por palabra, sin importar el ruido de la
fuente de timestamps.
"""

import logging
import math
from typing import Iterable, List, Optional

from ..domain.models import SceneDescriptor, Word

logger = logging.getLogger(__name__)

WORD_GAP = 0.005
MIN_WORD_DURATION = 0.1


def _finite(value: float, fallback: float) -> float:
    return value if math.isfinite(value) else fallback


def synthesize_words(scene: SceneDescriptor) -> List[Word]:
    """Reparte la ventana [start, end) de la escena entre sus palabras."""
    tokens = scene.text.split()
    if not tokens:
        return []
    start = _finite(scene.segment_start, 0.0)
    end = _finite(scene.segment_end, start)
    span = max(end - start, 0.0)
    step = span / len(tokens)
    return [
        Word(text=token, start=start + index * step, end=start + (index + 1) * step)
        for index, token in enumerate(tokens)
    ]


def scene_words(scene: SceneDescriptor) -> List[Word]:
    """Palabras de una escena: timestamps de la API o sintetizadas."""
    if scene.words:
        words = []
        for timing in scene.words:
            text = timing.word.strip()
            if not text:
                continue
            start = _finite(timing.start, scene.segment_start)
            end = _finite(timing.end, start)
            words.append(Word(text=text, start=start, end=end))
        if words:
            return words
    return synthesize_words(scene)


def repair_words(words: Iterable[Word]) -> List[Word]:
    """
    Ordena por inicio y aplica la pasada de reparación hacia adelante:
    start_i = max(start_i, end_{i-1} + ε); end_i = max(start_i + 0.1, end_i).
    """
    ordered = sorted(words, key=lambda word: word.start)
    repaired: List[Word] = []
    for word in ordered:
        start = max(word.start, 0.0)
        if repaired:
            start = max(start, repaired[-1].end + WORD_GAP)
        end = max(start + MIN_WORD_DURATION, word.end)
        repaired.append(Word(text=word.text, start=start, end=end))
    return repaired


def cap_words(words: Iterable[Word], total_duration: float) -> List[Word]:
    """Recorta cada fin a TotalDuration y descarta las palabras que quedan vacías."""
    capped = []
    dropped = 0
    for word in words:
        end = min(word.end, total_duration)
        if word.start >= end:
            dropped += 1
            continue
        capped.append(Word(text=word.text, start=word.start, end=end))
    if dropped:
        logger.warning(f"{dropped} palabras quedaron fuera de la duración total ({total_duration:.2f}s)")
    return capped


def derive_words(
    scenes: Iterable[SceneDescriptor],
    total_duration: Optional[float] = None,
) -> List[Word]:
    """
    Lista canónica de palabras para todas las escenas.

    Args:
        scenes: Escenas en orden
        total_duration: Si se indica, se recortan los fines a este valor

    Returns:
        Palabras ordenadas, sin solapamientos
    """
    words: List[Word] = []
    for scene in scenes:
        words.extend(scene_words(scene))
    repaired = repair_words(words)
    if total_duration is None:
        return repaired
    return cap_words(repaired, total_duration)

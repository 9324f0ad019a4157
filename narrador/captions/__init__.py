"""Motor de layout y temporización de subtítulos palabra por palabra."""

from .layout import (
    CaptionTrack,
    PlacedWord,
    ProgressBar,
    Slide,
    SlideLayout,
    group_slides,
    layout_captions,
    layout_words,
    place_slide,
    progress_fraction,
    text_width,
)
from .words import derive_words, repair_words

__all__ = [
    "CaptionTrack",
    "PlacedWord",
    "ProgressBar",
    "Slide",
    "SlideLayout",
    "derive_words",
    "group_slides",
    "layout_captions",
    "layout_words",
    "place_slide",
    "progress_fraction",
    "repair_words",
    "text_width",
]

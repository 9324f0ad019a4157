"""Modelos de dominio del renderizador."""

from .models import (
    AssetType,
    ContentResponse,
    MaterializedAsset,
    RenderRequest,
    RenderResult,
    SceneDescriptor,
    VisualSegment,
    Word,
    WordTiming,
)
from .styles import CaptionMode, MotionEffect, Stitching, StyleConfig, StyleId

__all__ = [
    "AssetType",
    "CaptionMode",
    "ContentResponse",
    "MaterializedAsset",
    "MotionEffect",
    "RenderRequest",
    "RenderResult",
    "SceneDescriptor",
    "Stitching",
    "StyleConfig",
    "StyleId",
    "VisualSegment",
    "Word",
    "WordTiming",
]

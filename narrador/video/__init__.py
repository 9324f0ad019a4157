from .compositor import CompositeBuilder, RenderJob, plan_transitions
from .graph import Filter, FilterChain, FilterGraph
from .renderer import Encoder
from .subtitles import SubtitleDocument

__all__ = [
    "CompositeBuilder",
    "Encoder",
    "Filter",
    "FilterChain",
    "FilterGraph",
    "RenderJob",
    "SubtitleDocument",
    "plan_transitions",
]

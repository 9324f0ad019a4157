from .builder import Timeline, TimelineBuilder

__all__ = ["Timeline", "TimelineBuilder"]

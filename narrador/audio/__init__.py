from .engine import AudioEngine, probe_voiceover

__all__ = ["AudioEngine", "probe_voiceover"]

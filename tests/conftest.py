import pytest

from narrador.domain.models import AssetType, MaterializedAsset, SceneDescriptor
from narrador.domain.styles import StyleConfig


def make_scene(start, end, text="", url=None, words=None, duration=None, asset_type=AssetType.VIDEO):
    return SceneDescriptor(
        asset_url=url or f"https://cdn.test/scene_{start}.mp4",
        asset_type=asset_type,
        segment_start=start,
        segment_end=end,
        segment_duration=duration,
        text=text,
        words=words or [],
    )


def make_asset(index, asset_type=AssetType.VIDEO):
    suffix = ".mp4" if asset_type is AssetType.VIDEO else ".jpg"
    return MaterializedAsset(
        url=f"https://cdn.test/{index}{suffix}",
        path=f"/tmp/asset_{index:03d}{suffix}",
        asset_type=asset_type,
        size_bytes=1024,
    )


@pytest.fixture
def round_trip_scenes():
    return [
        make_scene(0, 2, "hello world"),
        make_scene(2, 5, "goodbye now friend"),
    ]


@pytest.fixture
def style():
    return StyleConfig(words_per_line=2)

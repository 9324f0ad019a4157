import pytest

from narrador.errors import EmptyTimelineError, NoAssetsError
from narrador.timeline import TimelineBuilder

from .conftest import make_asset, make_scene


def durations(segments):
    return [segment.effective_duration for segment in segments]


class TestTotalDuration:
    def test_trailing_buffer_extends_past_voiceover(self, round_trip_scenes):
        timeline = TimelineBuilder(0.5).build(5.0, round_trip_scenes, [make_asset(0), make_asset(1)])
        assert timeline.total_duration == pytest.approx(5.5)
        assert timeline.voiceover_duration == pytest.approx(5.0)

    def test_voiceover_longer_than_captions_wins(self, round_trip_scenes):
        timeline = TimelineBuilder(0.5).build(8.0, round_trip_scenes, [make_asset(0), make_asset(1)])
        assert timeline.total_duration == pytest.approx(8.0)

    def test_invalid_voiceover_duration_is_clamped(self, round_trip_scenes):
        builder = TimelineBuilder(0.0)
        assert builder.total_duration(float("nan"), round_trip_scenes, []) == pytest.approx(5.0)


class TestSegments:
    def test_segments_sum_to_total(self, round_trip_scenes):
        timeline = TimelineBuilder(0.5).build(5.0, round_trip_scenes, [make_asset(0), make_asset(1)])
        assert durations(timeline.segments) == pytest.approx([2.0, 3.5])
        assert timeline.segments_duration == pytest.approx(timeline.total_duration)

    def test_lost_asset_folds_into_previous_segment(self):
        scenes = [make_scene(0, 2), make_scene(2, 4), make_scene(4, 6)]
        segments = TimelineBuilder(0.0).build_segments(scenes, [make_asset(0), None, make_asset(2)], 6.0)
        assert durations(segments) == pytest.approx([4.0, 2.0])
        assert [segment.asset_path for segment in segments] == [make_asset(0).path, make_asset(2).path]

    def test_lost_first_asset_folds_into_next_segment(self):
        scenes = [make_scene(0, 2), make_scene(2, 5)]
        segments = TimelineBuilder(0.0).build_segments(scenes, [None, make_asset(1)], 5.0)
        assert durations(segments) == pytest.approx([5.0])

    def test_overshoot_clips_and_drops_the_rest(self):
        scenes = [make_scene(0, 2), make_scene(2, 4), make_scene(4, 6)]
        assets = [make_asset(0), make_asset(1), make_asset(2)]
        segments = TimelineBuilder(0.0).build_segments(scenes, assets, 3.0)
        assert durations(segments) == pytest.approx([2.0, 1.0])
        assert sum(durations(segments)) == pytest.approx(3.0)

    def test_last_segment_stretches(self):
        scenes = [make_scene(0, 1), make_scene(1, 2)]
        segments = TimelineBuilder(0.0).build_segments(scenes, [make_asset(0), make_asset(1)], 7.0)
        assert durations(segments) == pytest.approx([1.0, 6.0])

    def test_negative_duration_is_clamped(self):
        scenes = [make_scene(0, 2, duration=-1.0), make_scene(2, 4)]
        segments = TimelineBuilder(0.0).build_segments(scenes, [make_asset(0), make_asset(1)], 2.1)
        assert durations(segments) == pytest.approx([0.1, 2.0])

    def test_positions_are_sequential(self):
        scenes = [make_scene(i, i + 1) for i in range(4)]
        segments = TimelineBuilder(0.0).build_segments(scenes, [make_asset(i) for i in range(4)], 4.0)
        assert [segment.position for segment in segments] == [0, 1, 2, 3]

    def test_zero_scenes_is_fatal(self):
        with pytest.raises(EmptyTimelineError):
            TimelineBuilder().build(5.0, [], [])

    def test_all_assets_lost_is_fatal(self, round_trip_scenes):
        with pytest.raises(NoAssetsError):
            TimelineBuilder().build(5.0, round_trip_scenes, [None, None])

    def test_misaligned_assets_rejected(self, round_trip_scenes):
        with pytest.raises(ValueError):
            TimelineBuilder().build_segments(round_trip_scenes, [make_asset(0)], 5.0)


def test_words_capped_to_total():
    scenes = [make_scene(0, 2, "one two three")]
    timeline = TimelineBuilder(0.0).build(1.0, scenes, [make_asset(0)])
    assert timeline.total_duration == pytest.approx(2.0)
    assert all(word.end <= timeline.total_duration for word in timeline.words)
    assert [word.text for word in timeline.words] == ["one", "two", "three"]

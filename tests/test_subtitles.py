import re

from narrador.captions import layout_captions
from narrador.domain.styles import StyleConfig
from narrador.video.subtitles import (
    SubtitleDocument,
    ass_color,
    escape_text,
    format_time,
    inline_color,
)


def dialogue_lines(text):
    return [line for line in text.splitlines() if line.startswith("Dialogue:")]


def test_format_time():
    assert format_time(0) == "0:00:00.00"
    assert format_time(1.5) == "0:00:01.50"
    assert format_time(3661.25) == "1:01:01.25"


def test_colors_are_bgr():
    assert ass_color("FF8800") == "&H000088FF"
    assert ass_color("000000", 0x80) == "&H80000000"
    assert inline_color("FF8800") == "&H0088FF&"


def test_escape_text_blocks_override_tags():
    assert escape_text("{\\b1}hi") == "(/b1)hi"


def test_header_uses_output_canvas(round_trip_scenes):
    style = StyleConfig(resolution="720p", orientation="landscape", font_family="Poppins")
    document = SubtitleDocument.from_track(layout_captions(round_trip_scenes, 5.5, style))
    text = document.render()
    assert "PlayResX: 1280" in text
    assert "PlayResY: 720" in text
    assert "Style: Default,Poppins,100," in text


def test_word_boxes_have_highlight_layer(round_trip_scenes):
    style = StyleConfig(style_id="style_1", words_per_line=2, highlight_color="#FF00FF")
    document = SubtitleDocument.from_track(layout_captions(round_trip_scenes, 5.5, style))

    static = [event for event in document.events if event.layer == 1]
    boxes = [event for event in document.events if event.layer == 0]
    assert len(static) == 5
    assert len(boxes) == 5
    assert all("\\p1" in event.text and "\\t(0," in event.text for event in boxes)
    assert all("\\1c&HFF00FF&" in event.text for event in boxes)
    # la caja de cada palabra vive dentro de su slide
    assert boxes[0].start == 0.0
    assert boxes[0].end <= static[0].end


def test_karaoke_sweep_covers_slide(round_trip_scenes):
    style = StyleConfig(style_id="style_2", words_per_line=2)
    document = SubtitleDocument.from_track(layout_captions(round_trip_scenes, 5.5, style))
    lines = dialogue_lines(document.render())

    assert len(lines) == 3
    first = lines[0]
    assert "\\kf" in first
    assert first.startswith("Dialogue: 1,0:00:00.00,0:00:02.00,")
    total_cs = sum(int(value) for value in re.findall(r"\\kf?(\d+)", first))
    assert total_cs == 200


def test_static_mode_when_animation_disabled(round_trip_scenes):
    style = StyleConfig(words_per_line=2, animation_enabled=False)
    document = SubtitleDocument.from_track(layout_captions(round_trip_scenes, 5.5, style))
    assert len(document.events) == 3
    assert all("\\kf" not in event.text and "\\p1" not in event.text for event in document.events)
    assert document.events[0].text.endswith("hello world")


def test_save_writes_file(tmp_path, round_trip_scenes, style):
    document = SubtitleDocument.from_track(layout_captions(round_trip_scenes, 5.5, style))
    path = document.save(str(tmp_path / "sub" / "captions.ass"))
    content = path.read_text(encoding="utf-8")
    assert content.startswith("[Script Info]")
    assert len(dialogue_lines(content)) == len(document.events)


def test_empty_events_are_dropped(style):
    document = SubtitleDocument(1080, 1920, style)
    document.add_event(1, 2.0, 2.0, "nada")
    assert document.events == []

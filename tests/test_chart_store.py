import json

import pytest

import chart_store
from chart_store import ChartFileParseError, ChartFileValidationError
from demo_charts import build_demo_chart


def chart_payload(**overrides):
    payload = {
        "metadata": {
            "title": "Store Test",
            "artist": "Tester",
            "bpm": 120,
            "subdivision": 4,
            "beatsPerMeasure": 4,
            "offset": 3.0,
        },
        "audio": {"music": "song.ogg"},
        "charts": {
            "Easy": {"level": 2, "measures": [{"topLane": "1000", "bottomLane": "0010"}]},
            "hard": {
                "level": 8,
                "measures": [
                    {"topLane": "1010", "bottomLane": "0101"},
                    {"topLane": "1010", "bottomLane": "0101"},
                ],
            },
        },
    }
    payload.update(overrides)
    return payload


def write(tmp_path, payload, name="chart.json"):
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_chart_file(tmp_path):
    path = write(tmp_path, chart_payload())

    loaded = chart_store.load_chart_file(path, "EASY")

    assert loaded.level == 2
    assert loaded.source_path == path
    assert loaded.difficulties == ["easy", "hard"]
    assert loaded.music_path == "song.ogg"
    chart = loaded.chart
    assert chart.title == "Store Test"
    assert chart.offset_seconds == 3.0
    assert chart.difficulty == "easy"
    assert chart.measures[0].top_lane == "1000"


def test_missing_difficulty_lists_available(tmp_path):
    path = write(tmp_path, chart_payload())
    with pytest.raises(ChartFileValidationError, match="expert"):
        chart_store.load_chart_file(path, "expert")


def test_blank_difficulty_is_rejected():
    with pytest.raises(ValueError):
        chart_store.normalize_difficulty("   ")


@pytest.mark.parametrize(
    "text",
    ["{not json", "[1, 2]", json.dumps({"metadata": {"title": "x"}, "charts": {}})],
)
def test_malformed_files_raise_parse_errors(tmp_path, text):
    path = tmp_path / "bad.json"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ChartFileParseError):
        chart_store.load_chart_file(path, "easy")


def test_missing_file_raises_parse_error(tmp_path):
    with pytest.raises(ChartFileParseError):
        chart_store.load_chart_file(tmp_path / "missing.json", "easy")


def test_empty_lane_pattern_is_rejected():
    payload = chart_payload(charts={"easy": {"measures": [{"topLane": "", "bottomLane": "0000"}]}})
    with pytest.raises(ChartFileParseError):
        chart_store.chart_from_data(payload, "easy")


def test_load_chart_info_uses_longest_difficulty(tmp_path):
    path = write(tmp_path, chart_payload())

    info = chart_store.load_chart_info(path)

    assert info.title == "Store Test"
    assert info.difficulties == ["easy", "hard"]
    assert info.duration_seconds == pytest.approx(4.0)
    assert info.level == 2


def test_load_chart_info_rejects_non_positive_bpm(tmp_path):
    payload = chart_payload()
    payload["metadata"]["bpm"] = 0
    path = write(tmp_path, payload)
    with pytest.raises(ChartFileValidationError):
        chart_store.load_chart_info(path)


def test_save_then_load_preserves_chart(tmp_path):
    chart = build_demo_chart(difficulty="holds")
    path = tmp_path / "nested" / "holds.json"

    chart_store.save_chart_file(path, chart)
    loaded = chart_store.load_chart_file(path, "holds")

    assert loaded.chart == chart
    assert loaded.level == 1


def test_chart_to_data_uses_default_levels():
    chart = build_demo_chart(difficulty="hard")
    data = chart_store.chart_to_data(chart)

    assert data["charts"]["hard"]["level"] == chart_store.default_level_for("hard") == 7
    assert data["metadata"]["beatsPerMeasure"] == 4
    assert data["charts"]["hard"]["measures"][0]["effects"] == "0" * 16

import json

import pytest

import config as config_module

ENV_NAMES = (
    "LANEBEAT_CONFIG_PATH",
    "LANEBEAT_TRAVEL_TIME_MS",
    "LANEBEAT_AV_OFFSET_MS",
    "LANEBEAT_TICK_INTERVAL_MS",
    "LANEBEAT_MIN_SEPARATION_MS",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "_default_config_candidates", lambda: [])


def write_config(tmp_path, payload):
    path = tmp_path / "lanebeat_config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_without_a_file():
    config, path = config_module.load_config()

    assert path is None
    assert config.geometry.travel_time_ms == 3000.0
    assert config.judgement.perfect_ms == 90.0
    assert config.scoring.tap_scores["perfect"] == 300
    assert config.chart_rules.min_separation_ms == 100.0


def test_default_windows_convert_to_track_units():
    geometry = config_module.GeometryConfig()
    assert geometry.travel_distance == 1000.0
    assert geometry.ms_to_units(90.0) == 30.0
    assert geometry.ms_to_units(300.0) == 100.0


def test_file_values_are_loaded(tmp_path):
    path = write_config(tmp_path, {"geometry": {"travel_time_ms": 2000}, "clock": {"av_offset_ms": -25}})

    config, resolved = config_module.load_config(path)

    assert resolved == path
    assert config.geometry.travel_time_ms == 2000.0
    assert config.clock.av_offset_ms == -25.0


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"judgement": {"overrun_ms": 400}})
    monkeypatch.setenv("LANEBEAT_CONFIG_PATH", str(path))

    config, resolved = config_module.load_config()

    assert resolved == path
    assert config.judgement.overrun_ms == 400.0


def test_environment_overrides_file_values(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"geometry": {"travel_time_ms": 2000}})
    monkeypatch.setenv("LANEBEAT_TRAVEL_TIME_MS", "2500")
    monkeypatch.setenv("LANEBEAT_TICK_INTERVAL_MS", "8")
    monkeypatch.setenv("LANEBEAT_MIN_SEPARATION_MS", "not-a-number")

    config, _ = config_module.load_config(path)

    assert config.geometry.travel_time_ms == 2500.0
    assert config.clock.tick_interval_ms == 8
    assert config.chart_rules.min_separation_ms == 100.0


def test_invalid_json_is_reported(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="not valid JSON"):
        config_module.load_config(path)


def test_non_object_root_is_rejected(tmp_path):
    path = write_config(tmp_path, [1, 2, 3])
    with pytest.raises(ValueError, match="root must be a JSON object"):
        config_module.load_config(path)


@pytest.mark.parametrize(
    "payload",
    [
        {"judgement": {"perfect_ms": 200, "great_ms": 100}},
        {"geometry": {"spawn_position": 50, "hit_zone_position": 100}},
        {"geometry": {"travel_time_ms": 0}},
        {"scoring": {"tap_scores": {"perfect": 300}}},
    ],
)
def test_validation_errors_name_the_source(tmp_path, payload):
    path = write_config(tmp_path, payload)
    with pytest.raises(ValueError, match="Config validation failed"):
        config_module.load_config(path)


def test_score_table_keys_are_normalized():
    scoring = config_module.ScoringConfig(tap_scores={"PERFECT": 1, " Great ": 2, "good": 3, "miss": 0})
    assert scoring.tap_scores == {"perfect": 1, "great": 2, "good": 3, "miss": 0}


def test_to_json_round_trips_through_the_model():
    config = config_module.EngineConfig()
    restored = config_module.EngineConfig.model_validate(json.loads(config_module.to_json(config)))
    assert restored == config

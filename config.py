"""
config.py

Typed configuration loading and validation for Lanebeat.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included, so no file is required)
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)

Judgement windows are configured in milliseconds. The engine converts them to
track units through the travel velocity (travel_distance / travel_time_ms), so
judging fairness does not depend on how a presenter scales the track to pixels.

Config file location
- If LANEBEAT_CONFIG_PATH is set, that file is used.
- Otherwise Lanebeat searches these paths in order and uses the first one that exists:
  1) ./lanebeat_config.json (current working directory)
  2) <user config dir>/Lanebeat/Lanebeat/lanebeat_config.json
  3) <user config dir>/Lanebeat/Lanebeat/config.json
- If none exists, defaults are used.

Example config file (lanebeat_config.json)
{
  "geometry": {
    "travel_time_ms": 3000,
    "spawn_position": 1100,
    "hit_zone_position": 100
  },
  "judgement": {
    "perfect_ms": 90,
    "great_ms": 180,
    "good_ms": 270,
    "hit_window_ms": 300,
    "overrun_ms": 300
  },
  "clock": {
    "av_offset_ms": 0,
    "tick_interval_ms": 16
  }
}
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class GeometryConfig(BaseModel):
    travel_time_ms: float = Field(default=3000.0, gt=0, description="Time between a note's spawn and its hit time.")
    spawn_position: float = Field(default=1100.0, description="Track position where notes appear.")
    hit_zone_position: float = Field(default=100.0, description="Track position where notes are due.")

    @model_validator(mode="after")
    def validate_direction(self) -> "GeometryConfig":
        if self.spawn_position <= self.hit_zone_position:
            raise ValueError("spawn_position must be greater than hit_zone_position (notes travel toward lower positions)")
        return self

    @property
    def travel_distance(self) -> float:
        return float(self.spawn_position) - float(self.hit_zone_position)

    def ms_to_units(self, milliseconds: float) -> float:
        # Multiply first so whole-number configurations convert exactly.
        return float(milliseconds) * self.travel_distance / float(self.travel_time_ms)


class JudgementConfig(BaseModel):
    perfect_ms: float = Field(default=90.0, ge=0)
    great_ms: float = Field(default=180.0, ge=0)
    good_ms: float = Field(default=270.0, ge=0)
    hit_window_ms: float = Field(default=300.0, gt=0, description="Outer window for target selection.")
    overrun_ms: float = Field(default=300.0, gt=0, description="How far past the hit zone a note travels before it is missed.")

    @model_validator(mode="after")
    def validate_ordering(self) -> "JudgementConfig":
        if not (self.perfect_ms <= self.great_ms <= self.good_ms <= self.hit_window_ms):
            raise ValueError("judgement windows must satisfy perfect <= great <= good <= hit_window")
        return self


class ScoringConfig(BaseModel):
    tap_scores: Dict[str, int] = Field(default_factory=lambda: {"perfect": 300, "great": 200, "good": 100, "miss": 0})
    hold_bonus: Dict[str, int] = Field(default_factory=lambda: {"perfect": 500, "great": 300, "good": 100, "miss": 0})
    hold_great_ratio: float = Field(default=0.9, ge=0.0, le=1.0)
    hold_good_ratio: float = Field(default=0.7, ge=0.0, le=1.0)
    hold_tick_ms: float = Field(default=100.0, gt=0)
    hold_tick_points: int = Field(default=10, ge=0)

    @field_validator("tap_scores", "hold_bonus")
    @classmethod
    def validate_table(cls, value: Dict[str, int]) -> Dict[str, int]:
        normalized = {str(key).strip().lower(): int(points) for key, points in value.items()}
        required = {"perfect", "great", "good", "miss"}
        missing = required - set(normalized.keys())
        if missing:
            raise ValueError(f"score table is missing judgements: {sorted(missing)}")
        return normalized


class ClockConfig(BaseModel):
    av_offset_ms: float = Field(default=0.0, description="Added to song time to line visuals up with audio.")
    beat_tolerance: float = Field(default=0.95, gt=0.0, le=1.0)
    tick_interval_ms: int = Field(default=16, ge=1, le=1000)


class ChartRulesConfig(BaseModel):
    min_separation_ms: float = Field(default=100.0, ge=0, description="Minimum gap between onsets in one lane.")


class EngineConfig(BaseModel):
    geometry: GeometryConfig = Field(default_factory=GeometryConfig)
    judgement: JudgementConfig = Field(default_factory=JudgementConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    clock: ClockConfig = Field(default_factory=ClockConfig)
    chart_rules: ChartRulesConfig = Field(default_factory=ChartRulesConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("Lanebeat", "Lanebeat"))
    return [
        Path.cwd() / "lanebeat_config.json",
        config_directory / "lanebeat_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("LANEBEAT_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exception:
        raise OSError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - LANEBEAT_TRAVEL_TIME_MS
    - LANEBEAT_AV_OFFSET_MS
    - LANEBEAT_TICK_INTERVAL_MS
    - LANEBEAT_MIN_SEPARATION_MS
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            return section
        section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    geometry_section = ensure_nested(updated_config, "geometry")
    clock_section = ensure_nested(updated_config, "clock")
    chart_rules_section = ensure_nested(updated_config, "chart_rules")

    def override_float(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = float(value_text)
        except ValueError:
            return

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            return

    override_float("LANEBEAT_TRAVEL_TIME_MS", geometry_section, "travel_time_ms")
    override_float("LANEBEAT_AV_OFFSET_MS", clock_section, "av_offset_ms")
    override_int("LANEBEAT_TICK_INTERVAL_MS", clock_section, "tick_interval_ms")
    override_float("LANEBEAT_MIN_SEPARATION_MS", chart_rules_section, "min_separation_ms")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[EngineConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict: Dict[str, Any] = {}
    if resolved_path is not None:
        json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = EngineConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "(defaults)"
        raise ValueError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[EngineConfig, Optional[Path]]:
    return load_config()


def to_json(config: EngineConfig) -> str:
    return json.dumps(config.model_dump(), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        config, resolved_path = load_config()
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": json.loads(to_json(config)),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

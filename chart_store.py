# -*- coding: utf-8 -*-
########################
# chart_store.py
########################
# Purpose:
# - Read and write Lanebeat chart files (JSON).
# - Convert between the file layout and the internal gameplay_models.Chart representation.
#
# Design notes:
# - No Qt usage. Pure parsing and serialization.
# - File layout:
#     {
#       "metadata": {"title", "artist", "bpm", "subdivision", "beatsPerMeasure", "offset", "previewStart"},
#       "audio": {"music": "..."},
#       "charts": {"<difficulty>": {"level": int, "measures": [{"topLane", "bottomLane", "effects"}]}}
#     }
# - The file schema is checked with pydantic here. Musical rules (pattern length, alphabet,
#   holds, separation) stay in chart_engine.validate_chart so there is one source of truth.
# - Parsing never coerces a chart silently. Structural problems raise ChartFileParseError,
#   a missing difficulty raises ChartFileValidationError.
#
########################
# Interfaces:
# Public exceptions:
# - class ChartFileError(Exception)
# - class ChartFileParseError(ChartFileError)
# - class ChartFileValidationError(ChartFileError)
#
# Public dataclasses:
# - LoadedChart(chart: Chart, level: int, source_path: Optional[Path], difficulties: list[str], music_path: str)
# - ChartInfo(title, artist, bpm, difficulties, duration_seconds, level)
#
# Public functions:
# - normalize_difficulty(difficulty: str) -> str
# - chart_from_data(data: dict, difficulty: str, *, source_path=None) -> LoadedChart
# - load_chart_file(path: Path, difficulty: str) -> LoadedChart
# - load_chart_info(path: Path) -> ChartInfo
# - default_level_for(difficulty: str) -> int
# - chart_to_data(chart: Chart, *, level: Optional[int] = None) -> dict
# - save_chart_file(path: Path, chart: Chart, *, level: Optional[int] = None) -> None
#
########################

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gameplay_models import Chart, Measure

logger = logging.getLogger(__name__)


class ChartFileError(Exception):
    """Base error for chart file parsing and validation."""


class ChartFileParseError(ChartFileError):
    """Raised when the file cannot be parsed into the expected chart structure."""


class ChartFileValidationError(ChartFileError):
    """Raised when the file parses but cannot supply the requested chart."""


_DIFFICULTY_LEVELS = {
    "easy": 3,
    "normal": 5,
    "hard": 7,
    "expert": 9,
}


class _MetadataModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    artist: str
    bpm: float
    subdivision: int
    beats_per_measure: int = Field(alias="beatsPerMeasure")
    offset: float = 0.0
    preview_start: float = Field(default=0.0, alias="previewStart")


class _MeasureModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    top_lane: str = Field(alias="topLane", min_length=1)
    bottom_lane: str = Field(alias="bottomLane", min_length=1)
    effects: str = ""


class _DifficultyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: int = 1
    measures: List[_MeasureModel] = Field(min_length=1)


class _AudioModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    music: str = ""


class _ChartFileModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metadata: _MetadataModel
    audio: _AudioModel = Field(default_factory=_AudioModel)
    charts: Dict[str, _DifficultyModel] = Field(min_length=1)


@dataclass(frozen=True)
class LoadedChart:
    chart: Chart
    level: int
    source_path: Optional[Path]
    difficulties: List[str]
    music_path: str = ""


@dataclass(frozen=True)
class ChartInfo:
    title: str
    artist: str
    bpm: float
    difficulties: List[str]
    duration_seconds: float
    level: int


def normalize_difficulty(difficulty: str) -> str:
    difficulty_text = str(difficulty or "").strip().lower()
    if not difficulty_text:
        raise ValueError("Difficulty must be a non-empty name")
    return difficulty_text


def _parse_model(data: Any) -> _ChartFileModel:
    if not isinstance(data, dict):
        raise ChartFileParseError(f"Chart root must be a JSON object, got {type(data).__name__}")
    try:
        return _ChartFileModel.model_validate(data)
    except ValidationError as exc:
        raise ChartFileParseError(f"Chart file does not match the expected layout: {exc}") from exc


def _normalized_charts(model: _ChartFileModel) -> Dict[str, _DifficultyModel]:
    return {normalize_difficulty(name): chart for name, chart in model.charts.items()}


def chart_from_data(data: Dict[str, Any], difficulty: str, *, source_path: Optional[Path] = None) -> LoadedChart:
    model = _parse_model(data)
    charts = _normalized_charts(model)
    wanted = normalize_difficulty(difficulty)

    difficulty_model = charts.get(wanted)
    if difficulty_model is None:
        raise ChartFileValidationError(f"Difficulty {wanted!r} not found. Available: {sorted(charts)}")

    metadata = model.metadata
    chart = Chart(
        bpm=float(metadata.bpm),
        subdivision=int(metadata.subdivision),
        beats_per_measure=int(metadata.beats_per_measure),
        offset_seconds=float(metadata.offset),
        measures=tuple(
            Measure(top_lane=measure.top_lane, bottom_lane=measure.bottom_lane) for measure in difficulty_model.measures
        ),
        title=metadata.title,
        artist=metadata.artist,
        difficulty=wanted,
    )
    logger.info(
        "Loaded chart %r by %s (%s, %d measures)", metadata.title, metadata.artist, wanted, len(chart.measures)
    )
    return LoadedChart(
        chart=chart,
        level=int(difficulty_model.level),
        source_path=source_path,
        difficulties=sorted(charts),
        music_path=model.audio.music,
    )


def _read_json_utf8(file_path: Path) -> Any:
    try:
        raw_text = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ChartFileParseError(f"Chart file is not valid UTF-8: {file_path}") from exc
    except OSError as exc:
        raise ChartFileParseError(f"Failed to read chart file: {file_path}") from exc
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ChartFileParseError(f"Chart file is not valid JSON: {file_path}: {exc}") from exc


def load_chart_file(path: Path, difficulty: str) -> LoadedChart:
    chart_path = Path(path)
    return chart_from_data(_read_json_utf8(chart_path), difficulty, source_path=chart_path)


def load_chart_info(path: Path) -> ChartInfo:
    """Summary for listings. Duration comes from the longest difficulty."""
    model = _parse_model(_read_json_utf8(Path(path)))
    charts = _normalized_charts(model)
    metadata = model.metadata
    if metadata.bpm <= 0.0:
        raise ChartFileValidationError(f"bpm must be positive, got {metadata.bpm}")

    longest_measures = max(len(chart.measures) for chart in charts.values())
    duration_seconds = longest_measures * metadata.beats_per_measure / metadata.bpm * 60.0
    easy = charts.get("easy")

    return ChartInfo(
        title=metadata.title,
        artist=metadata.artist,
        bpm=float(metadata.bpm),
        difficulties=sorted(charts),
        duration_seconds=float(duration_seconds),
        level=int(easy.level) if easy is not None else 1,
    )


def default_level_for(difficulty: str) -> int:
    return _DIFFICULTY_LEVELS.get(normalize_difficulty(difficulty), 1)


def chart_to_data(chart: Chart, *, level: Optional[int] = None) -> Dict[str, Any]:
    difficulty = normalize_difficulty(chart.difficulty)
    level_value = int(level) if level is not None else default_level_for(difficulty)
    return {
        "metadata": {
            "title": chart.title,
            "artist": chart.artist,
            "bpm": float(chart.bpm),
            "subdivision": int(chart.subdivision),
            "beatsPerMeasure": int(chart.beats_per_measure),
            "offset": float(chart.offset_seconds),
            "previewStart": 0.0,
        },
        "charts": {
            difficulty: {
                "level": level_value,
                "measures": [
                    {
                        "topLane": measure.top_lane,
                        "bottomLane": measure.bottom_lane,
                        "effects": "0" * int(chart.subdivision),
                    }
                    for measure in chart.measures
                ],
            }
        },
    }


def save_chart_file(path: Path, chart: Chart, *, level: Optional[int] = None) -> None:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(chart_to_data(chart, level=level), indent=2, ensure_ascii=False)
    output_path.write_text(payload + "\n", encoding="utf-8")
    logger.info("Saved chart %r to %s", chart.title, output_path)

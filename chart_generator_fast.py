# -*- coding: utf-8 -*-
########################
# chart_generator_fast.py
########################
# Purpose:
# - Procedural, section-based chart generation for songs without a hand-made chart.
# - Adaptive difficulty transforms over an existing schedule.
#
# Design notes:
# - Deterministic: every random choice comes from random.Random seeded by a sha256 digest.
# - Pure functions. No engine state is read or written.
# - One pattern step per beat. Each section cycles its own pattern table from index 0 on
#   entry and resets the cycle at its pattern_change_every interval.
#
########################
# Interfaces:
# Public dataclasses:
# - SectionSpec(name, start_beat, end_beat, pattern_name, intensity, pattern_change_every)
# - PatternStep(top: bool, bottom: bool)
#
# Public functions:
# - default_pattern_tables() -> dict[str, tuple[PatternStep, ...]]
# - default_song_structure(total_beats: int, beats_per_section: int = 32) -> list[SectionSpec]
# - generate_section_schedule(*, duration_ms, bpm, travel_time_ms, ...) -> ChartSchedule
# - increase_difficulty(schedule, *, seed, chance=0.1, max_conversions=None) -> ChartSchedule
# - decrease_difficulty(schedule) -> ChartSchedule
# - adapt_schedule(schedule, *, player_accuracy, seed) -> ChartSchedule
# - seed_for(song_id, difficulty, generator_version=GENERATOR_VERSION) -> int
#
########################

from __future__ import annotations

import dataclasses
import hashlib
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from chart_engine import schedule_end_ms, split_negative_spawns
from gameplay_models import ChartNote, ChartSchedule, Lane, NoteType

logger = logging.getLogger(__name__)


GENERATOR_VERSION = "sections_v1"


@dataclass(frozen=True)
class PatternStep:
    top: bool
    bottom: bool

    def lanes(self) -> frozenset:
        lanes = set()
        if self.top:
            lanes.add(Lane.TOP)
        if self.bottom:
            lanes.add(Lane.BOTTOM)
        return frozenset(lanes)


@dataclass(frozen=True)
class SectionSpec:
    name: str
    start_beat: float
    end_beat: float
    pattern_name: str
    intensity: float
    pattern_change_every: int = 8

    def contains(self, beat: int) -> bool:
        return self.start_beat <= beat < self.end_beat


def _steps(*pairs: Tuple[int, int]) -> Tuple[PatternStep, ...]:
    return tuple(PatternStep(top=bool(top), bottom=bool(bottom)) for top, bottom in pairs)


def default_pattern_tables() -> Dict[str, Tuple[PatternStep, ...]]:
    return {
        # verses and intro
        "basic": _steps((1, 0), (0, 0), (0, 1), (0, 0), (1, 0), (0, 1), (0, 0), (0, 1)),
        # drops
        "intense": _steps((1, 0), (0, 1), (1, 0), (0, 1), (1, 1), (0, 0), (1, 0), (0, 1)),
        # second drop
        "complex": _steps((1, 0), (1, 0), (0, 1), (0, 0), (0, 1), (0, 1), (1, 1), (0, 0)),
        # breakdowns and outro
        "sparse": _steps((1, 0), (0, 0), (0, 0), (0, 1), (0, 0), (0, 0), (1, 0), (0, 0)),
        # builds toward a dual-lane peak
        "buildup": _steps((0, 0), (1, 0), (0, 0), (0, 1), (0, 0), (1, 0), (0, 1), (1, 1)),
    }


def default_song_structure(total_beats: int, beats_per_section: int = 32) -> List[SectionSpec]:
    block = float(beats_per_section)
    return [
        SectionSpec("intro", 0.0, block, "sparse", 0.3, 16),
        SectionSpec("verse1", block, block * 2, "basic", 0.5, 8),
        SectionSpec("buildup1", block * 2, block * 2.5, "buildup", 0.7, 4),
        SectionSpec("drop1", block * 2.5, block * 4, "intense", 1.0, 8),
        SectionSpec("breakdown1", block * 4, block * 5, "sparse", 0.4, 8),
        SectionSpec("verse2", block * 5, block * 6, "basic", 0.6, 8),
        SectionSpec("buildup2", block * 6, block * 6.5, "buildup", 0.8, 4),
        SectionSpec("drop2", block * 6.5, block * 8, "complex", 1.0, 8),
        SectionSpec("outro", block * 8, float(max(total_beats, int(block * 8))), "sparse", 0.3, 16),
    ]


def _section_for_beat(beat: int, structure: Sequence[SectionSpec]) -> SectionSpec:
    for section in structure:
        if section.contains(beat):
            return section
    return structure[-1]


def seed_for(song_id: str, difficulty: str, generator_version: str = GENERATOR_VERSION) -> int:
    payload = f"{song_id}|{(difficulty or '').strip().lower()}|{generator_version}".encode("utf-8")
    digest = hashlib.sha256(payload).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def generate_section_schedule(
    *,
    duration_ms: float,
    bpm: float,
    travel_time_ms: float,
    structure: Optional[Sequence[SectionSpec]] = None,
    pattern_tables: Optional[Dict[str, Tuple[PatternStep, ...]]] = None,
) -> ChartSchedule:
    if float(bpm) <= 0.0:
        raise ValueError(f"bpm must be positive, got {bpm}")
    if float(duration_ms) <= 0.0:
        raise ValueError(f"duration_ms must be positive, got {duration_ms}")

    beat_interval_ms = 60000.0 / float(bpm)
    total_beats = int(float(duration_ms) // beat_interval_ms)
    sections = list(structure) if structure is not None else default_song_structure(total_beats)
    tables = pattern_tables if pattern_tables is not None else default_pattern_tables()

    for section in sections:
        if section.pattern_name not in tables:
            raise ValueError(f"Section {section.name!r} uses unknown pattern table {section.pattern_name!r}")

    notes: List[ChartNote] = []
    current_section: Optional[SectionSpec] = None
    cycle_index = 0

    for beat in range(total_beats):
        section = _section_for_beat(beat, sections)
        if section is not current_section:
            current_section = section
            cycle_index = 0

        table = tables[section.pattern_name]
        step = table[cycle_index % len(table)]
        lanes = step.lanes()
        if lanes:
            hit_time_ms = beat * beat_interval_ms
            notes.append(
                ChartNote(
                    spawn_time_ms=hit_time_ms - float(travel_time_ms),
                    hit_time_ms=hit_time_ms,
                    lanes=lanes,
                    note_type=NoteType.NORMAL,
                    section=section.name,
                    intensity=float(section.intensity),
                )
            )

        cycle_index += 1
        if (beat + 1) % max(1, int(section.pattern_change_every)) == 0:
            cycle_index = 0

    kept, dropped = split_negative_spawns(notes)
    logger.info("Generated %d note(s) over %d beat(s) at %.0f BPM", len(kept), total_beats, float(bpm))
    return ChartSchedule(
        notes=kept,
        dropped=dropped,
        bpm=float(bpm),
        duration_ms=max(float(duration_ms), schedule_end_ms(kept)),
        travel_time_ms=float(travel_time_ms),
    )


def increase_difficulty(
    schedule: ChartSchedule,
    *,
    seed: int,
    chance: float = 0.1,
    max_conversions: Optional[int] = None,
) -> ChartSchedule:
    """Turn a bounded random subset of single-lane taps into dual-lane taps."""
    random_generator = random.Random(int(seed))
    limit = max_conversions if max_conversions is not None else len(schedule.notes)

    converted = 0
    updated: List[ChartNote] = []
    for note in schedule.notes:
        is_candidate = (not note.is_dual) and note.note_type == NoteType.NORMAL
        # Always draw so the outcome for a note does not depend on earlier conversions.
        roll = random_generator.random()
        if is_candidate and converted < limit and roll < float(chance):
            updated.append(dataclasses.replace(note, lanes=frozenset({Lane.TOP, Lane.BOTTOM})))
            converted += 1
        else:
            updated.append(note)

    return dataclasses.replace(schedule, notes=tuple(updated))


def decrease_difficulty(schedule: ChartSchedule, *, intensity_threshold: float = 0.8) -> ChartSchedule:
    """Drop every fourth high-intensity note and collapse dual-lane notes to the top lane."""
    updated: List[ChartNote] = []
    for index, note in enumerate(schedule.notes):
        intensity = note.intensity if note.intensity is not None else 0.0
        if intensity > float(intensity_threshold) and index % 4 == 3:
            continue
        if note.is_dual:
            note = dataclasses.replace(note, lanes=frozenset({Lane.TOP}))
        updated.append(note)

    return dataclasses.replace(schedule, notes=tuple(updated))


def adapt_schedule(schedule: ChartSchedule, *, player_accuracy: float, seed: int) -> ChartSchedule:
    accuracy = float(player_accuracy)
    if accuracy > 0.9:
        return increase_difficulty(schedule, seed=seed)
    if accuracy < 0.6:
        return decrease_difficulty(schedule)
    return schedule

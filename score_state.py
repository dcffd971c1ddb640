# -*- coding: utf-8 -*-
########################
# score_state.py
########################
# Purpose:
# - Running score, combo and per-judgement counters for one session.
# - Accuracy and letter grade computed from the closed counts at session end.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Only JudgmentEngine mutates a live ScoreState. Everyone else reads snapshot() copies.
# - Combo counts judged note presses. Hold progress and non-miss hold completions keep the
#   combo alive without incrementing it. Any miss resets it.
# - Zero judged notes grade as D with accuracy 0.0.
#
########################
# Interfaces:
# Public dataclasses:
# - ScoreState(total_score, combo, max_combo, perfect_count, great_count, good_count, miss_count, hold_count)
#   - apply_judgement(judgement: Judgement, points: int) -> None
#   - add_hold_progress(points: int) -> None
#   - apply_hold_completion(judgement: Judgement, points: int) -> None
#   - counts() -> dict[str, int]
#   - total_judged() -> int
#   - accuracy() -> float
#   - grade() -> str
#   - snapshot() -> ScoreState
#
# Public functions:
# - grade_for_accuracy(accuracy: float, total_judged: int) -> str
#
########################

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Dict, Tuple

from gameplay_models import Judgement


ACCURACY_WEIGHTS: Dict[Judgement, float] = {
    Judgement.PERFECT: 1.0,
    Judgement.GREAT: 0.8,
    Judgement.GOOD: 0.5,
    Judgement.MISS: 0.0,
}

GRADE_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (0.95, "S"),
    (0.90, "A"),
    (0.80, "B"),
    (0.70, "C"),
)

FALLBACK_GRADE = "D"


def grade_for_accuracy(accuracy: float, total_judged: int) -> str:
    if int(total_judged) <= 0:
        return FALLBACK_GRADE
    for threshold, grade in GRADE_THRESHOLDS:
        if float(accuracy) >= threshold:
            return grade
    return FALLBACK_GRADE


@dataclass
class ScoreState:
    total_score: int = 0
    combo: int = 0
    max_combo: int = 0
    perfect_count: int = 0
    great_count: int = 0
    good_count: int = 0
    miss_count: int = 0
    hold_count: int = 0

    def apply_judgement(self, judgement: Judgement, points: int) -> None:
        self.total_score += int(points)

        if judgement == Judgement.PERFECT:
            self.perfect_count += 1
        elif judgement == Judgement.GREAT:
            self.great_count += 1
        elif judgement == Judgement.GOOD:
            self.good_count += 1
        elif judgement == Judgement.MISS:
            self.miss_count += 1
            self.combo = 0
            return
        else:
            raise ValueError(f"Unknown judgement: {judgement!r}")

        self.combo += 1
        if self.combo > self.max_combo:
            self.max_combo = self.combo

    def add_hold_progress(self, points: int) -> None:
        self.total_score += int(points)

    def apply_hold_completion(self, judgement: Judgement, points: int) -> None:
        self.total_score += int(points)
        if judgement == Judgement.MISS:
            self.miss_count += 1
            self.combo = 0
            return
        self.hold_count += 1

    def counts(self) -> Dict[str, int]:
        return {
            "perfect": self.perfect_count,
            "great": self.great_count,
            "good": self.good_count,
            "miss": self.miss_count,
            "hold": self.hold_count,
        }

    def total_judged(self) -> int:
        return self.perfect_count + self.great_count + self.good_count + self.miss_count

    def accuracy(self) -> float:
        total = self.total_judged()
        if total == 0:
            return 0.0
        weighted = (
            self.perfect_count * ACCURACY_WEIGHTS[Judgement.PERFECT]
            + self.great_count * ACCURACY_WEIGHTS[Judgement.GREAT]
            + self.good_count * ACCURACY_WEIGHTS[Judgement.GOOD]
        )
        return weighted / float(total)

    def grade(self) -> str:
        return grade_for_accuracy(self.accuracy(), self.total_judged())

    def snapshot(self) -> "ScoreState":
        return dataclasses.replace(self)


def _run_unit_tests() -> None:
    state = ScoreState()
    assert state.grade() == "D"

    state.apply_judgement(Judgement.PERFECT, 300)
    state.apply_judgement(Judgement.GREAT, 200)
    assert state.combo == 2
    state.apply_judgement(Judgement.MISS, 0)
    assert state.combo == 0 and state.max_combo == 2
    assert abs(state.accuracy() - 0.6) < 1e-9
    assert state.grade() == "D"


if __name__ == "__main__":
    _run_unit_tests()
    print("score_state.py: ok")

import pytest

from gameplay_models import Judgement
from score_state import ScoreState, grade_for_accuracy


def test_empty_state_grades_d():
    state = ScoreState()
    assert state.accuracy() == 0.0
    assert state.grade() == "D"
    assert state.total_judged() == 0


def test_combo_tracks_streak_and_max():
    state = ScoreState()
    for judgement in (Judgement.PERFECT, Judgement.GREAT, Judgement.GOOD):
        state.apply_judgement(judgement, 100)
    state.apply_judgement(Judgement.MISS, 0)
    state.apply_judgement(Judgement.PERFECT, 300)

    assert state.combo == 1
    assert state.max_combo == 3
    assert state.total_score == 600
    assert state.counts() == {"perfect": 2, "great": 1, "good": 1, "miss": 1, "hold": 0}


def test_hold_progress_and_completion_keep_combo():
    state = ScoreState()
    state.apply_judgement(Judgement.PERFECT, 300)
    state.add_hold_progress(40)
    state.apply_hold_completion(Judgement.GREAT, 300)

    assert state.combo == 1
    assert state.hold_count == 1
    assert state.total_score == 640
    # Completion is not a separately judged note.
    assert state.total_judged() == 1


def test_missed_hold_completion_breaks_combo():
    state = ScoreState()
    state.apply_judgement(Judgement.PERFECT, 300)
    state.apply_hold_completion(Judgement.MISS, 0)

    assert state.combo == 0
    assert state.miss_count == 1
    assert state.hold_count == 0


def test_accuracy_weights():
    state = ScoreState(perfect_count=2, great_count=1, good_count=1)
    assert state.accuracy() == pytest.approx((2 + 0.8 + 0.5) / 4)


@pytest.mark.parametrize(
    "accuracy, grade",
    [(1.0, "S"), (0.95, "S"), (0.94, "A"), (0.90, "A"), (0.85, "B"), (0.70, "C"), (0.69, "D")],
)
def test_grade_thresholds(accuracy, grade):
    assert grade_for_accuracy(accuracy, 10) == grade


def test_grade_requires_judged_notes():
    assert grade_for_accuracy(1.0, 0) == "D"


def test_snapshot_is_detached():
    state = ScoreState()
    state.apply_judgement(Judgement.PERFECT, 300)
    frozen = state.snapshot()
    state.apply_judgement(Judgement.MISS, 0)

    assert frozen.combo == 1
    assert frozen.miss_count == 0
    assert state.miss_count == 1

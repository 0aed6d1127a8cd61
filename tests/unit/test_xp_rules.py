"""Unit tests for the pure XP and badge rules."""

import pytest

from ednova.gamification.badge_service import compute_badge_changes
from ednova.gamification.xp_service import best_score, lecture_mark_delta, quiz_submission_delta


class TestLectureMarkDelta:
    @pytest.mark.parametrize(
        ("previous", "new", "expected"),
        [
            (None, True, 25),
            (False, True, 25),
            (True, False, -25),
            (True, True, 0),
            (False, False, 0),
            (None, False, 0),
        ],
    )
    def test_transitions(self, previous, new, expected):
        assert lecture_mark_delta(previous, new, 25, awarded=25) == expected

    def test_mark_then_unmark_nets_zero(self):
        assert lecture_mark_delta(None, True, 40) + lecture_mark_delta(True, False, 40, awarded=40) == 0

    def test_unmark_returns_stored_award_not_request_gain(self):
        assert lecture_mark_delta(True, False, 0, awarded=1000) == -1000
        assert lecture_mark_delta(True, False, 500, awarded=20) == -20

    def test_zero_gain(self):
        assert lecture_mark_delta(None, True, 0) == 0

    def test_negative_gain_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            lecture_mark_delta(None, True, -1)


class TestQuizSubmissionDelta:
    def test_first_submission_earns_score(self):
        assert quiz_submission_delta(None, 12) == 12

    def test_worse_resubmission_earns_nothing(self):
        assert quiz_submission_delta(12, 8) == 0

    def test_improvement_earns_difference(self):
        assert quiz_submission_delta(12, 20) == 8

    def test_equal_score_earns_nothing(self):
        assert quiz_submission_delta(20, 20) == 0

    def test_sequence_sums_to_best(self):
        scores = [12, 8, 20]
        total = 0
        previous: int | None = None
        for score in scores:
            total += quiz_submission_delta(previous, score)
            previous = best_score([s for s in [previous, score] if s is not None])
        assert total == max(scores)

    def test_zero_first_score(self):
        assert quiz_submission_delta(None, 0) == 0


class TestBestScore:
    def test_empty(self):
        assert best_score([]) is None

    def test_max(self):
        assert best_score([3, 9, 4]) == 9


class TestComputeBadgeChanges:
    CATALOG = [(1, 10), (2, 50)]

    def test_nothing_held_low_xp(self):
        assert compute_badge_changes(self.CATALOG, set(), 5) == (set(), set())

    def test_awards_reached_thresholds(self):
        assert compute_badge_changes(self.CATALOG, set(), 12) == ({1}, set())
        assert compute_badge_changes(self.CATALOG, {1}, 60) == ({2}, set())

    def test_threshold_is_inclusive(self):
        assert compute_badge_changes(self.CATALOG, set(), 10) == ({1}, set())

    def test_revokes_when_xp_drops(self):
        assert compute_badge_changes(self.CATALOG, {1, 2}, 5) == (set(), {1, 2})
        assert compute_badge_changes(self.CATALOG, {1, 2}, 20) == (set(), {2})

    def test_consistent_state_is_a_no_op(self):
        assert compute_badge_changes(self.CATALOG, {1}, 30) == (set(), set())

    def test_unknown_held_ids_left_alone(self):
        assert compute_badge_changes(self.CATALOG, {1, 99}, 30) == (set(), set())

    def test_accepts_generator(self):
        catalog = ((badge_id, threshold) for badge_id, threshold in self.CATALOG)
        assert compute_badge_changes(catalog, set(), 100) == ({1, 2}, set())

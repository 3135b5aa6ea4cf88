"""
Unit tests for the approval aggregate functions
"""

from itertools import product
from types import SimpleNamespace

import pytest

from models import ApprovalStatus
from services.approval_service import calculate_final_status, calculate_current_level, sort_steps

STATUSES = [ApprovalStatus.PENDING, ApprovalStatus.APPROVED, ApprovalStatus.REJECTED]


def make_steps(statuses):
    return [SimpleNamespace(approval_level=level, status=status)
            for level, status in enumerate(statuses, start=1)]


def expected_final_status(statuses):
    if ApprovalStatus.REJECTED in statuses:
        return ApprovalStatus.REJECTED
    if all(status == ApprovalStatus.APPROVED for status in statuses):
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


@pytest.mark.unit
class TestCalculateFinalStatus:
    """Aggregate status over every combination of one to three steps"""

    @pytest.mark.parametrize('statuses', [combo for size in (1, 2, 3) for combo in product(STATUSES, repeat=size)])
    def test_all_combinations(self, statuses):
        assert calculate_final_status(make_steps(statuses)) == expected_final_status(statuses)

    def test_no_steps_is_pending(self):
        assert calculate_final_status([]) == ApprovalStatus.PENDING

    def test_rejection_wins_over_later_approvals(self):
        steps = make_steps([ApprovalStatus.REJECTED, ApprovalStatus.APPROVED, ApprovalStatus.APPROVED])
        assert calculate_final_status(steps) == ApprovalStatus.REJECTED


@pytest.mark.unit
class TestCalculateCurrentLevel:
    """Current level is the first step, by level, that is not yet approved"""

    def test_no_steps_starts_at_level_one(self):
        assert calculate_current_level([]) == 1

    def test_first_pending_level(self):
        steps = make_steps([ApprovalStatus.APPROVED, ApprovalStatus.PENDING, ApprovalStatus.PENDING])
        assert calculate_current_level(steps) == 2

    def test_all_approved_is_one_past_last(self):
        steps = make_steps([ApprovalStatus.APPROVED, ApprovalStatus.APPROVED])
        assert calculate_current_level(steps) == 3

    def test_rejected_step_stays_current(self):
        steps = make_steps([ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.PENDING])
        assert calculate_current_level(steps) == 2

    def test_unordered_input_is_sorted_by_level(self):
        steps = list(reversed(make_steps([ApprovalStatus.APPROVED, ApprovalStatus.PENDING, ApprovalStatus.PENDING])))
        assert [step.approval_level for step in sort_steps(steps)] == [1, 2, 3]
        assert calculate_current_level(steps) == 2

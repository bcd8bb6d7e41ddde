"""Tests for step ladder planning."""

import math

import pytest

from canaryctl.core.exceptions import PlanningError, ValidationError
from canaryctl.deploy.planner import plan_steps


class TestPlanSteps:
    """Tests for plan_steps."""

    def test_even_ladder(self):
        assert plan_steps(10, 100, 10) == [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]

    def test_last_increment_is_clamped(self):
        assert plan_steps(10, 25, 10) == [10, 20, 25]

    def test_single_step_when_initial_equals_target(self):
        assert plan_steps(50, 50, 10) == [50]

    def test_increment_larger_than_range(self):
        assert plan_steps(10, 100, 200) == [10, 100]

    def test_starts_from_zero(self):
        assert plan_steps(0, 20, 10) == [0, 10, 20]

    def test_strictly_increasing_and_ends_at_target(self):
        steps = plan_steps(7, 93, 13)
        assert steps[0] == 7
        assert steps[-1] == 93
        assert all(a < b for a, b in zip(steps, steps[1:]))
        assert all(b - a <= 13 for a, b in zip(steps, steps[1:]))

    @pytest.mark.parametrize(
        "initial,target,increment",
        [
            (10, 100, 10),
            (10, 25, 10),
            (50, 50, 10),
            (0, 100, 1),
            (0, 100, 33),
            (5, 95, 7),
            (7, 93, 13),
            (1, 100, 99),
            (10, 100, 200),
            (99, 100, 5),
        ],
    )
    def test_ladder_shape(self, initial, target, increment):
        steps = plan_steps(initial, target, increment)

        assert len(steps) == math.ceil((target - initial) / increment) + 1
        assert steps[0] == initial
        assert steps[-1] == target
        assert all(a < b for a, b in zip(steps, steps[1:]))

    @pytest.mark.parametrize("increment", [0, -5])
    def test_non_positive_increment(self, increment):
        with pytest.raises(PlanningError, match="increment"):
            plan_steps(10, 100, increment)

    def test_initial_above_target(self):
        with pytest.raises(PlanningError, match="exceed"):
            plan_steps(60, 50, 10)

    @pytest.mark.parametrize("initial,target", [(-10, 50), (10, 120)])
    def test_out_of_range(self, initial, target):
        with pytest.raises(PlanningError):
            plan_steps(initial, target, 10)

    def test_planning_error_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            plan_steps(10, 100, 0)
        assert exc_info.value.details["increment_percent"] == 0

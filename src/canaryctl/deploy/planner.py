"""Step ladder planning."""

from canaryctl.core.exceptions import PlanningError


def plan_steps(initial_percent: int, target_percent: int, increment_percent: int) -> list[int]:
    """Expand an initial/target/increment triple into step target percentages.

    The last rung always equals ``target_percent``; a final increment that
    would overshoot is clamped to the target.

    Args:
        initial_percent: Traffic percent of the first step
        target_percent: Traffic percent of the last step
        increment_percent: Distance between consecutive steps

    Returns:
        Strictly increasing list of percentages

    Raises:
        PlanningError: If the parameters cannot form a ladder
    """
    details = {
        "initial_percent": initial_percent,
        "target_percent": target_percent,
        "increment_percent": increment_percent,
    }
    if increment_percent <= 0:
        raise PlanningError("increment_percent must be positive", details)
    if initial_percent > target_percent:
        raise PlanningError("initial_percent cannot exceed target_percent", details)
    if initial_percent < 0 or target_percent > 100:
        raise PlanningError("percentages must be between 0 and 100", details)

    steps: list[int] = []
    current = initial_percent
    while True:
        steps.append(current)
        if current == target_percent:
            break
        current += min(increment_percent, target_percent - current)

    return steps

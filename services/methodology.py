"""
Append-only methodology trail.

Steps are recorded while the numbers are computed, so the trail
always describes the values actually used.
"""

from typing import Optional

from models.forecast import MethodologyStep, StepStatus
from utils.math_utils import round_decimal


class MethodologyTrail:
    """Ordered, numbered list of methodology steps."""

    def __init__(self):
        self._steps: list[MethodologyStep] = []

    def add(
        self,
        name: str,
        status: StepStatus = StepStatus.COMPLETED,
        description: str = "",
        formula: str = "",
        inputs: Optional[dict[str, float]] = None,
        outputs: Optional[dict[str, float]] = None,
    ) -> MethodologyStep:
        """Append a step numbered after the last one and return it."""
        step = MethodologyStep(
            step_number=len(self._steps) + 1,
            name=name,
            status=status,
            description=description,
            formula=formula,
            inputs={k: round_decimal(float(v)) for k, v in (inputs or {}).items()},
            outputs={k: round_decimal(float(v)) for k, v in (outputs or {}).items()},
        )
        self._steps.append(step)
        return step

    @property
    def steps(self) -> list[MethodologyStep]:
        """Copy of the steps recorded so far."""
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

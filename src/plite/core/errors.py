"""Exception and warning taxonomy for model validation and solving."""

from __future__ import annotations


class ValidationError(ValueError):
    """A model/configuration pair failed a pre-solve check."""

    kind = "validation"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ConsistencyError(ValidationError):
    """Transition/reward argument names disagree with the declared variables."""

    kind = "consistency"


class DiscretizationError(ValidationError):
    """A range variable has a missing or invalid discretization step."""

    kind = "discretization"


class TransitionShapeError(ValidationError):
    """Transition function returned neither a probability nor a distribution."""

    kind = "transition_shape"


class TransitionBoundsError(ValidationError):
    """Transition function returned an out-of-domain state or probability."""

    kind = "transition_bounds"


class WorkerFailure(RuntimeError):
    """A parallel backup worker raised; the in-flight iteration was discarded."""


class TransitionProbeWarning(UserWarning):
    """Soft diagnostic from a single random transition probe."""

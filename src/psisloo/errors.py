"""Warning and exception classes.

Problems affecting a single observation never abort a computation. They are
reported with one of the warning categories below and recorded in the
pointwise results, so the aggregate estimates show the degraded reliability.
"""

__all__ = [
    "PSISWarning",
    "NonFiniteLogLikelihoodWarning",
    "InsufficientTailSampleWarning",
    "ParetoFitDivergenceWarning",
    "RefitFailureWarning",
    "RefitError",
]


class PSISWarning(UserWarning):
    """Base class for Pareto smoothed importance sampling warnings."""


class NonFiniteLogLikelihoodWarning(PSISWarning):
    """Some observations have non finite log likelihood values, their results are missing."""


class InsufficientTailSampleWarning(PSISWarning):
    """The tail of the importance ratios is too short to fit a generalized Pareto distribution."""


class ParetoFitDivergenceWarning(PSISWarning):
    """The estimated Pareto shape is at least 1, Monte Carlo errors are undefined."""


class RefitFailureWarning(PSISWarning):
    """Refitting the model without one observation failed."""


class RefitError(RuntimeError):
    """Error to be raised by refit functions when an exact refit can't be completed."""

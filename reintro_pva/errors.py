"""Error kinds raised by the viability engine.

All errors derive from ViabilityError so callers can catch the whole family.
InvalidParameterError is also a ValueError and OutOfRangeError an IndexError,
so code written against the builtin contracts keeps working.
"""


class ViabilityError(Exception):
    """Base class for all reintro_pva errors."""


class InvalidParameterError(ViabilityError, ValueError):
    """Out-of-domain probability, dispersion, count or step setting.

    Raised before any computation starts; never retried.
    """


class DegenerateEstimateError(ViabilityError):
    """A survival estimate is missing or its credible interval is too wide.

    Recovered by substituting translocated survival (see
    estimates.resolve_recruited_survival).
    """


class OutOfRangeError(ViabilityError, IndexError):
    """Query for a time step beyond a computed curve's horizon."""


class AnalysisFailedError(ViabilityError, RuntimeError):
    """Eigen-analysis did not produce a usable dominant eigenvalue."""

"""Custom warning classes for the linear_hjb package.

These warning classes allow users to programmatically filter, suppress,
or capture warnings using Python's standard ``warnings`` module.

Example:
    Silence conditioning warnings during a parameter scan::

        import warnings
        from linear_hjb._warnings import NumericalConditioningWarning

        warnings.filterwarnings("ignore", category=NumericalConditioningWarning)
"""


class LinearHJBWarning(UserWarning):
    """Base class for all linear_hjb warnings."""


class ConfigurationWarning(LinearHJBWarning):
    """Unusual or potentially incorrect configuration parameters.

    Raised during config validation when parameter values fall outside
    the range the discretization is built for (e.g. a positive drift with
    the backward-difference stencil, which is then no longer upwind).
    """


class NumericalConditioningWarning(LinearHJBWarning):
    """The terminal system matrix is close to singular.

    The solve still runs; the returned terminal value may carry large
    round-off error.
    """

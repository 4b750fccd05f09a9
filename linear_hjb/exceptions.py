"""Exception hierarchy for the linear HJB solver.

Every error raised by the package derives from :class:`LinearHJBError`, and
each also derives from the closest built-in category so callers that only
know about ``ValueError`` or ``RuntimeError`` still catch them.

None of these errors are recovered inside the package. A failed
construction, linear solve or integration aborts the run and propagates to
the caller.
"""

import numpy as np


class LinearHJBError(Exception):
    """Base class for all linear_hjb errors."""


class GridConstructionError(LinearHJBError, ValueError):
    """Raised when a grid or boundary condition cannot be assembled.

    Covers grids with fewer than two points, non-finite or inverted bounds,
    and boundary variants that have no finite-difference closure.
    """


class SingularSystemError(LinearHJBError, np.linalg.LinAlgError):
    """Raised when the terminal system ``(rho*I - L) v = r`` cannot be solved.

    Attributes:
        condition_number: Estimated 1-norm condition number of the system
            matrix, when it could be computed.
    """

    def __init__(self, message: str, condition_number: float | None = None) -> None:
        self.condition_number = condition_number
        super().__init__(message)


class IntegrationError(LinearHJBError, RuntimeError):
    """Raised when the backward ODE integration fails.

    Attributes:
        status: Status code reported by :func:`scipy.integrate.solve_ivp`.
        t_reached: Last time the integrator reached before stopping.
    """

    def __init__(self, message: str, status: int | None = None, t_reached: float | None = None):
        self.status = status
        self.t_reached = t_reached
        super().__init__(message)


class ConfigurationError(LinearHJBError):
    """Raised when configuration validation finds critical issues.

    This exception is raised by :meth:`Config.validate_problem` when the
    configuration cannot produce a solvable problem.

    Attributes:
        issues: List of specific configuration problems found.

    Examples:
        Catching and inspecting issues::

            try:
                config.validate_problem()
            except ConfigurationError as e:
                for issue in e.issues:
                    print(f"  - {issue}")
    """

    def __init__(self, issues: list[str]) -> None:
        self.issues = issues
        bullet_list = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(
            f"Configuration has {len(issues)} critical "
            f"{'issue' if len(issues) == 1 else 'issues'}:\n{bullet_list}"
        )

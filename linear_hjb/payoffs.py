"""Flow payoff functions r(x, t).

A payoff is a pure function of position and time evaluated pointwise on
the grid. Concrete payoffs subclass :class:`Payoff`; ad-hoc ones can be
wrapped with :func:`create_custom_payoff`.
"""

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np


class Payoff(ABC):
    """Abstract base class for flow payoffs.

    Defines the interface used by the right-hand side of the backward ODE
    and by the terminal solve.
    """

    @abstractmethod
    def evaluate(self, x: np.ndarray, t: float) -> np.ndarray:
        """Evaluate the payoff at grid points ``x`` and time ``t``.

        Args:
            x: Grid points
            t: Time

        Returns:
            Payoff values with the same shape as ``x``
        """
        pass  # pylint: disable=unnecessary-pass

    def __call__(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.evaluate(x, t)


class LinearDecayPayoff(Payoff):
    """Payoff increasing linearly in x and decaying exponentially in time.

    r(x, t) = level * x * exp(-decay * t)
    """

    def __init__(self, level: float = 1.0, decay: float = 1.0):
        """Initialize linear-decay payoff.

        Args:
            level: Multiplier on x
            decay: Exponential decay rate in time
        """
        self.level = level
        self.decay = decay

    def evaluate(self, x: np.ndarray, t: float) -> np.ndarray:
        """Evaluate level * x * exp(-decay * t)."""
        return np.array(self.level * np.asarray(x, dtype=float) * np.exp(-self.decay * t))

    def __repr__(self) -> str:
        return f"LinearDecayPayoff(level={self.level}, decay={self.decay})"


class ConstantPayoff(Payoff):
    """Payoff that is the same at every point and time."""

    def __init__(self, level: float = 1.0):
        self.level = level

    def evaluate(self, x: np.ndarray, t: float) -> np.ndarray:
        """Return ``level`` at every grid point."""
        return np.full(np.shape(x), self.level, dtype=float)

    def __repr__(self) -> str:
        return f"ConstantPayoff(level={self.level})"


class ZeroPayoff(ConstantPayoff):
    """r(x, t) = 0."""

    def __init__(self):
        super().__init__(level=0.0)

    def __repr__(self) -> str:
        return "ZeroPayoff()"


def create_custom_payoff(func: Callable[[np.ndarray, float], np.ndarray]) -> Payoff:
    """Factory function for creating payoffs from a plain callable.

    Args:
        func: Function of ``(x, t)`` returning an array shaped like ``x``.
            Scalars are broadcast to the grid.

    Returns:
        Custom payoff instance

    Example:
        >>> bump = create_custom_payoff(lambda x, t: np.exp(-((x - 0.5) ** 2)) * (1 + t))
    """

    class CustomPayoff(Payoff):
        """Dynamically created custom payoff."""

        def evaluate(self, x: np.ndarray, t: float) -> np.ndarray:
            values = np.asarray(func(x, t), dtype=float)
            return np.array(np.broadcast_to(values, np.shape(x)))

    return CustomPayoff()

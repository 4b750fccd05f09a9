"""Version information for linear_hjb."""

__version__ = "0.1.0"

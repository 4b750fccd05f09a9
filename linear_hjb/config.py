"""Configuration management using Pydantic v2 models.

This module provides the configuration classes for a backward HJB run. It
uses Pydantic models for validation, type safety, and serialization of the
run's constants, so a run can be reproduced from a single YAML file.

The configuration is hierarchical: grid, model, payoff, solver, output and
logging sections are composed into a master :class:`Config`.

Examples:
    Basic configuration setup::

        from linear_hjb.config import Config, ModelConfig

        config = Config(model=ModelConfig(mu=-0.1, sigma=0.1, rho=0.05, horizon=1.0))
        params = config.to_parameters()

    Loading from file::

        config = Config.from_yaml(Path("baseline.yaml"))
        config = config.override(model__sigma=0.2, grid__num_points=40)
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional
import warnings

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator

from ._warnings import ConfigurationWarning
from .exceptions import ConfigurationError, GridConstructionError
from .hjb_solver import ModelParameters, SolverConfig
from .operators import BoundaryPair, UniformGrid
from .payoffs import ConstantPayoff, LinearDecayPayoff, Payoff, ZeroPayoff

DEFAULT_CONFIG_PATH = Path(__file__).parent / "data" / "baseline.yaml"

# Frames in pydantic and in this module are skipped so warnings name the caller
_WARNING_SKIP_PREFIXES = (os.path.dirname(pydantic.__file__) + os.sep, __file__)


def _merge_sections(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively layer ``update`` over ``base`` without mutating either."""
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_sections(merged[key], value)
        else:
            merged[key] = value
    return merged


class GridConfig(BaseModel):
    """Spatial grid and boundary conditions.

    Attributes:
        x_min: Lower edge of the domain.
        x_max: Upper edge of the domain.
        num_points: Number of uniformly spaced grid points (M).
        boundary_lower: Boundary condition at ``x_min``.
        boundary_upper: Boundary condition at ``x_max``.
    """

    x_min: float = Field(default=0.0, description="Lower edge of the domain")
    x_max: float = Field(default=1.0, description="Upper edge of the domain")
    num_points: int = Field(default=20, ge=2, description="Number of grid points")
    boundary_lower: Literal["reflecting", "absorbing"] = Field(
        default="reflecting", description="Boundary condition at x_min"
    )
    boundary_upper: Literal["reflecting", "absorbing"] = Field(
        default="reflecting", description="Boundary condition at x_max"
    )

    @model_validator(mode="after")
    def validate_bounds(self):
        """Ensure the domain is non-empty."""
        if self.x_min >= self.x_max:
            raise ValueError(f"x_min ({self.x_min}) must be less than x_max ({self.x_max})")
        return self


class ModelConfig(BaseModel):
    """Coefficients of the linear HJB equation.

    Attributes:
        mu: Drift coefficient. The first-derivative stencil is a backward
            difference, which is upwind only for non-positive drift.
        sigma: Diffusion coefficient.
        rho: Discount rate; must be positive for the terminal solve.
        horizon: Terminal time T.
    """

    mu: float = Field(default=-0.1, description="Drift coefficient")
    sigma: float = Field(default=0.1, ge=0, description="Diffusion coefficient")
    rho: float = Field(default=0.05, gt=0, description="Discount rate")
    horizon: float = Field(default=1.0, gt=0, description="Terminal time T")

    @field_validator("mu")
    @classmethod
    def validate_drift(cls, v: float) -> float:
        """Warn if the drift is positive.

        Args:
            v: Drift value to validate.

        Returns:
            float: The validated drift.
        """
        if v > 0:
            warnings.warn(
                f"Drift {v} is positive; the backward-difference stencil is not upwind",
                ConfigurationWarning,
                skip_file_prefixes=_WARNING_SKIP_PREFIXES,
            )
        return v


class PayoffConfig(BaseModel):
    """Flow payoff selection.

    ``linear_decay`` is ``level * x * exp(-decay * t)``, ``constant`` is
    ``level`` everywhere, ``zero`` is identically 0.
    """

    kind: Literal["linear_decay", "constant", "zero"] = Field(
        default="linear_decay", description="Payoff family"
    )
    level: float = Field(default=1.0, description="Payoff scale")
    decay: float = Field(default=1.0, description="Exponential decay rate in time")

    def build(self) -> Payoff:
        """Instantiate the configured payoff.

        Returns:
            Payoff instance.
        """
        if self.kind == "linear_decay":
            return LinearDecayPayoff(level=self.level, decay=self.decay)
        if self.kind == "constant":
            return ConstantPayoff(level=self.level)
        return ZeroPayoff()


class IntegratorConfig(BaseModel):
    """Settings for the backward ODE integration."""

    method: Literal["RK45", "RK23", "DOP853", "Radau", "BDF", "LSODA"] = Field(
        default="RK45", description="solve_ivp method"
    )
    rtol: float = Field(default=1e-6, gt=0, description="Relative tolerance")
    atol: float = Field(default=1e-9, gt=0, description="Absolute tolerance")
    max_step: Optional[float] = Field(
        default=None, gt=0, description="Maximum step size (None=unbounded)"
    )
    condition_threshold: float = Field(
        default=1e12, gt=1, description="Condition number that triggers a warning"
    )

    def to_solver_config(self) -> SolverConfig:
        """Convert to the solver's dataclass.

        Returns:
            SolverConfig with the same settings.
        """
        kwargs: Dict[str, Any] = {
            "method": self.method,
            "rtol": self.rtol,
            "atol": self.atol,
            "condition_threshold": self.condition_threshold,
        }
        if self.max_step is not None:
            kwargs["max_step"] = self.max_step
        return SolverConfig(**kwargs)


class OutputConfig(BaseModel):
    """Output and results configuration.

    Controls where and how the boundary trajectory plot is saved.
    """

    output_directory: str = Field(default="outputs", description="Directory for saving results")
    plot_filename: str = Field(default="boundary_values", description="Plot file stem")
    formats: List[Literal["png", "pdf", "svg"]] = Field(
        default_factory=lambda: ["png"], description="Plot formats"
    )
    save_plot: bool = Field(default=True, description="Render and save the plot")
    report_points: int = Field(default=100, ge=2, description="Number of report times")

    @property
    def output_path(self) -> Path:
        """Get output directory as Path object.

        Returns:
            Path object for the output directory.
        """
        return Path(self.output_directory)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Controls logging behavior including level, output destinations,
    and message formatting.
    """

    enabled: bool = Field(default=True, description="Enable logging")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path (None=no file logging)"
    )
    console_output: bool = Field(default=True, description="Log to console")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )


class Config(BaseModel):
    """Complete configuration for a backward HJB run.

    This is the main configuration class that combines all sub-configurations
    and provides methods for loading, saving, and manipulating configurations.
    """

    grid: GridConfig = Field(default_factory=GridConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    payoff: PayoffConfig = Field(default_factory=PayoffConfig)
    solver: IntegratorConfig = Field(default_factory=IntegratorConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Config object with validated parameters.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValidationError: If configuration is invalid.
        """
        import yaml

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Remove private anchors if present
        data = {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(**data)

    @classmethod
    def default(cls) -> "Config":
        """Load the bundled baseline configuration.

        Returns:
            Config for the reference run.
        """
        return cls.from_yaml(DEFAULT_CONFIG_PATH)

    @classmethod
    def from_dict(cls, data: dict, base_config: Optional["Config"] = None) -> "Config":
        """Create config from dictionary, optionally layered over a base config.

        Args:
            data: Section dictionaries, possibly partial.
            base_config: Config whose values fill in everything ``data`` omits.

        Returns:
            Config object with validated parameters.
        """
        if base_config is None:
            return cls(**data)
        return cls(**_merge_sections(base_config.model_dump(), data))

    def override(self, **kwargs) -> "Config":
        """Create a new config with overridden parameters.

        Args:
            **kwargs: ``section__field=value`` pairs, e.g. ``model__sigma=0.2``.

        Returns:
            New Config object with overrides applied.
        """
        nested: Dict[str, Any] = {}
        for key, value in kwargs.items():
            *sections, name = key.split("__")
            target = nested
            for section in sections:
                target = target.setdefault(section, {})
            target[name] = value

        return Config.from_dict(nested, base_config=self)

    def to_yaml(self, path: Path) -> None:
        """Write the configuration in the layout :meth:`from_yaml` reads.

        Args:
            path: Destination file; parent directories are created.
        """
        import yaml

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    def setup_logging(self) -> None:
        """Attach console and/or file handlers to the ``linear_hjb`` logger.

        Handlers from a previous call are closed and replaced, so repeated
        calls neither duplicate output nor leak open log files.
        """
        if not self.logging.enabled:
            return

        import logging
        import sys

        logger = logging.getLogger("linear_hjb")
        logger.setLevel(getattr(logging, self.logging.level))
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(self.logging.format)
        handlers: List[logging.Handler] = []
        if self.logging.console_output:
            handlers.append(logging.StreamHandler(sys.stdout))
        if self.logging.log_file:
            log_path = self.output.output_path / self.logging.log_file
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

        for handler in handlers:
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    def validate_problem(self) -> None:
        """Check that the configuration describes a solvable problem.

        A ``max_step`` longer than the horizon is legal but pointless and
        only produces a :class:`ConfigurationWarning`.

        Raises:
            ConfigurationError: Listing every critical issue found.
        """
        issues: List[str] = []

        try:
            UniformGrid.from_bounds(self.grid.x_min, self.grid.x_max, self.grid.num_points)
        except GridConstructionError as exc:
            issues.append(f"grid: {exc}")

        if self.output.save_plot and not self.output.formats:
            issues.append("output.save_plot is set but no plot formats are configured")

        if issues:
            raise ConfigurationError(issues)

        if self.solver.max_step is not None and self.solver.max_step > self.model.horizon:
            warnings.warn(
                f"solver.max_step ({self.solver.max_step}) exceeds the horizon "
                f"({self.model.horizon}) and has no effect",
                ConfigurationWarning,
                stacklevel=2,
            )

    def to_parameters(self) -> ModelParameters:
        """Build the solver's parameter record.

        Returns:
            Immutable ModelParameters with assembled operators.
        """
        grid = UniformGrid.from_bounds(self.grid.x_min, self.grid.x_max, self.grid.num_points)
        boundary = BoundaryPair.coerce((self.grid.boundary_lower, self.grid.boundary_upper))
        return ModelParameters(
            mu=self.model.mu,
            sigma=self.model.sigma,
            rho=self.model.rho,
            grid=grid,
            boundary=boundary,
        )

    def build_payoff(self) -> Payoff:
        """Instantiate the configured payoff.

        Returns:
            Payoff instance.
        """
        return self.payoff.build()

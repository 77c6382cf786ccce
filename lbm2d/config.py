"""
Simulation Configuration

All run parameters in lattice units, validated as soon as the object is
built.
"""

import math
import warnings
from dataclasses import dataclass

from .collision import validate_tau
from .state import resolve_dtype
from .streaming import StreamingMode


class ConfigurationError(ValueError):
    """Invalid simulation setup, raised before any state is produced."""


@dataclass
class SimulationConfig:
    """
    Parameters of one simulation run.

    Parameters
    ----------
    nx, ny : int
        Grid dimensions (at least 3 x 3)
    tau : float
        Relaxation time (> 0.5)
    precision : str
        'float64' or 'float32'
    iterations : int
        Number of time steps
    snapshot_interval : int
        Store a vorticity snapshot every N steps (0 disables)
    probe_location : tuple, optional
        Node (i, j) whose v is recorded every step
    force_interval : int
        Sample the obstacle force every N steps (0 disables)
    perturbation_step : int
        Step at which the symmetry-breaking kick is applied (0 disables)
    perturbation_location : tuple, optional
        Node (i, j) receiving the kick; None selects (nx//5 + D, ny//2)
    perturbation_amplitude : float
        Velocity added at the node and removed at the node above it
    characteristic_length, characteristic_velocity : float
        D and U for coefficients and the Strouhal number
    reference_density : float
        rho_ref for the force coefficients
    divergence_check_interval : int
        Check the monitor node for NaN or runaway density every N steps
    max_density : float
        Density above which the run is aborted
    monitor_location : tuple, optional
        Fluid node checked for divergence; None selects the domain centre,
        or the nearest fluid node if the centre is solid
    streaming_mode : StreamingMode or str
        'periodic' or 'bounded'
    obstacle : str or callable
        Which solid nodes count for the force, see ``lbm2d.forces``
    """

    nx: int = 100
    ny: int = 100
    tau: float = 0.6
    precision: str = "float64"
    iterations: int = 1000
    snapshot_interval: int = 0
    probe_location: tuple = None
    force_interval: int = 0
    perturbation_step: int = 0
    perturbation_location: tuple = None
    perturbation_amplitude: float = 0.01
    characteristic_length: float = 1.0
    characteristic_velocity: float = 0.1
    reference_density: float = 1.0
    divergence_check_interval: int = 100
    max_density: float = 5.0
    monitor_location: tuple = None
    streaming_mode: StreamingMode = StreamingMode.PERIODIC
    obstacle: object = "all_solids"

    def __post_init__(self):
        if isinstance(self.streaming_mode, str):
            try:
                self.streaming_mode = StreamingMode(self.streaming_mode)
            except ValueError:
                raise ConfigurationError(
                    f"unknown streaming mode {self.streaming_mode!r}"
                ) from None
        self.validate()

    @property
    def dtype(self):
        return resolve_dtype(self.precision)

    @property
    def reynolds(self):
        """Reynolds number U * D / nu."""
        nu = (self.tau - 0.5) / 3.0
        return self.characteristic_velocity * self.characteristic_length / nu

    @property
    def mach(self):
        return self.characteristic_velocity * math.sqrt(3.0)

    def default_perturbation_location(self):
        return (
            self.nx // 5 + int(round(self.characteristic_length)),
            self.ny // 2,
        )

    def resolved_monitor_location(self):
        if self.monitor_location is not None:
            return tuple(self.monitor_location)
        return self.nx // 2, self.ny // 2

    def _check_node(self, name, node):
        if node is None:
            return
        try:
            i, j = node
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be an (i, j) pair, got {node!r}") from None
        if not (0 <= i < self.nx and 0 <= j < self.ny):
            raise ConfigurationError(
                f"{name} {node} is outside the {self.nx} x {self.ny} grid"
            )

    def validate(self):
        """
        Check every parameter.

        Raises
        ------
        ConfigurationError
            On the first invalid parameter
        """
        if self.nx < 3 or self.ny < 3:
            raise ConfigurationError(f"grid must be at least 3 x 3, got {self.nx} x {self.ny}")

        try:
            validate_tau(self.tau)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None

        try:
            resolve_dtype(self.precision)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from None

        if self.iterations < 0:
            raise ConfigurationError(f"iterations must be >= 0, got {self.iterations}")

        for name in ("snapshot_interval", "force_interval", "perturbation_step"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {getattr(self, name)}")

        if self.divergence_check_interval < 1:
            raise ConfigurationError(
                f"divergence_check_interval must be >= 1, got {self.divergence_check_interval}"
            )
        if self.max_density <= 0.0:
            raise ConfigurationError(f"max_density must be positive, got {self.max_density}")
        if self.characteristic_length <= 0.0 or self.characteristic_velocity <= 0.0:
            raise ConfigurationError("characteristic length and velocity must be positive")
        if self.mach > 0.3:
            warnings.warn(
                f"Mach number {self.mach:.3f} exceeds 0.3, compressibility errors will be large"
            )
        if self.reference_density <= 0.0:
            raise ConfigurationError(
                f"reference_density must be positive, got {self.reference_density}"
            )

        self._check_node("probe_location", self.probe_location)
        self._check_node("monitor_location", self.monitor_location)
        if self.perturbation_location is not None:
            i, j = self.perturbation_location
            if not (0 <= i < self.nx and 0 <= j < self.ny - 1):
                raise ConfigurationError(
                    f"perturbation_location {self.perturbation_location} needs a node "
                    f"above it inside the {self.nx} x {self.ny} grid"
                )

        if not callable(self.obstacle) and not isinstance(self.obstacle, str):
            raise ConfigurationError(f"obstacle must be a name or a callable, got {self.obstacle!r}")

"""
lbm2d - D2Q9 Lattice Boltzmann solver for 2-D incompressible flow.
"""

from .lattice import D2Q9, LatticeParameters
from .state import SimulationState, initialize_state
from .equilibrium import compute_equilibrium, feq
from .observables import compute_macroscopic, compute_moments, compute_vorticity
from .collision import collide_bgk, tau_from_viscosity, viscosity_from_tau
from .streaming import StreamingMode, stream
from .boundary import (
    BoundaryConditions,
    Edge,
    create_cavity_walls,
    create_channel_walls,
    create_cylinder_mask,
)
from .forces import all_solids, compute_obstacle_force, exclude_channel_walls
from .diagnostics import ForceSample, RunStatus, SimulationResult, VorticitySnapshot
from .config import ConfigurationError, SimulationConfig
from .solver import Simulation
from .analysis import strouhal_number, summarize_forces

__version__ = "0.1.0"

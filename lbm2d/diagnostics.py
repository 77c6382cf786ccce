"""
Diagnostic Records

Immutable records produced during a run (force samples, vorticity
snapshots), the run status, and the preallocated buffers the time loop
writes into.
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class RunStatus(Enum):
    RUNNING = "running"
    ABORTED = "aborted"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ForceSample:
    """Obstacle force and its coefficients at time step t."""

    t: int
    Fx: float
    Fy: float
    Cd: float
    Cl: float


@dataclass(frozen=True)
class VorticitySnapshot:
    """
    Vorticity field at time step t.

    ``field`` is a read-only float32 copy, independent of the live state.
    """

    t: int
    field: np.ndarray

    @classmethod
    def capture(cls, t, vorticity):
        frozen = np.array(vorticity, dtype=np.float32, copy=True)
        frozen.flags.writeable = False
        return cls(t=int(t), field=frozen)


class Diagnostics:
    """
    Buffers filled by the time loop.

    Messages are only collected here; the orchestrator logs them once the
    loop has exited.

    Parameters
    ----------
    iterations : int
        Length of the probe series
    """

    def __init__(self, iterations):
        self.snapshots = []
        self.forces = []
        self.messages = []
        self.probe = np.zeros(iterations, dtype=np.float64)
        self.probe_count = 0
        self.perturbation_applied = False

    def record_probe(self, value):
        self.probe[self.probe_count] = value
        self.probe_count += 1

    def note(self, message):
        self.messages.append(message)

    @property
    def probe_series(self):
        return self.probe[:self.probe_count]


@dataclass
class SimulationResult:
    """Outcome of ``Simulation.run``."""

    status: RunStatus
    steps: int
    snapshots: list = field(default_factory=list)
    forces: list = field(default_factory=list)
    probe: np.ndarray = field(default_factory=lambda: np.zeros(0))
    messages: list = field(default_factory=list)
    density_clamps: int = 0
    elapsed: float = 0.0
    mlups: float = 0.0

    @property
    def completed(self):
        return self.status is RunStatus.COMPLETED

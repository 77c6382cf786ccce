"""
D2Q9 Lattice Constants and Utilities

Defines the D2Q9 lattice model for 2D fluid simulations.
"""
from dataclasses import dataclass, field

import numpy as np

# D2Q9 lattice velocities
#     6   2   5
#       \ | /
#     3 - 0 - 1
#       / | \
#     7   4   8

# Lattice velocity components
EX = np.array([0, 1, 0, -1, 0, 1, -1, -1, 1], dtype=np.int64)
EY = np.array([0, 0, 1, 0, -1, 1, 1, -1, -1], dtype=np.int64)

# Lattice weights
W = np.array([4/9, 1/9, 1/9, 1/9, 1/9, 1/36, 1/36, 1/36, 1/36], dtype=np.float64)

# Opposite direction indices (for bounce-back)
OPPOSITE = np.array([0, 3, 4, 1, 2, 7, 8, 5, 6], dtype=np.int64)

# Lattice sound speed squared
CS2 = 1.0 / 3.0
CS4 = CS2 * CS2

# Number of lattice velocities
Q = 9

# Named directions
REST, EAST, NORTH, WEST, SOUTH = 0, 1, 2, 3, 4
NORTH_EAST, NORTH_WEST, SOUTH_WEST, SOUTH_EAST = 5, 6, 7, 8


def _frozen(array):
    array = np.array(array, copy=True)
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class LatticeParameters:
    """
    Immutable D2Q9 weights and velocity set.

    All arrays are read-only so a single instance can be shared by every
    state and passed straight into the jitted kernels.

    Attributes
    ----------
    weights : ndarray
        Lattice weights w_k, shape (Q,)
    cx, cy : ndarray
        Integer velocity components, shape (Q,)
    opposite : ndarray
        Index of the direction opposite to k, shape (Q,)
    cs2 : float
        Lattice sound speed squared
    """

    weights: np.ndarray = field(default_factory=lambda: _frozen(W))
    cx: np.ndarray = field(default_factory=lambda: _frozen(EX))
    cy: np.ndarray = field(default_factory=lambda: _frozen(EY))
    opposite: np.ndarray = field(default_factory=lambda: _frozen(OPPOSITE))
    cs2: float = CS2

    @property
    def q(self):
        return len(self.weights)

    @property
    def velocities(self):
        """Velocity vectors as a (Q, 2) array of (cx, cy)."""
        return np.stack([self.cx, self.cy], axis=1)

    def weight(self, k):
        return float(self.weights[k])

    def velocity(self, k):
        return int(self.cx[k]), int(self.cy[k])

    def opposite_of(self, k):
        return int(self.opposite[k])


D2Q9 = LatticeParameters()

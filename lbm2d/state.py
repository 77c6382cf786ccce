"""
Simulation State

Owns every mutable field array of one LBM run.

Arrays are allocated exactly once, in the constructor. Initialisers and
kernels only ever write into them, so a reference taken before the run stays
valid for its whole lifetime. Populations are double-buffered:

    f_in  : post-streaming / pre-collision populations
    f_out : post-collision / pre-streaming populations

Layout is (nx, ny, Q) for populations and (nx, ny) for macroscopic fields,
indexed [i, j] with i along x and j along y.
"""

import numba
import numpy as np
from numba import njit

from .lattice import D2Q9, EX, EY, Q
from .equilibrium import compute_equilibrium


PRECISIONS = {
    "float64": np.float64,
    "float32": np.float32,
}


def resolve_dtype(precision):
    """
    Map a precision selection to a numpy floating dtype.

    Parameters
    ----------
    precision : str or dtype
        'float64', 'float32' or the corresponding numpy dtype

    Returns
    -------
    dtype : numpy.dtype
    """
    if isinstance(precision, str):
        if precision not in PRECISIONS:
            raise ValueError(
                f"precision must be one of {sorted(PRECISIONS)}, got {precision!r}"
            )
        return np.dtype(PRECISIONS[precision])

    dtype = np.dtype(precision)
    if dtype not in (np.dtype(np.float64), np.dtype(np.float32)):
        raise ValueError(f"Unsupported precision {dtype}")
    return dtype


def worker_count(nx, ny):
    """Number of scratch rows, one per worker of the Numba thread pool."""
    return max(1, min(numba.config.NUMBA_NUM_THREADS, max(nx, ny)))


@njit(cache=True)
def chunk_bounds(c, n_chunks, n):
    """
    Half-open index range [start, stop) of chunk c out of n_chunks over n items.

    Chunks differ in size by at most one item.
    """
    size = n // n_chunks
    rem = n % n_chunks
    start = c * size + min(c, rem)
    stop = start + size
    if c < rem:
        stop += 1
    return start, stop


class SimulationState:
    """
    Mutable field arrays of a D2Q9 simulation.

    Parameters
    ----------
    nx, ny : int
        Grid dimensions
    tau : float
        Relaxation time (must be > 0.5)
    dtype : dtype or str
        Floating-point precision of all field arrays
    params : LatticeParameters
        Lattice weights and velocities

    Attributes
    ----------
    f_in, f_out : ndarray
        Populations, shape (nx, ny, Q)
    rho, u, v : ndarray
        Density and velocity fields, shape (nx, ny)
    mask : ndarray
        Boolean solid mask (True = solid), shape (nx, ny)
    scratch : ndarray
        One 9-element buffer per worker, shape (n_workers, Q)
    """

    def __init__(self, nx, ny, tau, dtype=np.float64, params=D2Q9):
        if tau <= 0.5:
            raise ValueError(f"tau must be > 0.5, got {tau}")

        self.nx = nx
        self.ny = ny
        self.tau = float(tau)
        self.omega = 1.0 / self.tau
        self.dtype = resolve_dtype(dtype)
        self.params = params

        self.f_in = np.empty((nx, ny, Q), dtype=self.dtype)
        self.f_out = np.empty((nx, ny, Q), dtype=self.dtype)
        self.rho = np.empty((nx, ny), dtype=self.dtype)
        self.u = np.empty((nx, ny), dtype=self.dtype)
        self.v = np.empty((nx, ny), dtype=self.dtype)
        self.mask = np.zeros((nx, ny), dtype=np.bool_)

        self.scratch = np.zeros((worker_count(nx, ny), Q), dtype=self.dtype)

        self.initialize_uniform()

    @property
    def shape(self):
        return self.nx, self.ny

    @property
    def n_workers(self):
        return self.scratch.shape[0]

    @property
    def fluid(self):
        """Boolean mask of fluid nodes."""
        return ~self.mask

    def initialize_uniform(self, rho=1.0, ux=0.0, uy=0.0):
        """
        Initialize with uniform density and velocity at equilibrium.

        Parameters
        ----------
        rho : float
            Uniform density
        ux : float
            Uniform x-velocity
        uy : float
            Uniform y-velocity
        """
        self.rho[:] = rho
        self.u[:] = ux
        self.v[:] = uy
        self._fill_equilibrium()

    def initialize_from_fields(self, rho, ux, uy):
        """
        Initialize from given density and velocity fields.

        The fields are copied into the state's own arrays; solid nodes are
        reset to the rest reference state.

        Parameters
        ----------
        rho : ndarray or float
            Density field, shape (nx, ny)
        ux : ndarray or float
            X-velocity field, shape (nx, ny)
        uy : ndarray or float
            Y-velocity field, shape (nx, ny)
        """
        self.rho[:] = rho
        self.u[:] = ux
        self.v[:] = uy

        self.rho[self.mask] = 1.0
        self.u[self.mask] = 0.0
        self.v[self.mask] = 0.0

        self._fill_equilibrium()

    def _fill_equilibrium(self):
        compute_equilibrium(self.rho, self.u, self.v, self.params, out=self.f_in)
        self.f_out[...] = self.f_in

    def set_mask(self, mask):
        """
        Copy a solid/fluid mask into the state.

        Raises
        ------
        ValueError
            If the mask shape does not match the grid or the mask is frozen
        """
        mask = np.asarray(mask, dtype=np.bool_)
        if mask.shape != self.shape:
            raise ValueError(
                f"mask shape {mask.shape} does not match grid {self.shape}"
            )
        if not self.mask.flags.writeable:
            raise ValueError("mask is frozen and cannot be changed")
        self.mask[...] = mask

    def freeze_mask(self):
        """Make the mask read-only for the rest of the run."""
        self.mask.flags.writeable = False

    @property
    def mask_frozen(self):
        return not self.mask.flags.writeable

    def total_mass(self):
        """Return total mass of the post-streaming populations."""
        return float(np.sum(self.f_in, dtype=np.float64))

    def total_momentum(self):
        """Return total momentum (conserved for periodic boundaries)."""
        f = self.f_in.astype(np.float64)
        mom_x = np.sum(f * EX[None, None, :])
        mom_y = np.sum(f * EY[None, None, :])
        return float(mom_x), float(mom_y)


def initialize_state(nx, ny, tau, dtype=np.float64, params=D2Q9):
    """
    Allocate a state at rest (rho=1, u=v=0) with equilibrium populations.

    Parameters
    ----------
    nx, ny : int
        Grid dimensions
    tau : float
        Relaxation time
    dtype : dtype or str
        'float64' for accuracy, 'float32' for memory bandwidth

    Returns
    -------
    state : SimulationState
    """
    return SimulationState(nx, ny, tau, dtype=dtype, params=params)

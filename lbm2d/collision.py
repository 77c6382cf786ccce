"""
Collision Operators

BGK collision model for LBM.

The collision step models molecular interactions and drives the distribution
toward equilibrium. The relaxation time tau controls the viscosity:

    nu = c_s^2 * (tau - 0.5) * dt

where c_s^2 = 1/3 for D2Q9 and dt = 1 in lattice units.

Stability requires tau > 0.5 (nu > 0).
"""

import warnings

import numpy as np
from numba import njit, prange

from .equilibrium import equilibrium_into
from .state import chunk_bounds


def tau_from_viscosity(nu, dt=1.0, cs2=1.0/3.0):
    """
    Compute relaxation time from kinematic viscosity.

    tau = nu / (c_s^2 * dt) + 0.5

    Parameters
    ----------
    nu : float
        Kinematic viscosity
    dt : float
        Time step (default 1.0 in lattice units)
    cs2 : float
        Sound speed squared (default 1/3)

    Returns
    -------
    tau : float
        Relaxation time
    """
    return nu / (cs2 * dt) + 0.5


def viscosity_from_tau(tau, dt=1.0, cs2=1.0/3.0):
    """
    Compute kinematic viscosity from relaxation time.

    nu = c_s^2 * (tau - 0.5) * dt

    Parameters
    ----------
    tau : float
        Relaxation time (must be > 0.5)
    dt : float
        Time step (default 1.0 in lattice units)
    cs2 : float
        Sound speed squared (default 1/3)

    Returns
    -------
    nu : float
        Kinematic viscosity
    """
    if tau <= 0.5:
        raise ValueError(f"tau must be > 0.5 for stability, got {tau}")
    return cs2 * (tau - 0.5) * dt


def validate_tau(tau, name="tau"):
    """
    Validate that relaxation time is in stable range.

    Raises
    ------
    ValueError
        If tau <= 0.5

    Returns
    -------
    tau : float
        Validated tau value
    """
    if not np.isfinite(tau) or tau <= 0.5:
        raise ValueError(
            f"{name} must be > 0.5 for stability (got {tau}). "
            f"This corresponds to nu > 0."
        )
    if tau > 2.0:
        warnings.warn(
            f"{name} = {tau} is large, which may cause slow convergence. "
            f"Consider tau in range (0.5, 2.0) for efficiency."
        )
    return tau


@njit(parallel=True, cache=True)
def bgk_collision_numba(f_in, f_out, rho, ux, uy, mask, omega, w, ex, ey, scratch):
    """
    Numba-accelerated BGK collision.

    f_out = f_in - omega * (f_in - f_eq)

    Rows are split into one chunk per scratch row so each worker reuses a
    single 9-element equilibrium buffer. Solid nodes are copied unchanged.

    Parameters
    ----------
    f_in : ndarray
        Post-streaming distribution, shape (nx, ny, Q)
    f_out : ndarray
        Output post-collision distribution, shape (nx, ny, Q)
    rho, ux, uy : ndarray
        Current macroscopic fields, shape (nx, ny)
    mask : ndarray
        Boolean solid mask, shape (nx, ny)
    omega : float
        Relaxation frequency (1/tau)
    w, ex, ey : ndarray
        Lattice weights and velocities
    scratch : ndarray
        Per-worker buffers, shape (n_workers, Q)
    """
    nx, ny, q = f_in.shape
    n_chunks = scratch.shape[0]

    for c in prange(n_chunks):
        f_eq = scratch[c]
        start, stop = chunk_bounds(c, n_chunks, nx)
        for i in range(start, stop):
            for j in range(ny):
                if mask[i, j]:
                    for k in range(q):
                        f_out[i, j, k] = f_in[i, j, k]
                    continue

                equilibrium_into(f_eq, rho[i, j], ux[i, j], uy[i, j], w, ex, ey)
                for k in range(q):
                    f_out[i, j, k] = f_in[i, j, k] - omega * (f_in[i, j, k] - f_eq[k])


def collide_bgk(state):
    """
    BGK (Bhatnagar-Gross-Krook) collision on every fluid node of a state.

    Requires ``rho``, ``u``, ``v`` to be current for this step.

    Parameters
    ----------
    state : SimulationState
        Reads ``f_in`` and the moments; writes ``f_out``.
    """
    params = state.params
    bgk_collision_numba(
        state.f_in, state.f_out,
        state.rho, state.u, state.v, state.mask,
        state.omega, params.weights, params.cx, params.cy,
        state.scratch,
    )

"""
Macroscopic Observable Extraction

Compute density, velocity, and derived quantities from distributions.

In LBM, macroscopic quantities are moments of the distribution function:
    - Density (0th moment): rho = sum_i(f_i)
    - Momentum (1st moment): rho*u = sum_i(f_i * e_i)
"""

import numpy as np
from numba import njit, prange

from .lattice import EX, EY


@njit(parallel=True, cache=True)
def compute_macroscopic_numba(f, mask, rho, ux, uy, ex, ey):
    """
    Numba-accelerated macroscopic quantity computation.

    Solid nodes are forced to the reference state (rho=1, u=0) so that
    their values never depend on what streamed into them.

    Parameters
    ----------
    f : ndarray
        Distribution functions, shape (nx, ny, Q)
    mask : ndarray
        Boolean solid mask, shape (nx, ny)
    rho : ndarray
        Output density field, shape (nx, ny)
    ux : ndarray
        Output X-velocity field, shape (nx, ny)
    uy : ndarray
        Output Y-velocity field, shape (nx, ny)
    ex, ey : ndarray
        Lattice velocity components
    """
    nx, ny, q = f.shape

    for i in prange(nx):
        for j in range(ny):
            if mask[i, j]:
                rho[i, j] = 1.0
                ux[i, j] = 0.0
                uy[i, j] = 0.0
                continue

            rho_local = 0.0
            rho_ux = 0.0
            rho_uy = 0.0

            for k in range(q):
                f_k = f[i, j, k]
                rho_local += f_k
                rho_ux += f_k * ex[k]
                rho_uy += f_k * ey[k]

            rho[i, j] = rho_local

            if rho_local > 1e-10:
                ux[i, j] = rho_ux / rho_local
                uy[i, j] = rho_uy / rho_local
            else:
                ux[i, j] = 0.0
                uy[i, j] = 0.0


def compute_macroscopic(state):
    """
    Recover rho, u, v in place from the post-streaming populations.

    Parameters
    ----------
    state : SimulationState
        Reads ``f_in`` and ``mask``; writes ``rho``, ``u``, ``v``.
    """
    params = state.params
    compute_macroscopic_numba(
        state.f_in, state.mask, state.rho, state.u, state.v, params.cx, params.cy
    )


def compute_density(f):
    """
    Compute density field from distribution functions.

    Parameters
    ----------
    f : ndarray
        Distribution functions, shape (nx, ny, Q)

    Returns
    -------
    rho : ndarray
        Density field, shape (nx, ny)
    """
    return np.sum(f, axis=-1)


def compute_velocity(f, rho=None):
    """
    Compute velocity field from distribution functions.

    Parameters
    ----------
    f : ndarray
        Distribution functions, shape (nx, ny, Q)
    rho : ndarray, optional
        Density field. If None, computed from f.

    Returns
    -------
    ux, uy : ndarray
        Velocity components, shape (nx, ny)
    """
    if rho is None:
        rho = compute_density(f)

    rho_ux = f @ EX.astype(np.float64)
    rho_uy = f @ EY.astype(np.float64)

    # Avoid division by zero
    rho_safe = np.where(rho > 1e-10, rho, 1.0)

    return rho_ux / rho_safe, rho_uy / rho_safe


def compute_moments(f):
    """
    Compute all macroscopic quantities from distribution functions.

    Unlike ``compute_macroscopic`` this returns new arrays and ignores any
    solid mask; meant for tests and post-processing.

    Returns
    -------
    rho, ux, uy : ndarray
        Density and velocity fields
    """
    rho = compute_density(f)
    ux, uy = compute_velocity(f, rho)
    return rho, ux, uy


@njit(parallel=True, cache=True)
def compute_vorticity_numba(ux, uy, out):
    """
    Central-difference vorticity on interior nodes.

    omega = (uy[i+1, j] - uy[i-1, j]) / 2 - (ux[i, j+1] - ux[i, j-1]) / 2

    The one-node halo of ``out`` is left untouched.
    """
    nx, ny = ux.shape

    for i in prange(1, nx - 1):
        for j in range(1, ny - 1):
            duy_dx = 0.5 * (uy[i + 1, j] - uy[i - 1, j])
            dux_dy = 0.5 * (ux[i, j + 1] - ux[i, j - 1])
            out[i, j] = duy_dx - dux_dy


def compute_vorticity(ux, uy=None, out=None):
    """
    Compute vorticity field using central differences.

    omega = du_y/dx - du_x/dy

    Parameters
    ----------
    ux : ndarray or SimulationState
        X-velocity field, shape (nx, ny), or a state to read u and v from
    uy : ndarray, optional
        Y-velocity field, shape (nx, ny)
    out : ndarray, optional
        Output buffer, shape (nx, ny). Its boundary nodes are zeroed.

    Returns
    -------
    vorticity : ndarray
        Vorticity field, zero on the boundary nodes
    """
    if uy is None:
        ux, uy = ux.u, ux.v

    if out is None:
        out = np.zeros(ux.shape, dtype=ux.dtype)
    else:
        out[0, :] = 0.0
        out[-1, :] = 0.0
        out[:, 0] = 0.0
        out[:, -1] = 0.0

    compute_vorticity_numba(ux, uy, out)
    return out


def compute_velocity_magnitude(ux, uy):
    """
    Compute velocity magnitude field.

    |u| = sqrt(ux^2 + uy^2)
    """
    return np.sqrt(ux * ux + uy * uy)

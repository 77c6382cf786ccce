"""
Equilibrium Distribution Functions

Maxwell-Boltzmann equilibrium for D2Q9 lattice.

The equilibrium distribution is derived from the Maxwell-Boltzmann distribution
truncated to second order in velocity. For the D2Q9 lattice:

    f_i^eq = w_i * rho * [1 + (e_i · u)/c_s^2 + (e_i · u)^2/(2*c_s^4) - u^2/(2*c_s^2)]

which with c_s^2 = 1/3 becomes

    f_i^eq = w_i * rho * [1 + 3 (e_i · u) + 4.5 (e_i · u)^2 - 1.5 u^2]

where:
    - w_i are the lattice weights
    - e_i are the lattice velocities
    - rho is the density
    - u = (ux, uy) is the macroscopic velocity
"""

import numpy as np
from numba import njit

from .lattice import D2Q9, Q


@njit(cache=True)
def equilibrium_into(out, rho, ux, uy, w, ex, ey):
    """
    Write the equilibrium populations of one node into a caller buffer.

    Performs no allocation, so it is safe to call from inside the hot
    kernels with a per-worker scratch row.

    Parameters
    ----------
    out : ndarray
        Output buffer, shape (Q,)
    rho : float
        Density at the site
    ux, uy : float
        Velocity at the site
    w : ndarray
        Lattice weights
    ex, ey : ndarray
        Lattice velocity components
    """
    u_sq = ux * ux + uy * uy
    for k in range(w.shape[0]):
        eu = ex[k] * ux + ey[k] * uy
        out[k] = w[k] * rho * (1.0 + 3.0 * eu + 4.5 * eu * eu - 1.5 * u_sq)


def feq(rho, ux, uy, params=D2Q9, out=None):
    """
    Equilibrium populations of a single site.

    Parameters
    ----------
    rho : float
        Density at the site
    ux, uy : float
        Velocity at the site
    params : LatticeParameters
        Lattice weights and velocities
    out : ndarray, optional
        Buffer of shape (Q,) to write into. A new one is allocated if None.

    Returns
    -------
    out : ndarray
        Equilibrium distribution, shape (Q,)
    """
    if out is None:
        out = np.empty(params.q, dtype=np.float64)
    equilibrium_into(out, rho, ux, uy, params.weights, params.cx, params.cy)
    return out


def equilibrium_single_site(rho, ux, uy):
    """
    Compute equilibrium distribution for a single lattice site.

    Useful for boundary conditions and testing.

    Returns
    -------
    f_eq : ndarray
        Equilibrium distribution, shape (Q,)
    """
    return feq(rho, ux, uy)


def compute_equilibrium(rho, ux, uy, params=D2Q9, out=None):
    """
    Compute equilibrium distribution for all lattice sites.

    Uses vectorized NumPy operations; intended for initialisation rather
    than the time loop.

    Parameters
    ----------
    rho : ndarray
        Density field, shape (nx, ny)
    ux : ndarray
        X-velocity field, shape (nx, ny)
    uy : ndarray
        Y-velocity field, shape (nx, ny)
    params : LatticeParameters
        Lattice weights and velocities
    out : ndarray, optional
        Output array of shape (nx, ny, Q)

    Returns
    -------
    f_eq : ndarray
        Equilibrium distribution, shape (nx, ny, Q)
    """
    rho = np.asarray(rho)
    ux = np.asarray(ux)
    uy = np.asarray(uy)

    if out is None:
        out = np.empty(rho.shape + (Q,), dtype=np.result_type(rho, np.float64))

    # Precompute velocity-dependent terms
    u_sq = ux * ux + uy * uy

    for k in range(params.q):
        eu = params.cx[k] * ux + params.cy[k] * uy
        out[..., k] = params.weights[k] * rho * (
            1.0
            + 3.0 * eu
            + 4.5 * eu * eu
            - 1.5 * u_sq
        )

    return out

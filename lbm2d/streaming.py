"""
Streaming Step

Propagation of distribution functions along lattice velocities.

The streaming step moves each distribution f_i from site x to site x + e_i:
    f_i(x + e_i, t + dt) = f_i^out(x, t)

It is implemented as a pull (gather): every destination node reads
f_i at x - e_i, so each write touches only the destination's own
populations and rows can be processed in parallel without hazards.

Out-of-range sources wrap around the domain. In PERIODIC mode that is the
physical boundary condition. In BOUNDED mode the wrapped values only ever
land on edge nodes that are solid or owned by an edge boundary condition,
and those are overwritten before the moments are taken.
"""

from enum import Enum

import numpy as np
from numba import njit, prange

from .lattice import D2Q9


class StreamingMode(Enum):
    """How populations leaving the domain are treated."""

    PERIODIC = "periodic"
    BOUNDED = "bounded"


@njit(parallel=True, cache=True)
def stream_pull_numba(f_out, f_in, ex, ey):
    """
    Numba-accelerated pull streaming with wrap-around indexing.

    Parameters
    ----------
    f_out : ndarray
        Post-collision distribution to read, shape (nx, ny, Q)
    f_in : ndarray
        Post-streaming distribution to write, shape (nx, ny, Q)
    ex, ey : ndarray
        Lattice velocity components
    """
    nx, ny, q = f_out.shape

    for i in prange(nx):
        for j in range(ny):
            for k in range(q):
                i_src = i - ex[k]
                if i_src < 0:
                    i_src += nx
                elif i_src >= nx:
                    i_src -= nx

                j_src = j - ey[k]
                if j_src < 0:
                    j_src += ny
                elif j_src >= ny:
                    j_src -= ny

                f_in[i, j, k] = f_out[i_src, j_src, k]


def stream(state):
    """
    Stream ``f_out`` into ``f_in`` in place.

    Parameters
    ----------
    state : SimulationState
        Reads ``f_out``; writes ``f_in``.
    """
    params = state.params
    stream_pull_numba(state.f_out, state.f_in, params.cx, params.cy)


def stream_periodic(f, params=None):
    """
    Streaming of a bare population array with periodic boundaries.

    Reference implementation using np.roll, handy for checking the kernel.

    Parameters
    ----------
    f : ndarray
        Distribution functions, shape (nx, ny, Q)

    Returns
    -------
    f_streamed : ndarray
        Post-streaming distribution
    """
    params = params or D2Q9
    f_streamed = np.empty_like(f)

    for k in range(params.q):
        f_streamed[..., k] = np.roll(
            f[..., k], (int(params.cx[k]), int(params.cy[k])), axis=(0, 1)
        )

    return f_streamed


def uncovered_edge_nodes(mask, owned_edges):
    """
    Edge nodes whose wrapped-in populations would survive the boundary stage.

    An edge node is covered when it is solid, or when it is not a corner and
    its edge is owned by an edge boundary condition.

    Parameters
    ----------
    mask : ndarray
        Boolean solid mask, shape (nx, ny)
    owned_edges : iterable of Edge
        Edges handled by inlet, outlet or moving-wall conditions

    Returns
    -------
    nodes : list of tuple
        (i, j) coordinates of uncovered nodes
    """
    from .boundary import Edge

    nx, ny = mask.shape
    owned = set(owned_edges)
    uncovered = []

    edges = {
        Edge.WEST: [(0, j) for j in range(ny)],
        Edge.EAST: [(nx - 1, j) for j in range(ny)],
        Edge.SOUTH: [(i, 0) for i in range(nx)],
        Edge.NORTH: [(i, ny - 1) for i in range(nx)],
    }
    corners = {(0, 0), (0, ny - 1), (nx - 1, 0), (nx - 1, ny - 1)}

    for edge, nodes in edges.items():
        for node in nodes:
            if mask[node]:
                continue
            if node not in corners and edge in owned:
                continue
            if node not in uncovered:
                uncovered.append(node)

    return uncovered

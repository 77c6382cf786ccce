"""
Boundary Condition Handlers

Implements the boundary conditions of the solver:
- Bounce-back (no-slip walls and obstacles)
- Moving wall (equilibrium Dirichlet velocity, e.g. a cavity lid)
- Zou-He velocity inlet
- Zou-He pressure (density) outlet

All of them act on the post-streaming populations ``f_in`` and must run
after streaming and before the moments are recomputed.

Edge conditions work on one domain edge and skip its two corner nodes,
which belong to the bounce-back walls. On an edge with inward normal n the
populations split into three groups:

    c_k · n < 0   known, streamed in from the interior ("outgoing")
    c_k · n = 0   known, parallel to the edge (rest + 2 tangential)
    c_k · n > 0   unknown, they would come from outside the domain

Unknowns are rebuilt by non-equilibrium bounce-back:

    f_k = f_k^eq + (f_opp(k) - f_opp(k)^eq)

followed by the Zou-He transverse correction on the two unknown diagonals,
which sets the tangential momentum without touching mass or normal
momentum.
"""

from enum import Enum

import numpy as np
from numba import njit, prange

from .equilibrium import equilibrium_into
from .state import chunk_bounds


class Edge(Enum):
    """Domain edges, valued by (axis held fixed, far end, inward normal)."""

    WEST = (0, False, (1, 0))
    EAST = (0, True, (-1, 0))
    SOUTH = (1, False, (0, 1))
    NORTH = (1, True, (0, -1))

    @property
    def axis(self):
        return self.value[0]

    @property
    def normal(self):
        return self.value[2]

    def index(self, nx, ny):
        """Grid index of the edge along its fixed axis."""
        size = nx if self.axis == 0 else ny
        return size - 1 if self.value[1] else 0

    def length(self, nx, ny):
        """Number of nodes along the edge, corners included."""
        return ny if self.axis == 0 else nx

    @classmethod
    def parse(cls, edge):
        if isinstance(edge, cls):
            return edge
        return cls[str(edge).upper()]


@njit(cache=True)
def _edge_node(axis, index, t):
    if axis == 0:
        return index, t
    return t, index


@njit(parallel=True, cache=True)
def bounce_back_numba(f_in, mask, opposite, scratch):
    """
    Numba-accelerated bounce-back.

    At every solid node the freshly streamed populations are copied to the
    worker's scratch row and written back reversed:
        f_in[k] = scratch[opposite[k]]

    Parameters
    ----------
    f_in : ndarray
        Post-streaming distribution, modified in place, shape (nx, ny, Q)
    mask : ndarray
        Boolean solid mask, shape (nx, ny)
    opposite : ndarray
        Opposite direction indices
    scratch : ndarray
        Per-worker buffers, shape (n_workers, Q)
    """
    nx, ny, q = f_in.shape
    n_chunks = scratch.shape[0]

    for c in prange(n_chunks):
        buf = scratch[c]
        start, stop = chunk_bounds(c, n_chunks, nx)
        for i in range(start, stop):
            for j in range(ny):
                if mask[i, j]:
                    for k in range(q):
                        buf[k] = f_in[i, j, k]
                    for k in range(q):
                        f_in[i, j, k] = buf[opposite[k]]


@njit(parallel=True, cache=True)
def moving_wall_numba(f_in, mask, rho, axis, index, nxn, nyn,
                      u_wall, v_wall, w, ex, ey, scratch):
    """
    Numba-accelerated equilibrium moving-wall condition.

    Density is taken from the adjacent interior node, the populations of the
    edge node are replaced by f_eq(rho, u_wall, v_wall).
    """
    nx, ny, q = f_in.shape
    length = ny if axis == 0 else nx
    n_chunks = scratch.shape[0]

    for c in prange(n_chunks):
        f_eq = scratch[c]
        start, stop = chunk_bounds(c, n_chunks, length - 2)
        for t in range(start + 1, stop + 1):
            i, j = _edge_node(axis, index, t)
            if mask[i, j]:
                continue

            rho_wall = rho[i + nxn, j + nyn]
            equilibrium_into(f_eq, rho_wall, u_wall, v_wall, w, ex, ey)
            for k in range(q):
                f_in[i, j, k] = f_eq[k]


@njit(cache=True)
def _correct_tangential(f_in, i, j, nxn, nyn, rho, u_t, ex, ey):
    # Shift the two unknown diagonals so the tangential momentum equals
    # rho * u_t; mass and normal momentum are unchanged.
    q = f_in.shape[2]
    sxn = -nyn
    syn = nxn
    j_t = 0.0
    for k in range(q):
        j_t += f_in[i, j, k] * (ex[k] * sxn + ey[k] * syn)
    excess = j_t - rho * u_t
    for k in range(q):
        if ex[k] * nxn + ey[k] * nyn > 0:
            cs = ex[k] * sxn + ey[k] * syn
            if cs != 0:
                f_in[i, j, k] -= 0.5 * cs * excess


@njit(parallel=True, cache=True)
def velocity_inlet_numba(f_in, mask, axis, index, nxn, nyn, u_in,
                         w, ex, ey, opposite, scratch, clamps):
    """
    Numba-accelerated Zou-He velocity inlet.

    The inflow speed ``u_in`` is measured along the inward normal. Density
    follows from the 1-D mass balance

        rho = (sum parallel + 2 * sum outgoing) / (1 - u_in)

    and falls back to 1.0 if it comes out non-positive; each fallback is
    counted in ``clamps[t]``. The tangential velocity is zero.
    """
    nx, ny, q = f_in.shape
    length = ny if axis == 0 else nx
    n_chunks = scratch.shape[0]
    ux_in = u_in * nxn
    uy_in = u_in * nyn

    for c in prange(n_chunks):
        f_eq = scratch[c]
        start, stop = chunk_bounds(c, n_chunks, length - 2)
        for t in range(start + 1, stop + 1):
            i, j = _edge_node(axis, index, t)
            if mask[i, j]:
                continue

            parallel = 0.0
            outgoing = 0.0
            for k in range(q):
                cn = ex[k] * nxn + ey[k] * nyn
                if cn == 0:
                    parallel += f_in[i, j, k]
                elif cn < 0:
                    outgoing += f_in[i, j, k]

            rho_in = (parallel + 2.0 * outgoing) / (1.0 - u_in)
            if rho_in <= 0.0:
                rho_in = 1.0
                clamps[t] += 1

            equilibrium_into(f_eq, rho_in, ux_in, uy_in, w, ex, ey)
            for k in range(q):
                if ex[k] * nxn + ey[k] * nyn > 0:
                    k_opp = opposite[k]
                    f_in[i, j, k] = f_eq[k] + f_in[i, j, k_opp] - f_eq[k_opp]
            _correct_tangential(f_in, i, j, nxn, nyn, rho_in, 0.0, ex, ey)


@njit(parallel=True, cache=True)
def pressure_outlet_numba(f_in, mask, axis, index, nxn, nyn, rho_out,
                          w, ex, ey, opposite, scratch):
    """
    Numba-accelerated Zou-He pressure outlet.

    The normal velocity follows from the mass balance at the prescribed
    density,

        u_n = 1 - (sum parallel + 2 * sum outgoing) / rho_out

    (positive u_n points into the domain), so the rebuilt node carries
    exactly ``rho_out``. The tangential velocity is taken from the
    post-streaming populations of the adjacent interior node (zero
    gradient), or zero if that node is solid.
    """
    nx, ny, q = f_in.shape
    length = ny if axis == 0 else nx
    n_chunks = scratch.shape[0]
    sxn = -nyn
    syn = nxn

    for c in prange(n_chunks):
        f_eq = scratch[c]
        start, stop = chunk_bounds(c, n_chunks, length - 2)
        for t in range(start + 1, stop + 1):
            i, j = _edge_node(axis, index, t)
            if mask[i, j]:
                continue

            parallel = 0.0
            outgoing = 0.0
            for k in range(q):
                cn = ex[k] * nxn + ey[k] * nyn
                if cn == 0:
                    parallel += f_in[i, j, k]
                elif cn < 0:
                    outgoing += f_in[i, j, k]
            u_n = 1.0 - (parallel + 2.0 * outgoing) / rho_out

            ii = i + nxn
            jj = j + nyn
            u_t = 0.0
            if not mask[ii, jj]:
                rho_nb = 0.0
                j_nb = 0.0
                for k in range(q):
                    rho_nb += f_in[ii, jj, k]
                    j_nb += f_in[ii, jj, k] * (ex[k] * sxn + ey[k] * syn)
                if rho_nb > 0.0:
                    u_t = j_nb / rho_nb

            equilibrium_into(f_eq, rho_out, u_n * nxn + u_t * sxn, u_n * nyn + u_t * syn,
                             w, ex, ey)
            for k in range(q):
                if ex[k] * nxn + ey[k] * nyn > 0:
                    k_opp = opposite[k]
                    f_in[i, j, k] = f_eq[k] + f_in[i, j, k_opp] - f_eq[k_opp]
            _correct_tangential(f_in, i, j, nxn, nyn, rho_out, u_t, ex, ey)


def apply_bounce_back(state):
    """
    Apply bounce-back boundary condition on every solid node (no-slip).

    Parameters
    ----------
    state : SimulationState
        Reads ``mask``; modifies ``f_in`` in place.
    """
    bounce_back_numba(state.f_in, state.mask, state.params.opposite, state.scratch)


def apply_moving_wall(state, edge, velocity):
    """
    Apply an equilibrium moving-wall condition (e.g. a cavity lid).

    Parameters
    ----------
    state : SimulationState
        Modified in place
    edge : Edge or str
        Edge carrying the moving wall
    velocity : tuple
        Wall velocity (ux, uy)
    """
    edge = Edge.parse(edge)
    params = state.params
    nxn, nyn = edge.normal
    u_wall, v_wall = velocity
    moving_wall_numba(
        state.f_in, state.mask, state.rho,
        edge.axis, edge.index(state.nx, state.ny), nxn, nyn,
        float(u_wall), float(v_wall),
        params.weights, params.cx, params.cy, state.scratch,
    )


def apply_velocity_inlet(state, edge, u_in, clamps=None):
    """
    Apply a Zou-He velocity inlet on one edge.

    Parameters
    ----------
    state : SimulationState
        Modified in place
    edge : Edge or str
        Inlet edge
    u_in : float
        Inflow speed along the inward normal (must be < 1)
    clamps : ndarray, optional
        Integer counters of density fallbacks, one per edge node

    Returns
    -------
    clamps : ndarray
        The counter buffer
    """
    edge = Edge.parse(edge)
    params = state.params
    nxn, nyn = edge.normal
    if clamps is None:
        clamps = np.zeros(edge.length(state.nx, state.ny), dtype=np.int64)
    velocity_inlet_numba(
        state.f_in, state.mask,
        edge.axis, edge.index(state.nx, state.ny), nxn, nyn, float(u_in),
        params.weights, params.cx, params.cy, params.opposite,
        state.scratch, clamps,
    )
    return clamps


def apply_pressure_outlet(state, edge, rho_out=1.0):
    """
    Apply a Zou-He pressure (density) outlet on one edge.

    Parameters
    ----------
    state : SimulationState
        Modified in place
    edge : Edge or str
        Outlet edge
    rho_out : float
        Prescribed outlet density
    """
    edge = Edge.parse(edge)
    params = state.params
    nxn, nyn = edge.normal
    pressure_outlet_numba(
        state.f_in, state.mask,
        edge.axis, edge.index(state.nx, state.ny), nxn, nyn, float(rho_out),
        params.weights, params.cx, params.cy, params.opposite, state.scratch,
    )


def create_cylinder_mask(nx, ny, cx, cy, radius):
    """
    Create a solid mask for a circular cylinder.

    Parameters
    ----------
    nx, ny : int
        Grid dimensions
    cx, cy : float
        Cylinder center coordinates
    radius : float
        Cylinder radius

    Returns
    -------
    mask : ndarray
        Boolean mask (True for solid), shape (nx, ny)
    """
    X, Y = np.meshgrid(np.arange(nx), np.arange(ny), indexing="ij")
    return (X - cx) ** 2 + (Y - cy) ** 2 <= radius ** 2


def create_channel_walls(nx, ny):
    """
    Create solid masks for horizontal channel walls.

    Returns
    -------
    wall_mask : ndarray
        Boolean mask for walls (bottom and top rows), shape (nx, ny)
    """
    mask = np.zeros((nx, ny), dtype=bool)
    mask[:, 0] = True   # Bottom wall
    mask[:, -1] = True  # Top wall
    return mask


def create_cavity_walls(nx, ny):
    """
    Create solid masks for lid-driven cavity (3 walls, open top).

    The cavity has:
    - Bottom wall at y=0 (solid, no-slip)
    - Left wall at x=0 (solid, no-slip)
    - Right wall at x=nx-1 (solid, no-slip)
    - Top at y=ny-1 is the moving lid (handled separately)

    Returns
    -------
    wall_mask : ndarray
        Boolean mask for solid walls (bottom, left, right)
    lid_mask : ndarray
        Boolean mask for moving lid (top, corners excluded)
    """
    wall_mask = np.zeros((nx, ny), dtype=bool)
    wall_mask[:, 0] = True    # Bottom wall
    wall_mask[0, :] = True    # Left wall
    wall_mask[-1, :] = True   # Right wall

    lid_mask = np.zeros((nx, ny), dtype=bool)
    lid_mask[1:-1, -1] = True

    return wall_mask, lid_mask


class VelocityInlet:
    """Zou-He velocity inlet bound to one edge."""

    def __init__(self, edge, u_in):
        if not u_in < 1.0:
            raise ValueError(f"inlet velocity must be < 1 in lattice units, got {u_in}")
        self.edge = Edge.parse(edge)
        self.u_in = float(u_in)
        self.clamps = None

    def bind(self, state):
        self.clamps = np.zeros(self.edge.length(state.nx, state.ny), dtype=np.int64)

    def apply(self, state):
        apply_velocity_inlet(state, self.edge, self.u_in, self.clamps)

    @property
    def density_clamps(self):
        return 0 if self.clamps is None else int(self.clamps.sum())


class PressureOutlet:
    """Zou-He density outlet bound to one edge."""

    def __init__(self, edge, rho_out=1.0):
        if rho_out <= 0.0:
            raise ValueError(f"outlet density must be positive, got {rho_out}")
        self.edge = Edge.parse(edge)
        self.rho_out = float(rho_out)

    def bind(self, state):
        pass

    def apply(self, state):
        apply_pressure_outlet(state, self.edge, self.rho_out)


class MovingWall:
    """Equilibrium velocity condition for a moving wall bound to one edge."""

    def __init__(self, edge, velocity):
        self.edge = Edge.parse(edge)
        self.velocity = (float(velocity[0]), float(velocity[1]))

    def bind(self, state):
        pass

    def apply(self, state):
        apply_moving_wall(state, self.edge, self.velocity)


class BoundaryConditions:
    """
    Manager class for boundary conditions.

    Bounce-back on the solid mask always runs first; edge conditions follow
    in the order they were added. Each edge can carry one condition.
    """

    def __init__(self):
        self.boundaries = []

    def _add(self, condition):
        if condition.edge in self.owned_edges():
            raise ValueError(f"edge {condition.edge.name} already has a boundary condition")
        self.boundaries.append(condition)
        return condition

    def add_velocity_inlet(self, edge, u_in):
        """Add Zou-He velocity inlet on an edge."""
        return self._add(VelocityInlet(edge, u_in))

    def add_pressure_outlet(self, edge, rho_out=1.0):
        """Add Zou-He pressure outlet on an edge."""
        return self._add(PressureOutlet(edge, rho_out))

    def add_moving_wall(self, edge, velocity):
        """Add moving wall boundary on an edge."""
        return self._add(MovingWall(edge, velocity))

    def owned_edges(self):
        return [bc.edge for bc in self.boundaries]

    def bind(self, state):
        """Allocate per-condition buffers for a state, once before stepping."""
        for bc in self.boundaries:
            bc.bind(state)

    def apply(self, state):
        """
        Apply all boundary conditions to the post-streaming populations.

        Parameters
        ----------
        state : SimulationState
            Modified in place
        """
        apply_bounce_back(state)
        for bc in self.boundaries:
            bc.apply(state)

    @property
    def density_clamps(self):
        """Total number of inlet density fallbacks so far."""
        return sum(getattr(bc, "density_clamps", 0) for bc in self.boundaries)

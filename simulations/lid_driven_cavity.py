"""
Lid-Driven Cavity Simulation

Classic benchmark case for incompressible flow solvers.

The lid-driven cavity is a square domain with:
- Three stationary walls (solid nodes, bounce-back)
- One moving wall (lid) on the top edge, imposed as an equilibrium
  velocity condition

Reference data from Ghia et al. (1982) "High-Re Solutions for
Incompressible Flow Using the Navier-Stokes Equations and a
Multigrid Method", Journal of Computational Physics, 48, 387-411.
"""

import sys
import os

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from lbm2d.boundary import BoundaryConditions, Edge, create_cavity_walls
from lbm2d.collision import tau_from_viscosity, viscosity_from_tau
from lbm2d.config import SimulationConfig
from lbm2d.solver import Simulation
from lbm2d.streaming import StreamingMode


# Ghia et al. (1982) centerline velocities at Re = 100
GHIA_DATA = {
    100: {
        # Vertical centerline: u_x vs y
        'y': np.array([0.0000, 0.0547, 0.0625, 0.0703, 0.1016, 0.1719,
                       0.2813, 0.4531, 0.5000, 0.6172, 0.7344, 0.8516,
                       0.9531, 0.9609, 0.9688, 0.9766, 1.0000]),
        'ux': np.array([0.00000, -0.03717, -0.04192, -0.04775, -0.06434, -0.10150,
                        -0.15662, -0.21090, -0.20581, -0.13641, 0.00332, 0.23151,
                        0.68717, 0.73722, 0.78871, 0.84123, 1.00000]),
        # Horizontal centerline: u_y vs x
        'x': np.array([0.0000, 0.0625, 0.0703, 0.0781, 0.0938, 0.1563,
                       0.2266, 0.2344, 0.5000, 0.8047, 0.8594, 0.9063,
                       0.9453, 0.9531, 0.9609, 0.9688, 1.0000]),
        'uy': np.array([0.00000, 0.09233, 0.10091, 0.10890, 0.12317, 0.16077,
                        0.17507, 0.17527, 0.05454, -0.24533, -0.22445, -0.16914,
                        -0.10313, -0.08864, -0.07391, -0.05906, 0.00000])
    },
}


class LidDrivenCavity:
    """
    Lid-driven cavity case.

    Parameters
    ----------
    n : int
        Grid size (n x n cavity)
    re : float, optional
        Reynolds number (Re = U_lid * L / nu), sets tau
    u_lid : float
        Lid velocity (default 0.05 in lattice units for stability)
    tau : float, optional
        Relaxation time, used instead of ``re``
    iterations : int
        Number of time steps
    **config_kwargs
        Further ``SimulationConfig`` fields (precision, snapshot_interval, ...)
    """

    def __init__(self, n, re=100.0, u_lid=0.05, tau=None, iterations=20000, **config_kwargs):
        self.n = n
        self.u_lid = u_lid

        # Effective cavity size between the wall nodes
        self.L = n - 2
        if tau is None:
            tau = tau_from_viscosity(u_lid * self.L / re)
        self.tau = tau
        self.nu = viscosity_from_tau(tau)
        self.re = u_lid * self.L / self.nu

        config = SimulationConfig(
            nx=n,
            ny=n,
            tau=tau,
            iterations=iterations,
            characteristic_length=self.L,
            characteristic_velocity=u_lid,
            streaming_mode=StreamingMode.BOUNDED,
            **config_kwargs,
        )

        self.wall_mask, self.lid_mask = create_cavity_walls(n, n)

        boundaries = BoundaryConditions()
        boundaries.add_moving_wall(Edge.NORTH, (u_lid, 0.0))

        self.simulation = Simulation(config, mask=self.wall_mask, boundaries=boundaries)

    def run(self, progress=False):
        return self.simulation.run(progress=progress)

    def get_centerline_profiles(self):
        """
        Get velocity profiles along centerlines for comparison with Ghia.

        Returns
        -------
        y_norm : ndarray
            Normalized y-coordinates (0 at the bottom wall, 1 at the lid)
        ux_centerline : ndarray
            u_x along vertical centerline, normalized by u_lid
        x_norm : ndarray
            Normalized x-coordinates (0 to 1)
        uy_centerline : ndarray
            u_y along horizontal centerline, normalized by u_lid
        """
        sim = self.simulation
        center = self.n // 2

        ux_centerline = sim.u[center, :] / self.u_lid
        uy_centerline = sim.v[:, center] / self.u_lid
        coords = np.linspace(0, 1, self.n)

        return coords, ux_centerline, coords, uy_centerline

    def compare_with_ghia(self, re=100):
        """
        RMS deviation of the centerline profiles from Ghia et al.

        Returns
        -------
        ux_error, uy_error : float
        """
        ghia = GHIA_DATA[re]
        y_norm, ux_profile, x_norm, uy_profile = self.get_centerline_profiles()

        ux_interp = np.interp(ghia['y'], y_norm, ux_profile)
        uy_interp = np.interp(ghia['x'], x_norm, uy_profile)

        ux_error = np.sqrt(np.mean((ux_interp - ghia['ux']) ** 2))
        uy_error = np.sqrt(np.mean((uy_interp - ghia['uy']) ** 2))

        return ux_error, uy_error


def run_lid_driven_cavity(n=129, re=100, iterations=60000, verbose=True):
    """
    Run lid-driven cavity simulation and print a summary.

    Returns
    -------
    cavity : LidDrivenCavity
        Case object with the finished simulation
    """
    cavity = LidDrivenCavity(n, re=re, iterations=iterations)

    if verbose:
        print("Lid-Driven Cavity Simulation")
        print("=" * 50)
        print(f"Grid: {n} x {n}")
        print(f"Reynolds number: {cavity.re:.1f}")
        print(f"Tau: {cavity.tau:.4f}")
        print(f"Viscosity: {cavity.nu:.6f}")
        print()

    result = cavity.run(progress=verbose)

    if verbose:
        print()
        print(f"Status: {result.status.value}")
        print(f"Steps: {result.steps}")
        print(f"Simulation time: {result.elapsed:.2f}s ({result.mlups:.1f} MLUPS)")

        if result.completed and re in GHIA_DATA:
            ux_err, uy_err = cavity.compare_with_ghia(re)
            print(f"RMS Error vs Ghia: ux = {ux_err:.4f}, uy = {uy_err:.4f}")

    return cavity


if __name__ == "__main__":
    run_lid_driven_cavity(n=129, re=100)

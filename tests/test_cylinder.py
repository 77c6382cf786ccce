"""
Flow Around Cylinder Tests

Validates vortex shedding, drag and Strouhal number in a walled channel.
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from lbm2d.analysis import force_coefficients, strouhal_number, summarize_forces
from lbm2d.diagnostics import RunStatus


@pytest.fixture(scope="module")
def shedding_run():
    """Re=100 cylinder run long enough for a developed vortex street."""
    from simulations.cylinder_flow import CylinderFlow

    case = CylinderFlow(nx=320, ny=80, radius=8, re=100.0, u_inlet=0.1, iterations=16000)
    result = case.run()
    return case, result


class TestCylinderFlow:
    """Validate cylinder flow characteristics."""

    def test_run_completes(self, shedding_run):
        """The run finishes without divergence or inlet clamps."""
        case, result = shedding_run

        assert result.status is RunStatus.COMPLETED
        assert result.density_clamps == 0
        assert np.all(np.isfinite(case.simulation.u))
        assert case.simulation.diagnostics.perturbation_applied

    def test_lift_oscillates(self, shedding_run):
        """Lift coefficient oscillates with nonzero amplitude after the transient."""
        _, result = shedding_run
        _, _, cl = force_coefficients(result.forces)

        assert len(cl) == 16000 // 50
        assert np.std(cl[len(cl) // 2:]) > 0.01

    def test_drag_coefficient(self, shedding_run):
        """Mean drag is in the range expected for a confined cylinder at Re=100."""
        _, result = shedding_run
        summary = summarize_forces(result.forces)

        assert 0.8 < summary['C_D'] < 4.0

    def test_strouhal_number(self, shedding_run):
        """Shedding frequency from the wake probe gives a plausible St."""
        case, result = shedding_run

        developed = result.probe[len(result.probe) // 2:]
        st = strouhal_number(developed, case.diameter, case.u_inlet)

        assert 0.1 < st < 0.4

    def test_inlet_velocity(self, shedding_run):
        """Inlet nodes carry the prescribed inflow."""
        case, _ = shedding_run

        np.testing.assert_allclose(case.simulation.u[0, 1:-1], case.u_inlet, rtol=1e-10)

    def test_outlet_density(self, shedding_run):
        """Outlet nodes hold the prescribed density while the wake passes."""
        case, _ = shedding_run

        np.testing.assert_allclose(case.simulation.rho[-1, 1:-1], 1.0, rtol=1e-10)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

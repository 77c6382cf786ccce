"""
Tests for configuration and the time loop.

Validates setup errors, run bookkeeping, perturbation handling, divergence
abort and allocation-free stepping.
"""

import tracemalloc

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from lbm2d.boundary import BoundaryConditions, Edge, create_cavity_walls, create_cylinder_mask
from lbm2d.config import ConfigurationError, SimulationConfig
from lbm2d.diagnostics import RunStatus
from lbm2d.lattice import EY
from lbm2d.solver import Simulation
from lbm2d.streaming import StreamingMode


class TestConfiguration:
    """Test eager validation of run parameters."""

    @pytest.mark.parametrize("kwargs", [
        dict(tau=0.5),
        dict(tau=float("nan")),
        dict(nx=2),
        dict(precision="float16"),
        dict(iterations=-1),
        dict(force_interval=-5),
        dict(divergence_check_interval=0),
        dict(probe_location=(100, 0), nx=50),
        dict(perturbation_location=(5, 9), ny=10),
        dict(streaming_mode="open"),
        dict(obstacle=3),
    ])
    def test_invalid_parameters(self, kwargs):
        """Each invalid parameter raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            SimulationConfig(**kwargs)

    def test_configuration_error_is_value_error(self):
        """Callers can catch ValueError."""
        assert issubclass(ConfigurationError, ValueError)

    def test_streaming_mode_from_string(self):
        """Streaming mode accepts its string value."""
        config = SimulationConfig(streaming_mode="bounded")

        assert config.streaming_mode is StreamingMode.BOUNDED

    def test_high_mach_warns(self):
        """Mach number above 0.3 is allowed with a warning."""
        with pytest.warns(UserWarning):
            SimulationConfig(characteristic_velocity=0.2)

    def test_reynolds_number(self):
        """Re = U D / nu with nu = (tau - 0.5) / 3."""
        config = SimulationConfig(tau=0.548, characteristic_length=16, characteristic_velocity=0.1)

        assert config.reynolds == pytest.approx(100.0)


class TestSetup:
    """Test errors and state produced by the Simulation constructor."""

    def test_mask_shape_mismatch(self):
        """Mask must match the grid."""
        config = SimulationConfig(nx=20, ny=10, iterations=10)
        with pytest.raises(ConfigurationError):
            Simulation(config, mask=np.zeros((10, 20), dtype=bool))

    def test_bounded_mode_needs_covered_edges(self):
        """An open cavity without a lid condition is rejected."""
        wall, _ = create_cavity_walls(20, 20)
        config = SimulationConfig(nx=20, ny=20, iterations=10, streaming_mode=StreamingMode.BOUNDED)

        with pytest.raises(ConfigurationError):
            Simulation(config, mask=wall)

        boundaries = BoundaryConditions()
        boundaries.add_moving_wall(Edge.NORTH, (0.05, 0.0))
        Simulation(config, mask=wall, boundaries=boundaries)

    def test_explicit_perturbation_on_solid(self):
        """An explicit perturbation target inside a solid is an error."""
        mask = create_cylinder_mask(40, 20, 10, 10, 3)
        config = SimulationConfig(
            nx=40, ny=20, iterations=10,
            perturbation_step=5, perturbation_location=(10, 10),
        )

        with pytest.raises(ConfigurationError):
            Simulation(config, mask=mask)

    def test_default_perturbation_on_solid_is_skipped(self):
        """The default target inside a solid is skipped with a diagnostic."""
        # default target is (nx // 5 + D, ny // 2) = (12, 10)
        mask = create_cylinder_mask(40, 20, 12, 10, 3)
        config = SimulationConfig(
            nx=40, ny=20, iterations=10, perturbation_step=5, characteristic_length=4.0,
        )

        sim = Simulation(config, mask=mask)
        result = sim.run()

        assert result.status is RunStatus.COMPLETED
        assert not sim.diagnostics.perturbation_applied
        assert any("perturbation skipped" in m for m in result.messages)

    def test_mask_frozen(self):
        """The mask cannot change once the simulation exists."""
        sim = Simulation(SimulationConfig(nx=10, ny=10, iterations=5))

        assert sim.state.mask_frozen
        with pytest.raises(ValueError):
            sim.state.set_mask(np.ones((10, 10), dtype=bool))

    def test_rest_state_populations(self):
        """A rest state holds the lattice weights on every node."""
        sim = Simulation(SimulationConfig(nx=12, ny=8, iterations=5))

        np.testing.assert_allclose(sim.state.f_in[:, :, 0], 4.0 / 9.0, rtol=1e-15)
        np.testing.assert_allclose(sim.state.f_in[:, :, 1], 1.0 / 9.0, rtol=1e-15)
        np.testing.assert_array_equal(sim.state.f_out, sim.state.f_in)

    def test_solids_start_at_rest(self):
        """initialize leaves solid nodes at the rest state."""
        mask = create_cylinder_mask(30, 20, 10, 10, 3)
        sim = Simulation(SimulationConfig(nx=30, ny=20, iterations=5), mask=mask)
        sim.initialize(ux=0.05)

        assert np.all(sim.u[mask] == 0.0)
        assert np.all(sim.u[~mask] == 0.05)

    def test_float32_precision(self):
        """Single precision allocates float32 fields and runs."""
        config = SimulationConfig(nx=24, ny=16, iterations=50, precision="float32")
        sim = Simulation(config)
        sim.initialize(ux=0.02)

        result = sim.run()

        assert sim.state.f_in.dtype == np.float32
        assert result.status is RunStatus.COMPLETED
        assert np.all(np.isfinite(sim.u))


class TestRun:
    """Test the time loop and its diagnostics."""

    @pytest.fixture
    def channel(self):
        """Cylinder in a periodic box with every diagnostic enabled."""
        nx, ny = 60, 30
        config = SimulationConfig(
            nx=nx, ny=ny, tau=0.6, iterations=120,
            snapshot_interval=40, force_interval=10,
            probe_location=(40, 15),
            characteristic_length=8.0, characteristic_velocity=0.05,
        )
        sim = Simulation(config, mask=create_cylinder_mask(nx, ny, 15, 15, 4))
        sim.initialize(ux=0.05)
        return sim

    def test_run_bookkeeping(self, channel):
        """Probe, force and snapshot counts follow their intervals."""
        result = channel.run()

        assert result.status is RunStatus.COMPLETED
        assert result.completed
        assert result.steps == 120
        assert len(result.probe) == 120
        assert [s.t for s in result.forces] == list(range(10, 121, 10))
        assert [s.t for s in result.snapshots] == [40, 80, 120]
        assert result.mlups > 0.0

    def test_snapshots_are_independent(self, channel):
        """Snapshots are read-only float32 copies."""
        result = channel.run()
        snap = result.snapshots[-1]
        before = snap.field.copy()

        channel.state.u[...] = 1.0

        assert snap.field.dtype == np.float32
        assert not snap.field.flags.writeable
        np.testing.assert_array_equal(snap.field, before)

    def test_step_after_completion(self, channel):
        """A finished simulation cannot be stepped."""
        channel.run()

        with pytest.raises(RuntimeError):
            channel.step()

    def test_initialize_after_step(self, channel):
        """Initial conditions can only be set before the first step."""
        channel.step()

        with pytest.raises(RuntimeError):
            channel.initialize()

    def test_perturbation_kick(self):
        """The kick adds and removes velocity on two stacked nodes."""
        config = SimulationConfig(
            nx=20, ny=20, iterations=10,
            perturbation_step=1, perturbation_location=(5, 5), perturbation_amplitude=0.01,
        )
        sim = Simulation(config)

        sim.step()

        assert sim.diagnostics.perturbation_applied
        assert sim.v[5, 5] == pytest.approx(0.01)
        assert sim.v[5, 6] == pytest.approx(-0.01)
        assert np.sum(sim.state.f_out[5, 5] * EY) > 0.0
        assert np.sum(sim.state.f_out * EY) == pytest.approx(0.0, abs=1e-12)


class TestDivergence:
    """Test the abort path."""

    def test_nan_aborts(self):
        """NaN at the monitor node aborts the run."""
        config = SimulationConfig(nx=16, ny=16, iterations=50, divergence_check_interval=1)
        sim = Simulation(config)
        sim.state.f_out[...] = np.nan

        result = sim.run()

        assert result.status is RunStatus.ABORTED
        assert result.steps == 1
        assert any("aborted" in m for m in result.messages)
        with pytest.raises(RuntimeError):
            sim.step()

    def test_explicit_monitor_on_solid(self):
        """An explicit monitor node inside a solid is an error."""
        mask = create_cylinder_mask(40, 30, 20, 15, 4)
        config = SimulationConfig(nx=40, ny=30, iterations=20, monitor_location=(20, 15))

        with pytest.raises(ConfigurationError):
            Simulation(config, mask=mask)

    def test_default_monitor_moves_off_solid(self):
        """A solid domain centre moves the monitor to fluid and still catches NaN."""
        mask = create_cylinder_mask(40, 30, 20, 15, 4)
        config = SimulationConfig(nx=40, ny=30, iterations=20, divergence_check_interval=1)
        sim = Simulation(config, mask=mask)

        assert not mask[sim.monitor]
        assert (sim.monitor[0] - 20) ** 2 + (sim.monitor[1] - 15) ** 2 == 17

        sim.state.f_out[~mask] = np.nan
        result = sim.run()

        assert result.status is RunStatus.ABORTED
        assert result.steps == 1
        assert any("monitor moved" in m for m in result.messages)

    def test_density_limit_aborts(self):
        """Density above max_density aborts at the next check."""
        config = SimulationConfig(
            nx=16, ny=16, iterations=50, divergence_check_interval=5, max_density=2.0,
        )
        sim = Simulation(config)
        sim.initialize(rho=3.0)

        result = sim.run()

        assert result.status is RunStatus.ABORTED
        assert result.steps == 5


class TestAllocation:
    """Test that stepping allocates nothing proportional to the grid."""

    def test_step_is_allocation_free(self):
        """
        Traced peak during warmed steps stays far below one field array.

        tracemalloc only sees the Python and numpy allocators, not Numba's
        own runtime, so the buffers the kernels write into are also checked
        to be the ones allocated at setup.
        """
        nx, ny = 96, 64
        config = SimulationConfig(
            nx=nx, ny=ny, iterations=100, probe_location=(50, 30),
        )
        mask = create_cylinder_mask(nx, ny, 30, 32, 6)
        sim = Simulation(config, mask=mask)
        sim.initialize(ux=0.05)
        state = sim.state
        buffers = [state.f_in, state.f_out, state.rho, state.u, state.v, state.scratch]
        probe = sim.diagnostics.probe

        for _ in range(3):
            sim.step()

        field_bytes = nx * ny * 8
        tracemalloc.start()
        try:
            baseline, _ = tracemalloc.get_traced_memory()
            for _ in range(20):
                sim.step()
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert peak - baseline < field_bytes // 3
        after = [state.f_in, state.f_out, state.rho, state.u, state.v, state.scratch]
        assert all(a is b for a, b in zip(buffers, after))
        assert sim.diagnostics.probe is probe


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

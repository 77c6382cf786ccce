"""
Time Loop

Drives one simulation from a validated configuration and a solid mask.

Per time step t (1-based):
    1. stream          f_out -> f_in
    2. boundaries      bounce-back, then edge conditions (on f_in)
    3. moments         rho, u, v from f_in
    4. perturbation    only at t == perturbation_step
    5. collision       f_in -> f_out
    6. diagnostics     divergence check, probe, force, vorticity snapshot

Every array the loop touches is allocated during setup. Diagnostic
messages are buffered and logged once the loop has exited.
"""

import logging
import time

import numpy as np
from tqdm import tqdm

from .boundary import BoundaryConditions
from .collision import collide_bgk
from .config import ConfigurationError
from .diagnostics import Diagnostics, RunStatus, SimulationResult, VorticitySnapshot
from .forces import compute_obstacle_force, resolve_obstacle
from .observables import compute_macroscopic, compute_vorticity
from .state import SimulationState
from .streaming import StreamingMode, stream, uncovered_edge_nodes

log = logging.getLogger(__name__)


class Simulation:
    """
    D2Q9 BGK simulation.

    Parameters
    ----------
    config : SimulationConfig
        Run parameters
    mask : ndarray, optional
        Boolean solid mask, shape (nx, ny). Frozen for the whole run.
    boundaries : BoundaryConditions, optional
        Edge conditions; bounce-back on ``mask`` is always applied

    Raises
    ------
    ConfigurationError
        If the mask, the edge coverage, the monitor node or the perturbation
        target is invalid
    """

    def __init__(self, config, mask=None, boundaries=None):
        config.validate()
        self.config = config
        self.state = SimulationState(config.nx, config.ny, config.tau, dtype=config.dtype)

        if mask is not None:
            try:
                self.state.set_mask(mask)
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from None

        self.boundaries = boundaries if boundaries is not None else BoundaryConditions()
        self._check_edges()

        try:
            predicate = resolve_obstacle(config.obstacle)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None
        self.obstacle = np.asarray(predicate(self.state.mask.copy()), dtype=np.bool_)
        if self.obstacle.shape != self.state.shape:
            raise ConfigurationError(
                f"obstacle predicate returned shape {self.obstacle.shape}, "
                f"expected {self.state.shape}"
            )

        self.diagnostics = Diagnostics(config.iterations)
        self._perturbation_target = self._resolve_perturbation()
        self._probe = tuple(config.probe_location) if config.probe_location is not None else None
        self.monitor = self._resolve_monitor()
        self._vorticity = np.zeros(self.state.shape, dtype=self.state.dtype)
        self._n_logged = 0

        self.state.initialize_from_fields(1.0, 0.0, 0.0)
        self.state.freeze_mask()
        self.boundaries.bind(self.state)

        self.t = 0
        self.status = RunStatus.RUNNING if config.iterations > 0 else RunStatus.COMPLETED

        log.info(
            "Simulation %d x %d, tau=%.4f (nu=%.5f), Re=%.1f, %s streaming, %d solid nodes",
            config.nx, config.ny, config.tau, (config.tau - 0.5) / 3.0,
            config.reynolds, config.streaming_mode.value, int(self.state.mask.sum()),
        )

    def _check_edges(self):
        if self.config.streaming_mode is not StreamingMode.BOUNDED:
            return
        uncovered = uncovered_edge_nodes(self.state.mask, self.boundaries.owned_edges())
        if uncovered:
            preview = ", ".join(str(node) for node in uncovered[:5])
            raise ConfigurationError(
                f"bounded streaming needs every edge node to be solid or owned by an "
                f"edge condition; {len(uncovered)} uncovered, e.g. {preview}"
            )

    def _resolve_perturbation(self):
        cfg = self.config
        if cfg.perturbation_step == 0:
            return None

        mask = self.state.mask
        if cfg.perturbation_location is not None:
            i, j = cfg.perturbation_location
            if mask[i, j] or mask[i, j + 1]:
                raise ConfigurationError(
                    f"perturbation_location {(i, j)} or the node above it is solid"
                )
            return i, j

        i, j = cfg.default_perturbation_location()
        if i >= cfg.nx or j + 1 >= cfg.ny or mask[i, j] or mask[i, j + 1]:
            self.diagnostics.note(
                f"perturbation skipped: default location {(i, j)} is solid or outside the grid"
            )
            return None
        return i, j

    def _resolve_monitor(self):
        # solid nodes always report rho=1; the check has to sit on fluid
        cfg = self.config
        mask = self.state.mask
        i, j = cfg.resolved_monitor_location()
        if not mask[i, j]:
            return i, j
        if cfg.monitor_location is not None:
            raise ConfigurationError(f"monitor_location {(i, j)} is solid")

        fluid = np.argwhere(~mask)
        if len(fluid) == 0:
            raise ConfigurationError("domain has no fluid node to monitor")
        d2 = (fluid[:, 0] - i) ** 2 + (fluid[:, 1] - j) ** 2
        node = tuple(int(x) for x in fluid[np.argmin(d2)])
        self.diagnostics.note(
            f"monitor moved from solid centre {(i, j)} to nearest fluid node {node}"
        )
        return node

    def initialize(self, rho=1.0, ux=0.0, uy=0.0):
        """
        Set the initial equilibrium state. Solid nodes stay at rest.

        Only allowed before the first step.
        """
        if self.t != 0:
            raise RuntimeError("cannot re-initialize a simulation that has already stepped")
        self.state.initialize_from_fields(rho, ux, uy)

    @property
    def rho(self):
        return self.state.rho

    @property
    def u(self):
        return self.state.u

    @property
    def v(self):
        return self.state.v

    def vorticity(self):
        """Vorticity of the current velocity field (new array)."""
        return compute_vorticity(self.state)

    def step(self):
        """
        Advance one time step.

        Returns
        -------
        status : RunStatus

        Raises
        ------
        RuntimeError
            If the simulation has already completed or aborted
        """
        if self.status is not RunStatus.RUNNING:
            raise RuntimeError(f"simulation is {self.status.value}, cannot step")

        cfg = self.config
        state = self.state
        diag = self.diagnostics
        t = self.t + 1

        stream(state)
        self.boundaries.apply(state)
        compute_macroscopic(state)

        if t == cfg.perturbation_step and self._perturbation_target is not None:
            i, j = self._perturbation_target
            state.v[i, j] += cfg.perturbation_amplitude
            state.v[i, j + 1] -= cfg.perturbation_amplitude
            diag.perturbation_applied = True

        collide_bgk(state)
        self.t = t

        if t % cfg.divergence_check_interval == 0 and self._diverged():
            self.status = RunStatus.ABORTED
            diag.note(
                f"aborted at step {t}: rho={state.rho[self.monitor]!r} "
                f"at monitor node {self.monitor}"
            )
            return self.status

        if self._probe is not None:
            diag.record_probe(state.v[self._probe])

        if cfg.force_interval and t % cfg.force_interval == 0:
            diag.forces.append(
                compute_obstacle_force(
                    state,
                    cfg.characteristic_velocity,
                    cfg.characteristic_length,
                    rho_ref=cfg.reference_density,
                    obstacle=self.obstacle,
                    t=t,
                )
            )

        if cfg.snapshot_interval and t % cfg.snapshot_interval == 0:
            compute_vorticity(state.u, state.v, out=self._vorticity)
            diag.snapshots.append(VorticitySnapshot.capture(t, self._vorticity))

        if t >= cfg.iterations:
            self.status = RunStatus.COMPLETED
        return self.status

    def _diverged(self):
        rho = self.state.rho[self.monitor]
        u = self.state.u[self.monitor]
        return not (np.isfinite(rho) and np.isfinite(u)) or rho > self.config.max_density

    def run(self, progress=False):
        """
        Step until completion or abort.

        Parameters
        ----------
        progress : bool
            Show a tqdm progress bar

        Returns
        -------
        result : SimulationResult
        """
        cfg = self.config
        t_start = self.t
        steps = range(self.t, cfg.iterations) if self.status is RunStatus.RUNNING else range(0)

        start = time.perf_counter()
        bar = tqdm(total=len(steps), desc="LBM", unit="step", disable=not progress)
        try:
            for _ in steps:
                status = self.step()
                bar.update()
                if status is not RunStatus.RUNNING:
                    break
        finally:
            bar.close()
        elapsed = time.perf_counter() - start

        n_steps = self.t - t_start
        mlups = cfg.nx * cfg.ny * n_steps / elapsed / 1e6 if elapsed > 0 else 0.0
        self._flush_log()

        if self.status is RunStatus.ABORTED:
            log.warning("Run aborted after %d steps", self.t)
        else:
            log.info("Completed %d steps in %.2f s (%.1f MLUPS)", n_steps, elapsed, mlups)

        clamps = self.boundaries.density_clamps
        if clamps:
            log.warning("Inlet density was clamped %d times", clamps)

        return self.result(elapsed=elapsed, mlups=mlups)

    def _flush_log(self):
        for message in self.diagnostics.messages[self._n_logged:]:
            log.warning(message)
        self._n_logged = len(self.diagnostics.messages)

    def result(self, elapsed=0.0, mlups=0.0):
        """Collect the diagnostics gathered so far."""
        diag = self.diagnostics
        return SimulationResult(
            status=self.status,
            steps=self.t,
            snapshots=list(diag.snapshots),
            forces=list(diag.forces),
            probe=diag.probe_series.copy(),
            messages=list(diag.messages),
            density_clamps=self.boundaries.density_clamps,
            elapsed=elapsed,
            mlups=mlups,
        )

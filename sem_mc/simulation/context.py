"""
Library handle and simulation context lifecycle.

    Library:  uninitialized -> active -> finalized   (each step exactly once)
    Context:  CONFIGURED -> RUNNING -> CONFIGURED ... -> DESTROYED

A context owns its samples (addressed by arena handles), its random state
for single-electron calls, an optional progress sink and a cancel token.
Runs are not reentrant: a second run while one is in progress fails with
NotInitializedError instead of sharing accumulators.
"""

import logging
import threading
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from sem_mc.core.materials import Material, material_from_dict
from sem_mc.core.parameters import SimulationParameters
from sem_mc.core.particle import Electron
from sem_mc.core.sample import HomogeneousSample, LayeredSample, Sample
from sem_mc.errors import InvalidParameterError, NotInitializedError
from sem_mc.physics.stopping_power import auto_max_depth
from sem_mc.simulation.arena import Handle, HandleArena
from sem_mc.simulation.progress import CancelToken, ProgressSink, as_sink
from sem_mc.simulation.results import SimulationResults
from sem_mc.simulation.scan import ScanController
from sem_mc.transport.detector import Detector
from sem_mc.transport.engine import TrajectoryEngine, TrajectoryResult

logger = logging.getLogger(__name__)

MaterialLike = Union[Material, str, dict]


class ContextState(str, Enum):
    CONFIGURED = 'configured'
    RUNNING = 'running'
    DESTROYED = 'destroyed'


class Library:
    """
    Explicit library lifetime.

    Example:
        with Library() as lib:
            ctx = lib.create_context()
            ...
    """

    def __init__(self):
        self._state = 'uninitialized'
        self._contexts: List['SimulationContext'] = []

    @property
    def active(self) -> bool:
        return self._state == 'active'

    def initialize(self) -> 'Library':
        if self._state != 'uninitialized':
            raise NotInitializedError(f"Library already {self._state}")
        self._state = 'active'
        logger.debug("Library initialized")
        return self

    def finalize(self):
        """Destroy every live context and close the library."""
        if self._state != 'active':
            raise NotInitializedError(f"Cannot finalize a library that is {self._state}")
        for context in list(self._contexts):
            if context.state != ContextState.DESTROYED:
                context.destroy()
        self._contexts.clear()
        self._state = 'finalized'
        logger.debug("Library finalized")

    def require_active(self):
        if not self.active:
            raise NotInitializedError(f"Library is {self._state}")

    def create_context(self, seed: int = 0) -> 'SimulationContext':
        self.require_active()
        context = SimulationContext(self, seed=seed)
        self._contexts.append(context)
        return context

    def _forget(self, context: 'SimulationContext'):
        if context in self._contexts:
            self._contexts.remove(context)

    def __enter__(self):
        return self.initialize()

    def __exit__(self, exc_type, exc, tb):
        if self.active:
            self.finalize()
        return False


class SimulationContext:
    """
    Owns samples, random state and progress reporting for a series of runs.

    Parameters:
        library: Active library the context belongs to
        seed: Seed of the context RNG used by simulate_electron
    """

    def __init__(self, library: Library, seed: int = 0):
        library.require_active()
        self.library = library
        self.samples: HandleArena[Sample] = HandleArena('sample')
        self.rng: Optional[np.random.Generator] = np.random.default_rng(seed)
        self.progress: Optional[ProgressSink] = None
        self.cancel_token = CancelToken()
        self.state = ContextState.CONFIGURED
        self._run_lock = threading.Lock()

    def _require_usable(self):
        if self.state == ContextState.DESTROYED:
            raise NotInitializedError("Simulation context has been destroyed")
        self.library.require_active()

    def _require_idle(self):
        self._require_usable()
        if self.state == ContextState.RUNNING:
            raise NotInitializedError("Simulation context is busy")

    # Samples

    def add_sample(self, sample: Sample) -> Handle:
        self._require_usable()
        if not isinstance(sample, Sample):
            raise InvalidParameterError(f"Expected a Sample, got {sample!r}")
        return self.samples.insert(sample)

    def create_homogeneous_sample(self, material: MaterialLike, width: float,
                                  height: float, depth: float) -> Handle:
        return self.add_sample(HomogeneousSample(material_from_dict(material),
                                                 width, height, depth))

    def create_layered_sample(self, layers: Sequence[Tuple[MaterialLike, float]],
                              width: float, height: float) -> Handle:
        resolved = []
        for entry in layers:
            try:
                material, thickness = entry
            except (TypeError, ValueError):
                raise InvalidParameterError(
                    f"Layer {entry!r} must be a (material, thickness) pair") from None
            resolved.append((material_from_dict(material), thickness))
        return self.add_sample(LayeredSample(resolved, width, height))

    def get_sample(self, handle: Handle) -> Sample:
        self._require_usable()
        return self.samples.get(handle)

    def destroy_sample(self, handle: Handle):
        # A sample may not disappear under a running scan
        self._require_idle()
        self.samples.remove(handle)

    # Progress and cancellation

    def set_progress_sink(self, sink) -> None:
        """Register a ProgressSink or callable(fraction); None unregisters."""
        self._require_usable()
        self.progress = as_sink(sink)

    def cancel(self):
        """Ask a running scan to stop at the next pixel/row boundary."""
        self.cancel_token.cancel()

    # Runs

    def run(self, sample: Union[Handle, Sample], params: SimulationParameters,
            verbose: bool = False) -> SimulationResults:
        """
        Run a full scan.

        Parameters:
            sample: Handle from this context (or a Sample object)
            params: Parameter bundle
            verbose: Print a run summary

        Returns:
            SimulationResults owned by the caller

        Raises:
            NotInitializedError: context destroyed or already running
            InvalidParameterError, PhysicsError: rejected before any work
            SimulationCancelled: cancel() was called; context stays CONFIGURED
        """
        self._require_usable()
        if not self._run_lock.acquire(blocking=False):
            raise NotInitializedError("Simulation context is busy")
        self.cancel_token.reset()
        self.state = ContextState.RUNNING
        try:
            target = self.samples.get(sample) if isinstance(sample, Handle) else sample
            if not isinstance(target, Sample):
                raise InvalidParameterError(f"Expected a sample handle, got {sample!r}")
            controller = ScanController(target, params, progress=self.progress,
                                        cancel=self.cancel_token, verbose=verbose)
            return controller.run()
        finally:
            if self.state == ContextState.RUNNING:
                self.state = ContextState.CONFIGURED
            self.cancel_token.reset()
            self._run_lock.release()

    def simulate_electron(self, sample: Union[Handle, Sample], params: SimulationParameters,
                          energy: float, position: Sequence[float],
                          direction: Sequence[float],
                          rng: Optional[np.random.Generator] = None) -> TrajectoryResult:
        """
        Transport one electron outside the scan loop.

        Parameters:
            sample: Handle from this context (or a Sample object)
            params: Monte Carlo and detector settings are taken from here
            energy: Starting energy [keV]
            position: Starting point [nm]
            direction: Unit direction
            rng: Generator to draw from (default: the context RNG)

        Raises:
            PhysicsError: non-unit direction or unusable material
        """
        self._require_idle()
        params.validate()
        target = self.samples.get(sample) if isinstance(sample, Handle) else sample
        mc = params.monte_carlo
        max_depth = mc.max_depth
        if max_depth is None:
            max_depth = auto_max_depth(target.surface_material, max(energy, params.beam.energy))
        engine = TrajectoryEngine(target, mc, Detector(params.detector), max_depth=max_depth)
        electron = Electron(energy, position, direction)
        return engine.simulate(electron, rng if rng is not None else self.rng)

    def destroy(self):
        """Release samples and random state. Refused while a run is in progress."""
        if self.state == ContextState.DESTROYED:
            return
        if not self._run_lock.acquire(blocking=False):
            raise NotInitializedError("Cannot destroy a running simulation context")
        try:
            self.samples.clear()
            self.rng = None
            self.progress = None
            self.state = ContextState.DESTROYED
        finally:
            self._run_lock.release()
        self.library._forget(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.destroy()
        return False

    def __repr__(self) -> str:
        return f"SimulationContext({self.state.value}, samples={len(self.samples)})"

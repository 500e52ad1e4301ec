"""
Monte Carlo trajectory engine for electrons in a sample.

Single-scattering random walk:
    - Elastic mean free path from the local material
    - Exponentially distributed step length
    - Step clipped at layer interfaces and bounding-box faces
    - Continuous energy loss along the step (modified Bethe)
    - Screened Rutherford deflection at each scattering point
    - Escape through the top surface handed to the detector

Each electron ends in exactly one terminal state. Collisions and boundary
crossings are both capped so no trajectory can run unbounded.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from sem_mc.core.parameters import MonteCarloParams
from sem_mc.core.particle import Electron
from sem_mc.core.sample import Sample
from sem_mc.errors import PhysicsError
from sem_mc.physics.scattering import ElasticScattering, ScatteringModel, isotropic_direction
from sem_mc.physics.secondary import se_generation
from sem_mc.physics.stopping_power import StoppingModel, StoppingPower
from sem_mc.transport.detector import Detector

logger = logging.getLogger(__name__)

# Distance an electron is pushed past an interface after a clipped step [nm]
BOUNDARY_NUDGE = 1.0e-6


class TrajectoryState(str, Enum):
    TRAVELING = 'traveling'
    ESCAPED_TOP = 'escaped_top'
    ABSORBED = 'absorbed'
    COLLISION_LIMIT = 'collision_limit'
    TRANSMITTED = 'transmitted'


@dataclass
class TrajectoryResult:
    """
    Outcome of one electron trajectory.

    Energies in keV, lengths in nm. For an escape, position/direction/energy
    are taken at the surface crossing. Secondaries spawned anywhere in the
    cascade of a primary are collected flat in `secondaries`.
    """
    state: TrajectoryState
    energy: float
    position: Tuple[float, float, float]
    direction: Tuple[float, float, float]
    collisions: int = 0
    boundary_crossings: int = 0
    max_depth: float = 0.0
    path_length: float = 0.0
    energy_deposited: float = 0.0
    se_yield: float = 0.0
    detected_se: float = 0.0
    detected_bse: float = 0.0
    generation: int = 0
    secondaries: List['TrajectoryResult'] = field(default_factory=list)

    @property
    def escaped(self) -> bool:
        return self.state == TrajectoryState.ESCAPED_TOP

    @property
    def backscattered(self) -> bool:
        """A primary that left through the top surface."""
        return self.escaped and self.generation == 0

    @property
    def detected_weight(self) -> float:
        """Signal registered from this electron and its whole cascade."""
        total = self.detected_se + self.detected_bse
        for secondary in self.secondaries:
            total += secondary.detected_se + secondary.detected_bse
        return total

    @property
    def n_secondaries(self) -> int:
        return len(self.secondaries)


class TrajectoryEngine:
    """
    Transports single electrons through a sample.

    Example:
        engine = TrajectoryEngine(sample, MonteCarloParams(), Detector(DetectorParams()))
        result = engine.simulate(Electron(20.0, (0, 0, 0), (0, 0, 1)), rng)
        result.state, result.max_depth
    """

    def __init__(self, sample: Sample, mc_params: MonteCarloParams,
                 detector: Detector,
                 scattering: Optional[ScatteringModel] = None,
                 stopping: Optional[StoppingModel] = None,
                 max_depth: Optional[float] = None):
        """
        Initialize trajectory engine.

        Parameters:
            sample: Sample geometry (read-only during transport)
            mc_params: Monte Carlo controls
            detector: Detector acceptance model
            scattering: Elastic scattering plug-in (screened Rutherford)
            stopping: Stopping power plug-in (Joy-Luo)
            max_depth: Depth cutoff [nm]; overrides mc_params.max_depth,
                no cutoff if both are None

        Raises:
            PhysicsError: a sample material the transport model cannot handle
        """
        for material in sample.materials:
            material.validate_physics()

        self.sample = sample
        self.detector = detector
        self.scattering = scattering or ElasticScattering()
        self.stopping = stopping or StoppingPower()

        self.min_energy = mc_params.min_energy_keV
        self.max_collisions = mc_params.max_collisions
        self.max_crossings = 4 * mc_params.max_collisions + 64
        self.track_secondaries = mc_params.track_secondaries
        self.generation_threshold = 2.0 * self.min_energy
        self._fallback_warned = set()

        if max_depth is None:
            max_depth = mc_params.max_depth
        self.max_depth = math.inf if max_depth is None else float(max_depth)
        if not self.max_depth > 0.0:
            raise PhysicsError(f"Depth cutoff ({self.max_depth} nm) must be > 0")

    def simulate(self, electron: Electron, rng: np.random.Generator) -> TrajectoryResult:
        """
        Transport one electron (and, if enabled, its secondaries) to termination.

        Parameters:
            electron: Starting state; mutated in place
            rng: Random generator supplying every draw

        Returns:
            TrajectoryResult of the electron, with secondaries attached

        Raises:
            PhysicsError: invalid starting state (non-unit direction, ...)
        """
        electron.validate()
        pending: List[Electron] = []
        result = self._walk(electron, rng, pending)

        # Cascade from an explicit stack
        while pending:
            secondary = pending.pop()
            result.secondaries.append(self._walk(secondary, rng, pending))

        # Slow secondaries below the tracking cutoff come from the analytic yield
        se_yield = result.se_yield + sum(s.se_yield for s in result.secondaries)
        if se_yield > 0.0:
            work_function = self.sample.surface_material.work_function
            result.detected_se += self.detector.accept_yield(se_yield, work_function, rng)
        return result

    def _walk(self, e: Electron, rng: np.random.Generator,
              pending: List[Electron]) -> TrajectoryResult:
        """Random walk of a single electron; secondaries go to `pending`."""
        sample = self.sample
        scattering = self.scattering
        stopping = self.stopping
        track = self.track_secondaries

        state = TrajectoryState.TRAVELING
        crossings = 0
        path = 0.0
        deposited = 0.0
        se_yield = 0.0
        detected_se = 0.0
        detected_bse = 0.0

        # Electrons starting above the surface fly straight down to it
        if e.z < 0.0 and e.uz > 0.0:
            t = -e.z / e.uz
            e.x += t * e.ux
            e.y += t * e.uy
            e.z = 0.0
        max_depth = max(e.z, 0.0)

        layer = sample.layer_index_at(e.x, e.y, e.z)
        if layer < 0:
            # Missed the sample entirely
            state = TrajectoryState.TRANSMITTED
        else:
            material = sample.layers[layer][0]

        while state == TrajectoryState.TRAVELING:
            if e.energy < self.min_energy:
                state = TrajectoryState.ABSORBED
                break
            if e.collisions >= self.max_collisions or crossings >= self.max_crossings:
                state = TrajectoryState.COLLISION_LIMIT
                break

            mfp = scattering.mean_free_path(material, e.energy)
            if math.isfinite(mfp):
                step = rng.exponential(mfp)
            else:
                step = math.inf
                if material.name not in self._fallback_warned:
                    self._fallback_warned.add(material.name)
                    logger.warning("No finite cross-section for %s at %.3g keV; "
                                   "propagating without scattering", material.name, e.energy)
            boundary = sample.distance_to_boundary((e.x, e.y, e.z), (e.ux, e.uy, e.uz),
                                                   layer)
            crossing = step >= boundary
            if crossing:
                step = boundary

            if not math.isfinite(step):
                # No scattering and no boundary ahead: straight line to the depth cutoff
                if math.isfinite(self.max_depth) and e.uz > 0.0:
                    step = max(0.0, (self.max_depth - e.z) / e.uz) + BOUNDARY_NUDGE
                    crossing = False
                else:
                    state = TrajectoryState.TRANSMITTED
                    break

            loss = stopping.energy_loss(material, e.energy, step)
            z_mid = e.z + 0.5 * step * e.uz
            advance = step + BOUNDARY_NUDGE if crossing else step
            e.x += advance * e.ux
            e.y += advance * e.uy
            e.z += advance * e.uz
            e.energy -= loss
            path += step
            deposited += loss
            segment_yield = se_generation(loss, z_mid, material.se_energy,
                                          material.se_escape_depth)
            se_yield += segment_yield
            if e.z > max_depth:
                max_depth = e.z

            if e.z > self.max_depth:
                state = TrajectoryState.ABSORBED
                break

            if crossing:
                crossings += 1
                layer = sample.layer_index_at(e.x, e.y, e.z)
                if layer >= 0:
                    material = sample.layers[layer][0]
                    continue
                if e.z < 0.0:
                    # Left through the top surface; must overcome the work function
                    e.z = 0.0
                    barrier = material.work_function * 1.0e-3
                    if e.energy <= barrier:
                        state = TrajectoryState.ABSORBED
                        break
                    e.energy -= barrier
                    state = TrajectoryState.ESCAPED_TOP
                    detected_se, detected_bse = self.detector.accept_channels(
                        (e.x, e.y, e.z), (e.ux, e.uy, e.uz), e.energy, rng,
                        secondary=True if e.generation > 0 else None)
                else:
                    state = TrajectoryState.TRANSMITTED
                break

            if e.energy < self.min_energy:
                state = TrajectoryState.ABSORBED
                break

            e.ux, e.uy, e.uz = scattering.scatter((e.ux, e.uy, e.uz), material,
                                                  e.energy, rng)
            e.collisions += 1

            if track and loss > self.generation_threshold:
                # This segment's loss goes to a tracked secondary, not to slow SEs
                se_yield -= segment_yield
                ux, uy, uz = isotropic_direction(rng.random(), rng.random())
                pending.append(Electron(loss, (e.x, e.y, e.z), (ux, uy, uz),
                                        weight=e.weight, generation=e.generation + 1))

        return TrajectoryResult(
            state=state,
            energy=e.energy,
            position=(e.x, e.y, e.z),
            direction=(e.ux, e.uy, e.uz),
            collisions=e.collisions,
            boundary_crossings=crossings,
            max_depth=max_depth,
            path_length=path,
            energy_deposited=deposited,
            se_yield=se_yield,
            detected_se=detected_se,
            detected_bse=detected_bse,
            generation=e.generation,
        )

    def __repr__(self) -> str:
        return (f"TrajectoryEngine({self.sample!r}, "
                f"max_collisions={self.max_collisions}, "
                f"track_secondaries={self.track_secondaries})")

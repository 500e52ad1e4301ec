"""
Simulation parameter sets.

Plain value types grouped the way an SEM operator thinks about them: beam,
scan, Monte Carlo controls, detector and image post-processing. Every set
validates itself; SimulationParameters.validate() checks the whole bundle
before any simulation work starts.
"""

import math
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Sequence

from sem_mc.errors import InvalidParameterError


class SignalType(str, Enum):
    SECONDARY = 'secondary'
    BACKSCATTERED = 'backscattered'
    COMBINED = 'combined'


class NoiseModel(str, Enum):
    NONE = 'none'
    POISSON = 'poisson'
    GAUSSIAN = 'gaussian'
    COMBINED = 'combined'


def _finite(label: str, value, lower: Optional[float] = None,
            upper: Optional[float] = None, strict_lower: bool = False):
    if value is None or isinstance(value, bool):
        raise InvalidParameterError(f"{label} must be a number, got {value!r}")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"{label} must be a number, got {value!r}") from None
    if not math.isfinite(value):
        raise InvalidParameterError(f"{label} ({value}) must be finite")
    if lower is not None:
        if strict_lower and value <= lower:
            raise InvalidParameterError(f"{label} ({value}) must be > {lower}")
        if not strict_lower and value < lower:
            raise InvalidParameterError(f"{label} ({value}) must be >= {lower}")
    if upper is not None and value > upper:
        raise InvalidParameterError(f"{label} ({value}) must be <= {upper}")


def _positive_int(label: str, value, minimum: int = 1):
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidParameterError(f"{label} ({value!r}) must be an integer >= {minimum}")


@dataclass
class BeamParams:
    """
    Primary beam.

    Parameters:
        energy: Landing energy [keV]
        current: Probe current [nA]
        working_distance: Working distance [mm]
        spot_size: Probe diameter (FWHM) [nm]
        convergence_angle: Convergence half-angle [rad]
        energy_spread: Gaussian energy spread sigma [keV]; None derives it
            from the convergence angle as E0 (1 - cos alpha)
    """
    energy: float = 20.0
    current: float = 1.0
    working_distance: float = 10.0
    spot_size: float = 2.0
    convergence_angle: float = 0.005
    energy_spread: Optional[float] = None

    def validate(self):
        _finite('beam.energy', self.energy, 0.1, 100.0)
        _finite('beam.current', self.current, 0.0, strict_lower=True)
        _finite('beam.working_distance', self.working_distance, 0.0, strict_lower=True)
        _finite('beam.spot_size', self.spot_size, 0.0)
        _finite('beam.convergence_angle', self.convergence_angle, 0.0)
        if self.convergence_angle >= 0.5 * math.pi:
            raise InvalidParameterError("beam.convergence_angle must be < pi/2")
        if self.energy_spread is not None:
            _finite('beam.energy_spread', self.energy_spread, 0.0)

    @property
    def sigma_energy(self) -> float:
        """Energy spread sigma [keV]."""
        if self.energy_spread is not None:
            return self.energy_spread
        return self.energy * (1.0 - math.cos(self.convergence_angle))

    @property
    def electrons_per_us(self) -> float:
        """Primary electrons delivered per microsecond of dwell."""
        elementary_charge = 1.602176634e-19  # C
        return self.current * 1.0e-9 * 1.0e-6 / elementary_charge


@dataclass
class ScanParams:
    """
    Raster scan.

    Parameters:
        width, height: Image size [pixels]
        pixel_size: Pixel pitch [nm]
        dwell_time: Dwell time per pixel [µs]
        line_averaging: Repeats of each line (>= 1)
        frame_averaging: Repeats of each frame (>= 1)
    """
    width: int = 32
    height: int = 32
    pixel_size: float = 10.0
    dwell_time: float = 1.0
    line_averaging: int = 1
    frame_averaging: int = 1

    def validate(self):
        _positive_int('scan.width', self.width)
        _positive_int('scan.height', self.height)
        _finite('scan.pixel_size', self.pixel_size, 0.0, strict_lower=True)
        _finite('scan.dwell_time', self.dwell_time, 0.0, strict_lower=True)
        _positive_int('scan.line_averaging', self.line_averaging)
        _positive_int('scan.frame_averaging', self.frame_averaging)

    @property
    def n_pixels(self) -> int:
        return self.width * self.height

    @property
    def n_passes(self) -> int:
        return self.line_averaging * self.frame_averaging


@dataclass
class MonteCarloParams:
    """
    Monte Carlo controls.

    Parameters:
        num_electrons: Primary trajectories per pixel
        max_collisions: Elastic events allowed per trajectory
        min_energy: Tracking cutoff [eV]
        max_depth: Depth cutoff [nm]; None picks 2x the CSDA range
        track_secondaries: Follow fast secondaries explicitly
        seed: Global random seed
        n_workers: Worker processes for the pixel loop
    """
    num_electrons: int = 100
    max_collisions: int = 10000
    min_energy: float = 50.0
    max_depth: Optional[float] = None
    track_secondaries: bool = False
    seed: int = 0
    n_workers: int = 1

    def validate(self):
        _positive_int('monte_carlo.num_electrons', self.num_electrons)
        _positive_int('monte_carlo.max_collisions', self.max_collisions)
        _finite('monte_carlo.min_energy', self.min_energy, 0.0, strict_lower=True)
        if self.max_depth is not None:
            _finite('monte_carlo.max_depth', self.max_depth, 0.0, strict_lower=True)
        if isinstance(self.seed, bool) or not isinstance(self.seed, int) or self.seed < 0:
            raise InvalidParameterError(f"monte_carlo.seed ({self.seed!r}) must be an integer >= 0")
        _positive_int('monte_carlo.n_workers', self.n_workers)

    @property
    def min_energy_keV(self) -> float:
        return self.min_energy * 1.0e-3


@dataclass
class DetectorParams:
    """
    Detector geometry, response and noise.

    Parameters:
        signal_type: secondary, backscattered or combined
        collection_efficiency: Probability an accepted electron is counted
        energy_threshold: Minimum exit energy [eV]
        take_off_angle: Detector elevation above the surface [rad]
        azimuthal_angle: Detector azimuth [rad]
        acceptance_angle: Half-angle of the backscatter detector cone [rad]
        noise_model: none, poisson, gaussian or combined
        noise_param1: Poisson dose scale [electrons per unit signal];
            <= 0 derives it from beam current and dwell time
        noise_param2: Gaussian standard deviation [signal units]
    """
    signal_type: SignalType = SignalType.SECONDARY
    collection_efficiency: float = 1.0
    energy_threshold: float = 0.0
    take_off_angle: float = 0.6
    azimuthal_angle: float = 0.0
    acceptance_angle: float = 0.6
    noise_model: NoiseModel = NoiseModel.NONE
    noise_param1: float = 0.0
    noise_param2: float = 0.0

    def __post_init__(self):
        try:
            self.signal_type = SignalType(self.signal_type)
            self.noise_model = NoiseModel(self.noise_model)
        except ValueError as e:
            raise InvalidParameterError(str(e)) from None

    def validate(self):
        _finite('detector.collection_efficiency', self.collection_efficiency, 0.0, 1.0)
        _finite('detector.energy_threshold', self.energy_threshold, 0.0)
        _finite('detector.take_off_angle', self.take_off_angle, 0.0, 0.5 * math.pi)
        _finite('detector.azimuthal_angle', self.azimuthal_angle)
        _finite('detector.acceptance_angle', self.acceptance_angle, 0.0, math.pi,
                strict_lower=True)
        _finite('detector.noise_param1', self.noise_param1)
        _finite('detector.noise_param2', self.noise_param2, 0.0)


@dataclass
class ImageParams:
    """
    Tone mapping of the accumulated signal.

    Parameters:
        brightness: Offset in [-1, 1]
        contrast: Gain about mid-grey in [0, 2]
        gamma: Gamma correction (> 0; 1.0 is linear)
        lut: Optional 256-entry lookup table applied to the 8-bit image
    """
    brightness: float = 0.0
    contrast: float = 1.0
    gamma: float = 1.0
    lut: Optional[Sequence[int]] = None

    def validate(self):
        _finite('image.brightness', self.brightness, -1.0, 1.0)
        _finite('image.contrast', self.contrast, 0.0, 2.0)
        _finite('image.gamma', self.gamma, 0.0, strict_lower=True)
        if self.lut is not None:
            if len(self.lut) != 256:
                raise InvalidParameterError("image.lut must have 256 entries")
            if any(not (0 <= int(v) <= 255) for v in self.lut):
                raise InvalidParameterError("image.lut entries must be in [0, 255]")


@dataclass
class SimulationParameters:
    """Full parameter bundle for one run."""
    beam: BeamParams = field(default_factory=BeamParams)
    scan: ScanParams = field(default_factory=ScanParams)
    monte_carlo: MonteCarloParams = field(default_factory=MonteCarloParams)
    detector: DetectorParams = field(default_factory=DetectorParams)
    image: ImageParams = field(default_factory=ImageParams)

    def validate(self) -> 'SimulationParameters':
        for section in (self.beam, self.scan, self.monte_carlo,
                        self.detector, self.image):
            section.validate()
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data['detector']['signal_type'] = self.detector.signal_type.value
        data['detector']['noise_model'] = self.detector.noise_model.value
        if self.image.lut is not None:
            data['image']['lut'] = [int(v) for v in self.image.lut]
        return data


def default_parameters() -> SimulationParameters:
    """Validated default parameter bundle."""
    return SimulationParameters().validate()

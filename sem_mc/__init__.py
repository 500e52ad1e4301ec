"""
SEM_MC: Monte Carlo Scanning Electron Microscope Simulator

Tracks primary electrons through homogeneous or layered samples, detects
escaping secondary/backscattered electrons and forms a synthetic SEM image.

Modules:
    core: Electron state, materials, sample geometry, parameters
    physics: Elastic scattering, stopping power, secondary emission
    transport: Trajectory engine and detector model
    simulation: Scan controller, contexts, results, job queue
    imaging: Noise, tone mapping and export
    api: Status-code boundary layer
"""

__version__ = "0.1.0"
__author__ = "William Comaskey"

from sem_mc.core.materials import Material, get_material
from sem_mc.core.parameters import SimulationParameters, default_parameters
from sem_mc.core.particle import Electron, ElectronArray
from sem_mc.core.sample import HomogeneousSample, LayeredSample
from sem_mc.physics.scattering import ElasticScattering
from sem_mc.physics.stopping_power import StoppingPower
from sem_mc.transport.detector import Detector
from sem_mc.transport.engine import TrajectoryEngine
from sem_mc.simulation.context import Library, SimulationContext
from sem_mc.simulation.scan import ScanController, run_scan
from sem_mc.errors import SemError, Status

__all__ = [
    "Material",
    "get_material",
    "SimulationParameters",
    "default_parameters",
    "Electron",
    "ElectronArray",
    "HomogeneousSample",
    "LayeredSample",
    "ElasticScattering",
    "StoppingPower",
    "Detector",
    "TrajectoryEngine",
    "Library",
    "SimulationContext",
    "ScanController",
    "run_scan",
    "SemError",
    "Status",
]

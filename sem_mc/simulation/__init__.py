"""Simulation module: Scan controller, contexts, results, job queue."""

from sem_mc.simulation.context import Library, SimulationContext
from sem_mc.simulation.manager import SimulationManager
from sem_mc.simulation.results import ImageBuffer, SimulationResults
from sem_mc.simulation.scan import ScanController

__all__ = ["Library", "SimulationContext", "SimulationManager", "ImageBuffer",
           "SimulationResults", "ScanController"]

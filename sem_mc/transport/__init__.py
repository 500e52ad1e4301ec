"""Transport module: Electron trajectory engine and detector."""

from sem_mc.transport.engine import TrajectoryEngine, TrajectoryResult, TrajectoryState
from sem_mc.transport.detector import Detector

__all__ = ["TrajectoryEngine", "TrajectoryResult", "TrajectoryState", "Detector"]

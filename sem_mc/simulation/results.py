"""
Result containers returned by a scan.

ImageBuffer owns the image arrays; once released every accessor raises
NotInitializedError. Both containers work as context managers so the
buffers are dropped on every exit path.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from sem_mc.errors import InvalidParameterError, NotInitializedError
from sem_mc.imaging.formation import ImageFilter, to_grayscale_bytes


class ImageBuffer:
    """
    Simulated image.

    Attributes:
        signal: float64 physical signal (detected electrons per primary, after noise)
        data: float64 display values in [0, 1]
        pixels: uint8 quantised image
    """

    def __init__(self, signal: np.ndarray, data: np.ndarray, pixels: np.ndarray):
        if not (signal.shape == data.shape == pixels.shape) or signal.ndim != 2:
            raise InvalidParameterError("Image arrays must share one 2-D shape")
        self._signal = signal
        self._data = data
        self._pixels = pixels
        self.height, self.width = signal.shape

    def _require(self, array: Optional[np.ndarray]) -> np.ndarray:
        if array is None:
            raise NotInitializedError("Image buffer has been released")
        return array

    @property
    def signal(self) -> np.ndarray:
        return self._require(self._signal)

    @property
    def data(self) -> np.ndarray:
        return self._require(self._data)

    @property
    def pixels(self) -> np.ndarray:
        return self._require(self._pixels)

    @property
    def shape(self):
        return (self.height, self.width)

    @property
    def released(self) -> bool:
        return self._signal is None

    def release(self):
        """Drop the arrays. Safe to call more than once."""
        self._signal = None
        self._data = None
        self._pixels = None

    def filtered(self, image_filter: ImageFilter, lut=None) -> 'ImageBuffer':
        """
        New buffer with display values passed through a filter.

        The physical signal is carried over unchanged.
        """
        if not isinstance(image_filter, ImageFilter):
            raise InvalidParameterError(f"{image_filter!r} has no apply() method")
        data = np.asarray(image_filter.apply(self.data.copy()), dtype=np.float64)
        if data.shape != self.shape:
            raise InvalidParameterError(
                f"Filter changed image shape {self.shape} -> {data.shape}")
        data = np.clip(data, 0.0, 1.0)
        return ImageBuffer(self.signal.copy(), data, to_grayscale_bytes(data, lut))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def __repr__(self) -> str:
        state = 'released' if self.released else 'live'
        return f"ImageBuffer({self.width}x{self.height}, {state})"


@dataclass
class SimulationResults:
    """
    Image plus aggregate statistics of one run.

    Attributes:
        image: Simulated image
        avg_penetration_depth: Mean maximum depth reached by primaries [nm]
        backscatter_coefficient: Escaped primaries / primaries, in [0, 1]
        total_electrons_simulated: Primaries over all passes plus tracked secondaries
        simulation_time: Wall time of the scan [s]
    """
    image: ImageBuffer
    avg_penetration_depth: float
    backscatter_coefficient: float
    total_electrons_simulated: int
    simulation_time: float
    n_primaries: int = 0
    n_secondaries: int = 0
    n_detected: float = 0.0
    max_depth_cutoff: float = float('inf')

    @property
    def released(self) -> bool:
        return self.image.released

    def release(self):
        self.image.release()

    def statistics(self) -> dict:
        return {
            'avg_penetration_depth': self.avg_penetration_depth,
            'backscatter_coefficient': self.backscatter_coefficient,
            'total_electrons_simulated': self.total_electrons_simulated,
            'simulation_time': self.simulation_time,
            'n_primaries': self.n_primaries,
            'n_secondaries': self.n_secondaries,
            'n_detected': self.n_detected,
            'max_depth_cutoff': self.max_depth_cutoff,
        }

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

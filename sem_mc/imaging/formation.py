"""
Image formation from accumulated pixel signal.

Pipeline (applied to the whole frame after the scan):
    averaged signal -> noise -> min/max normalisation ->
    contrast/brightness -> gamma -> 8-bit quantisation -> optional LUT
"""

import logging
from typing import Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from sem_mc.core.parameters import (BeamParams, DetectorParams, ImageParams,
                                    NoiseModel, ScanParams)
from sem_mc.errors import InvalidParameterError

logger = logging.getLogger(__name__)

# Second word of the noise RNG seed; keeps the noise stream apart from the pixel streams
NOISE_STREAM = 0x5E3

# Largest side written by the 8-bit image encoders; bigger images are decimated
MAX_DISPLAY_DIM = 16384


@runtime_checkable
class ImageFilter(Protocol):
    """
    Post-processing capability (e.g. a frequency-domain enhancement module).

    Receives display values in [0, 1] and must return an array of the same shape.
    """

    def apply(self, image: np.ndarray) -> np.ndarray:
        ...


def average_passes(values: Sequence[float]) -> float:
    """Arithmetic mean over repeated line/frame passes of one pixel."""
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        raise InvalidParameterError("Cannot average zero passes")
    return float(values.mean())


def noise_rng(seed: int) -> np.random.Generator:
    return np.random.default_rng([seed, NOISE_STREAM])


def dose_scale(detector: DetectorParams, beam: BeamParams, scan: ScanParams) -> float:
    """
    Electrons per unit signal used by the Poisson model.

    noise_param1 > 0 sets it directly; otherwise it is the number of primaries
    the beam delivers to one pixel (current x dwell time).
    """
    if detector.noise_param1 > 0.0:
        return float(detector.noise_param1)
    return beam.electrons_per_us * scan.dwell_time


def apply_noise(signal: np.ndarray, detector: DetectorParams,
                rng: np.random.Generator, scale: float = 1.0) -> np.ndarray:
    """
    Add detector noise to a signal image.

    Parameters:
        signal: Mean detected electrons per primary, shape (H, W)
        detector: Noise model and parameters
        rng: Noise random stream
        scale: Poisson dose scale [electrons per unit signal]

    Returns:
        New array; the input is not modified
    """
    model = detector.noise_model
    noisy = np.array(signal, dtype=np.float64, copy=True)

    if model in (NoiseModel.POISSON, NoiseModel.COMBINED):
        if scale <= 0.0:
            raise InvalidParameterError(f"Poisson dose scale ({scale}) must be > 0")
        counts = rng.poisson(np.clip(noisy, 0.0, None) * scale)
        noisy = counts.astype(np.float64) / scale

    if model in (NoiseModel.GAUSSIAN, NoiseModel.COMBINED):
        sigma = detector.noise_param2
        if sigma > 0.0:
            noisy = noisy + rng.normal(0.0, sigma, noisy.shape)

    return noisy


def normalize(signal: np.ndarray) -> np.ndarray:
    """Min/max normalisation to [0, 1]; a flat image maps to zeros."""
    signal = np.asarray(signal, dtype=np.float64)
    lo = float(signal.min())
    hi = float(signal.max())
    if not hi > lo:
        return np.zeros_like(signal)
    return (signal - lo) / (hi - lo)


def tone_map(normalized: np.ndarray, image: ImageParams) -> np.ndarray:
    """Contrast about mid-grey, brightness offset, clip, then gamma."""
    values = (normalized - 0.5) * image.contrast + 0.5 + image.brightness
    values = np.clip(values, 0.0, 1.0)
    if image.gamma != 1.0:
        values = values ** (1.0 / image.gamma)
    return values


def to_grayscale_bytes(data: np.ndarray, lut: Optional[Sequence[int]] = None) -> np.ndarray:
    """
    Quantise display values in [0, 1] to uint8, optionally through a LUT.

    Parameters:
        data: Display values, any shape
        lut: 256-entry lookup table

    Returns:
        uint8 array of the same shape
    """
    pixels = np.rint(np.clip(data, 0.0, 1.0) * 255.0).astype(np.uint8)
    if lut is not None:
        table = np.asarray(lut)
        if table.shape != (256,):
            raise InvalidParameterError("Lookup table must have 256 entries")
        pixels = table.astype(np.uint8)[pixels]
    return pixels


def display_pixels(pixels: np.ndarray, max_dim: Optional[int] = None) -> np.ndarray:
    """
    Nearest-neighbour decimation of an 8-bit image to at most max_dim per side.

    Each axis longer than max_dim keeps every k-th sample, k = ceil(n / max_dim),
    for n // k samples. Images within the limit are returned unchanged.
    """
    max_dim = max_dim or MAX_DISPLAY_DIM
    rows, cols = pixels.shape
    step_row = -(-rows // max_dim)
    step_col = -(-cols // max_dim)
    if step_row == 1 and step_col == 1:
        return pixels
    new_rows, new_cols = rows // step_row, cols // step_col
    logger.warning("Image resized from %dx%d to %dx%d for encoding",
                   rows, cols, new_rows, new_cols)
    return pixels[::step_row, ::step_col][:new_rows, :new_cols]


def render(signal: np.ndarray, beam: BeamParams, scan: ScanParams,
           detector: DetectorParams, image: ImageParams,
           seed: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Run the full post-scan pipeline.

    Returns:
        (noisy signal, display values in [0, 1], uint8 pixels)
    """
    if detector.noise_model != NoiseModel.NONE:
        noisy = apply_noise(signal, detector, noise_rng(seed),
                            dose_scale(detector, beam, scan))
        logger.debug("Applied %s noise", detector.noise_model.value)
    else:
        noisy = np.array(signal, dtype=np.float64, copy=True)

    data = tone_map(normalize(noisy), image)
    pixels = to_grayscale_bytes(data, image.lut)
    return noisy, data, pixels

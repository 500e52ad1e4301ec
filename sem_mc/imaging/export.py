"""
Image and result export.

Formats:
    png   8-bit grayscale via matplotlib, run metadata in tEXt chunks
    bmp   8-bit grayscale via matplotlib
    raw   uint8 pixel bytes, row-major, no header
    npy   float64 signal array (numpy .npy)
    h5    image arrays + statistics + parameters (save_results_hdf5)
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

import h5py
import numpy as np
from matplotlib import image as mpimg

from sem_mc.core.parameters import SimulationParameters
from sem_mc.errors import InvalidParameterError, SemIOError
from sem_mc.imaging.formation import display_pixels

if TYPE_CHECKING:
    from sem_mc.simulation.results import ImageBuffer, SimulationResults

logger = logging.getLogger(__name__)

IMAGE_FORMATS = ('png', 'bmp', 'raw', 'npy')


def _resolve_format(path: Path, fmt: Optional[str]) -> str:
    fmt = (fmt or path.suffix.lstrip('.')).lower()
    if fmt not in IMAGE_FORMATS:
        raise InvalidParameterError(
            f"Unsupported image format {fmt!r}; choose one of {', '.join(IMAGE_FORMATS)}")
    return fmt


def png_metadata(params: SimulationParameters) -> dict:
    """tEXt entries describing the run."""
    return {
        'Energy_keV': str(params.beam.energy),
        'Current_nA': str(params.beam.current),
        'Spot_size_nm': str(params.beam.spot_size),
        'Pixel_size_nm': str(params.scan.pixel_size),
        'Num_electrons': str(params.monte_carlo.num_electrons),
        'Signal': params.detector.signal_type.value,
        'Seed': str(params.monte_carlo.seed),
    }


def save_image(image: 'ImageBuffer', path: Union[str, Path], fmt: Optional[str] = None,
               metadata: Optional[dict] = None) -> Path:
    """
    Write an image buffer to disk.

    Parameters:
        image: Image to save (must not be released)
        path: Output file
        fmt: One of IMAGE_FORMATS; inferred from the suffix when None
        metadata: Extra PNG text entries (ignored for other formats)

    PNG and BMP output is decimated to MAX_DISPLAY_DIM per side; raw and npy
    keep the full frame.

    Returns:
        Path written

    Raises:
        InvalidParameterError: unknown format
        SemIOError: the file could not be written
    """
    path = Path(path)
    fmt = _resolve_format(path, fmt)
    pixels = image.pixels

    try:
        if fmt in ('png', 'bmp'):
            kwargs = {}
            if fmt == 'png' and metadata:
                kwargs['metadata'] = {str(k): str(v) for k, v in metadata.items()}
            mpimg.imsave(path, display_pixels(pixels), cmap='gray', vmin=0, vmax=255, format=fmt, **kwargs)
        elif fmt == 'raw':
            np.ascontiguousarray(pixels, dtype=np.uint8).tofile(path)
        else:
            with open(path, 'wb') as fh:
                np.save(fh, image.signal)
    except (OSError, ValueError) as e:
        raise SemIOError(f"Could not write {fmt} image to {path}: {e}") from e

    logger.info("Saved %dx%d %s image to %s", image.width, image.height, fmt, path)
    return path


def _write_attrs(group, mapping: dict):
    for key, value in mapping.items():
        if isinstance(value, dict):
            _write_attrs(group.require_group(key), value)
        elif value is None:
            continue
        elif isinstance(value, (list, tuple)):
            group.attrs[key] = np.asarray(value)
        else:
            group.attrs[key] = value


def save_results_hdf5(results: 'SimulationResults', path: Union[str, Path],
                      params: Optional[SimulationParameters] = None) -> Path:
    """
    Store image arrays, statistics and (optionally) parameters in HDF5.

    Layout:
        /signal, /data, /pixels      datasets
        / attrs                      statistics
        /parameters/<section> attrs  parameter bundle
    """
    path = Path(path)
    image = results.image
    try:
        with h5py.File(path, 'w') as f:
            f.create_dataset('signal', data=image.signal, compression='gzip',
                             compression_opts=4)
            f.create_dataset('data', data=image.data, compression='gzip',
                             compression_opts=4)
            f.create_dataset('pixels', data=image.pixels)
            _write_attrs(f, results.statistics())
            if params is not None:
                _write_attrs(f.require_group('parameters'), params.to_dict())
    except OSError as e:
        raise SemIOError(f"Could not write HDF5 results to {path}: {e}") from e

    logger.info("Saved results to %s", path)
    return path

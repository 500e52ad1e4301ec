"""
Status-code boundary layer.

Each function performs one operation and returns (Status, value). Errors
never cross this boundary as exceptions: they are converted to a Status,
logged, and the message is kept for last_error(). value is None unless
the status is SUCCESS.

    status, lib = api.initialize()
    status, ctx = api.create_context(lib, seed=1)
    status, sample = api.create_homogeneous_sample(ctx, 'Cu', 1000, 1000, 1000)
    status, params = api.default_parameters()
    status, results = api.run_simulation(ctx, sample, params)
    api.save_image(results.image, 'cu.png')
    api.release_results(results)
    api.destroy_context(ctx)
    api.finalize(lib)
"""

import functools
import logging
import threading
from typing import Any, Callable, Optional, Sequence, Tuple

from sem_mc.core.materials import get_material as _get_material
from sem_mc.core.parameters import SimulationParameters, default_parameters as _defaults
from sem_mc.errors import SemError, Status, status_string
from sem_mc.imaging.export import save_image as _save_image
from sem_mc.simulation.arena import Handle
from sem_mc.simulation.context import Library, SimulationContext
from sem_mc.simulation.progress import CallbackProgress
from sem_mc.simulation.results import ImageBuffer, SimulationResults

logger = logging.getLogger(__name__)

_last_error = threading.local()


def last_error() -> str:
    """Message of the most recent failure on this thread ('' if none)."""
    return getattr(_last_error, 'message', '')


def _fail(status: Status, message: str) -> Tuple[Status, None]:
    _last_error.message = message
    logger.warning("%s: %s", status.name, message)
    return status, None


def _boundary(func: Callable) -> Callable[..., Tuple[Status, Any]]:
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            value = func(*args, **kwargs)
        except SemError as e:
            return _fail(e.status, str(e))
        except MemoryError as e:
            return _fail(Status.MEMORY_ERROR, str(e) or 'out of memory')
        except (TypeError, ValueError) as e:
            return _fail(Status.INVALID_PARAMETER, str(e))
        except OSError as e:
            return _fail(Status.IO_ERROR, str(e))
        _last_error.message = ''
        return Status.SUCCESS, value
    return wrapper


def _require(obj, cls, what: str):
    if not isinstance(obj, cls):
        raise TypeError(f"Expected {what}, got {obj!r}")
    return obj


# Library

@_boundary
def initialize() -> Library:
    return Library().initialize()


@_boundary
def finalize(library: Library) -> None:
    _require(library, Library, 'a Library').finalize()


# Contexts

@_boundary
def create_context(library: Library, seed: int = 0) -> SimulationContext:
    return _require(library, Library, 'a Library').create_context(seed=seed)


@_boundary
def destroy_context(context: SimulationContext) -> None:
    _require(context, SimulationContext, 'a SimulationContext').destroy()


# Samples and materials

@_boundary
def create_homogeneous_sample(context: SimulationContext, material, width: float,
                              height: float, depth: float) -> Handle:
    return _require(context, SimulationContext, 'a SimulationContext') \
        .create_homogeneous_sample(material, width, height, depth)


@_boundary
def create_layered_sample(context: SimulationContext, layers: Sequence,
                          width: float, height: float) -> Handle:
    return _require(context, SimulationContext, 'a SimulationContext') \
        .create_layered_sample(layers, width, height)


@_boundary
def destroy_sample(context: SimulationContext, sample: Handle) -> None:
    _require(context, SimulationContext, 'a SimulationContext').destroy_sample(sample)


@_boundary
def get_material(name: str):
    return _get_material(name)


@_boundary
def default_parameters() -> SimulationParameters:
    return _defaults()


# Runs

@_boundary
def run_simulation(context: SimulationContext, sample: Handle,
                   params: SimulationParameters, verbose: bool = False) -> SimulationResults:
    return _require(context, SimulationContext, 'a SimulationContext') \
        .run(sample, params, verbose=verbose)


@_boundary
def cancel(context: SimulationContext) -> None:
    _require(context, SimulationContext, 'a SimulationContext').cancel()


@_boundary
def release_results(results: SimulationResults) -> None:
    _require(results, SimulationResults, 'SimulationResults').release()


@_boundary
def register_progress_callback(context: SimulationContext,
                               callback: Optional[Callable[..., Any]],
                               user_data: Any = None) -> None:
    """callback(fraction[, user_data]) once per completed row; None unregisters."""
    sink = None if callback is None else CallbackProgress(callback, user_data)
    _require(context, SimulationContext, 'a SimulationContext').set_progress_sink(sink)


@_boundary
def simulate_electron(context: SimulationContext, sample: Handle,
                      params: SimulationParameters, energy: float,
                      position: Sequence[float], direction: Sequence[float]):
    return _require(context, SimulationContext, 'a SimulationContext') \
        .simulate_electron(sample, params, energy, position, direction)


# Export

@_boundary
def save_image(image: ImageBuffer, path, fmt: Optional[str] = None,
               metadata: Optional[dict] = None):
    return _save_image(_require(image, ImageBuffer, 'an ImageBuffer'), path, fmt, metadata)


__all__ = [
    'initialize', 'finalize', 'create_context', 'destroy_context',
    'create_homogeneous_sample', 'create_layered_sample', 'destroy_sample',
    'get_material', 'default_parameters', 'run_simulation', 'cancel',
    'release_results', 'register_progress_callback', 'simulate_electron',
    'save_image', 'status_string', 'last_error',
]

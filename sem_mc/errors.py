"""
Status codes and exception types.

Every failure inside the package is raised as a subclass of SemError. The
boundary layer (sem_mc.api) converts them back into Status codes so nothing
escapes to the host as an exception.
"""

from enum import IntEnum


class Status(IntEnum):
    """Result codes returned by the boundary layer."""
    SUCCESS = 0
    INVALID_PARAMETER = 1
    MEMORY_ERROR = 2
    PHYSICS_ERROR = 3
    IO_ERROR = 4
    NOT_INITIALIZED = 5
    CANCELLED = 6


_STATUS_MESSAGES = {
    Status.SUCCESS: "Success",
    Status.INVALID_PARAMETER: "Invalid or out-of-range parameter",
    Status.MEMORY_ERROR: "Could not allocate image or result buffers",
    Status.PHYSICS_ERROR: "Transport model undefined for the given inputs",
    Status.IO_ERROR: "File input/output failed",
    Status.NOT_INITIALIZED: "Library or context not initialized, or context busy",
    Status.CANCELLED: "Simulation cancelled",
}


def status_string(status) -> str:
    """Human-readable message for a status code."""
    try:
        return _STATUS_MESSAGES[Status(status)]
    except ValueError:
        return f"Unknown status code {status!r}"


class SemError(Exception):
    """Base class for all simulation errors."""
    status = Status.INVALID_PARAMETER


class InvalidParameterError(SemError, ValueError):
    """Malformed or out-of-range configuration."""
    status = Status.INVALID_PARAMETER


class SimulationMemoryError(SemError):
    """Allocation of image or result buffers failed."""
    status = Status.MEMORY_ERROR


class PhysicsError(SemError):
    """Unrecoverable numerical condition in the transport model."""
    status = Status.PHYSICS_ERROR


class SemIOError(SemError, OSError):
    """Saving or loading a file failed."""
    status = Status.IO_ERROR


class NotInitializedError(SemError, RuntimeError):
    """Operation attempted before setup, after teardown, or while busy."""
    status = Status.NOT_INITIALIZED


class SimulationCancelled(SemError):
    """A run was cancelled between pixels; partial results are discarded."""
    status = Status.CANCELLED

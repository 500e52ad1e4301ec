"""
Progress reporting and cooperative cancellation for scans.

Sinks are called synchronously by the scan controller once per completed
pixel row, never from inside a trajectory. A sink that also has a reset()
method is rewound before the first row of every run, so one sink can be
registered on a context and reused.
"""

import threading
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from tqdm import tqdm


@runtime_checkable
class ProgressSink(Protocol):
    """Anything that can receive a completed fraction in [0, 1]."""

    def report(self, fraction: float) -> None:
        ...


class _MonotoneSink:
    """Clamps fractions to [0, 1] and never lets them decrease."""

    def __init__(self):
        self.last = 0.0

    def _advance(self, fraction: float) -> float:
        fraction = min(max(float(fraction), 0.0), 1.0)
        if fraction > self.last:
            self.last = fraction
        return self.last

    def reset(self):
        self.last = 0.0


class CallbackProgress(_MonotoneSink):
    """
    Adapter for a plain callable.

    Parameters:
        callback: Called as callback(fraction) or callback(fraction, user_data)
        user_data: Passed back unchanged when given
    """

    def __init__(self, callback: Callable[..., Any], user_data: Any = None):
        super().__init__()
        self.callback = callback
        self.user_data = user_data

    def report(self, fraction: float) -> None:
        fraction = self._advance(fraction)
        if self.user_data is None:
            self.callback(fraction)
        else:
            self.callback(fraction, self.user_data)


class TqdmProgress(_MonotoneSink):
    """Console progress bar over image rows."""

    def __init__(self, total_rows: int, desc: str = 'Scanning'):
        super().__init__()
        self.total_rows = total_rows
        self.bar = tqdm(total=total_rows, desc=desc, unit='row')

    def report(self, fraction: float) -> None:
        fraction = self._advance(fraction)
        done = round(fraction * self.total_rows)
        if done > self.bar.n:
            self.bar.update(done - self.bar.n)
        if done >= self.total_rows:
            self.close()

    def reset(self):
        super().reset()
        self.bar.reset(total=self.total_rows)

    def close(self):
        self.bar.close()


class CancelToken:
    """Cooperative cancellation flag shared between a caller and a running scan."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    def reset(self):
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def as_sink(progress: Optional[Any]) -> Optional[ProgressSink]:
    """Accept a sink, a bare callable or None."""
    if progress is None or isinstance(progress, ProgressSink):
        return progress
    if callable(progress):
        return CallbackProgress(progress)
    raise TypeError(f"Cannot report progress to {progress!r}")

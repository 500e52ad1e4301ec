"""
Scan controller: raster the beam, transport electrons, reduce to an image.

Pixels are independent. Every (frame, line, pixel) pass draws from its own
stream default_rng([seed, frame, line, pixel_index]), so a pixel's value does
not depend on which process computed it or in what order. Pixel tallies are
reduced in row-major order, which makes the aggregate statistics
bit-identical for any worker count.

Parallel mode follows the usual multiprocessing recipe: one engine per
worker process, built once by the pool initializer, rows handed out with
imap (ordered).
"""

import logging
import multiprocessing as mp
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from sem_mc.core.parameters import SimulationParameters
from sem_mc.core.particle import ElectronArray
from sem_mc.core.sample import Sample
from sem_mc.errors import SimulationCancelled, SimulationMemoryError
from sem_mc.imaging.formation import average_passes, render
from sem_mc.physics.stopping_power import auto_max_depth
from sem_mc.simulation.progress import CancelToken, TqdmProgress, as_sink
from sem_mc.simulation.results import ImageBuffer, SimulationResults
from sem_mc.transport.detector import Detector
from sem_mc.transport.engine import TrajectoryEngine

logger = logging.getLogger(__name__)


@dataclass
class PixelTally:
    """Per-pixel sums, reduced by the controller."""
    signal: float
    depth_sum: float
    n_primaries: int
    n_backscattered: int
    n_secondaries: int
    detected: float


class PixelScanner:
    """
    Simulates single pixels (all averaging passes).

    Parameters:
        sample: Sample geometry
        params: Validated parameter bundle
        max_depth: Depth cutoff handed to the engine [nm]
    """

    def __init__(self, sample: Sample, params: SimulationParameters, max_depth: float):
        self.params = params
        self.detector = Detector(params.detector)
        self.engine = TrajectoryEngine(sample, params.monte_carlo, self.detector,
                                       max_depth=max_depth)

    def pixel_position(self, row: int, col: int) -> Tuple[float, float]:
        """Beam position [nm]; the field of view is centred on the optical axis."""
        scan = self.params.scan
        x = (col - 0.5 * (scan.width - 1)) * scan.pixel_size
        y = (row - 0.5 * (scan.height - 1)) * scan.pixel_size
        return x, y

    def simulate_pixel(self, row: int, col: int) -> PixelTally:
        scan = self.params.scan
        mc = self.params.monte_carlo
        n = mc.num_electrons
        x0, y0 = self.pixel_position(row, col)
        pixel_index = row * scan.width + col

        pass_signals = []
        depth_sum = 0.0
        n_backscattered = 0
        n_secondaries = 0
        detected = 0.0

        for frame in range(scan.frame_averaging):
            for line in range(scan.line_averaging):
                rng = np.random.default_rng([mc.seed, frame, line, pixel_index])
                beam = ElectronArray(n)
                beam.initialize_beam(self.params.beam, x0, y0, rng)

                weight = 0.0
                for electron in beam:
                    result = self.engine.simulate(electron, rng)
                    weight += result.detected_weight
                    depth_sum += result.max_depth
                    if result.backscattered:
                        n_backscattered += 1
                    n_secondaries += result.n_secondaries

                pass_signals.append(weight / n)
                detected += weight

        return PixelTally(
            signal=average_passes(pass_signals),
            depth_sum=depth_sum,
            n_primaries=n * scan.n_passes,
            n_backscattered=n_backscattered,
            n_secondaries=n_secondaries,
            detected=detected,
        )

    def simulate_row(self, row: int) -> List[PixelTally]:
        return [self.simulate_pixel(row, col) for col in range(self.params.scan.width)]


# Global scanner instance for each worker process
_worker_scanner = None


def _init_worker(sample, params, max_depth):
    """Initialize worker process with its own scanner (engine, detector)."""
    global _worker_scanner
    _worker_scanner = PixelScanner(sample, params, max_depth)


def _scan_row_worker(row):
    return row, _worker_scanner.simulate_row(row)


class ScanController:
    """
    Runs a full raster scan and forms the image.

    Example:
        controller = ScanController(sample, default_parameters())
        with controller.run() as results:
            results.backscatter_coefficient, results.image.pixels
    """

    def __init__(self, sample: Sample, params: SimulationParameters,
                 progress=None, cancel: Optional[CancelToken] = None,
                 verbose: bool = False):
        """
        Validate everything and build the engine before any work starts.

        Parameters:
            sample: Sample to image
            params: Parameter bundle (validated here)
            progress: ProgressSink or callable(fraction), called once per row
            cancel: Token checked between pixels (serial) or rows (parallel)
            verbose: Print a run summary and show a progress bar

        Raises:
            InvalidParameterError: invalid parameters
            PhysicsError: sample material unusable for transport
        """
        params.validate()
        self.sample = sample
        self.params = params
        self.progress = as_sink(progress)
        self.cancel = cancel or CancelToken()
        self.verbose = verbose

        mc = params.monte_carlo
        if mc.max_depth is not None:
            self.max_depth = float(mc.max_depth)
        else:
            self.max_depth = auto_max_depth(sample.surface_material, params.beam.energy)
        self.scanner = PixelScanner(sample, params, self.max_depth)
        self.n_workers = min(mc.n_workers, params.scan.height)

    def _allocate(self) -> np.ndarray:
        scan = self.params.scan
        try:
            return np.zeros((scan.height, scan.width), dtype=np.float64)
        except MemoryError:
            raise SimulationMemoryError(
                f"Cannot allocate a {scan.width}x{scan.height} image") from None

    def _check_cancel(self):
        if self.cancel.cancelled:
            raise SimulationCancelled("Scan cancelled")

    def _scan_serial(self, consume):
        scan = self.params.scan
        for row in range(scan.height):
            tallies = []
            for col in range(scan.width):
                self._check_cancel()
                tallies.append(self.scanner.simulate_pixel(row, col))
            consume(row, tallies)

    def _scan_parallel(self, consume):
        self._check_cancel()
        with mp.Pool(self.n_workers, initializer=_init_worker,
                     initargs=(self.sample, self.params, self.max_depth)) as pool:
            for row, tallies in pool.imap(_scan_row_worker, range(self.params.scan.height)):
                self._check_cancel()
                consume(row, tallies)

    def run(self) -> SimulationResults:
        """
        Scan every pixel and build the results.

        Returns:
            SimulationResults (caller releases the image)

        Raises:
            SimulationCancelled: cancel token set; no partial results are kept
            SimulationMemoryError: image allocation failed
        """
        scan = self.params.scan
        beam = self.params.beam
        mc = self.params.monte_carlo
        signal = self._allocate()

        if self.verbose:
            print(f"\nScanning {scan.width}x{scan.height} pixels, "
                  f"{mc.num_electrons} electrons/pixel on {self.n_workers} worker(s)")
            print(f"  Sample: {self.sample!r}")
            print(f"  Beam: {beam.energy} keV, spot {beam.spot_size} nm")
            print(f"  Max depth: {self.max_depth:.1f} nm")
        logger.info("Scan start: %dx%d pixels, %d electrons/pixel, %d pass(es), %d worker(s)",
                    scan.width, scan.height, mc.num_electrons, scan.n_passes, self.n_workers)

        totals = {'depth': 0.0, 'primaries': 0, 'backscattered': 0,
                  'secondaries': 0, 'detected': 0.0}
        sink = self.progress
        bar = None
        if sink is None and self.verbose:
            bar = TqdmProgress(scan.height)
            sink = bar
        elif sink is not None and callable(getattr(sink, 'reset', None)):
            sink.reset()

        def consume(row, tallies):
            # Row-major reduction
            for col, tally in enumerate(tallies):
                signal[row, col] = tally.signal
                totals['depth'] += tally.depth_sum
                totals['primaries'] += tally.n_primaries
                totals['backscattered'] += tally.n_backscattered
                totals['secondaries'] += tally.n_secondaries
                totals['detected'] += tally.detected
            logger.debug("Row %d/%d done", row + 1, scan.height)
            if sink is not None:
                sink.report((row + 1) / scan.height)

        start_time = time.time()
        try:
            if self.n_workers > 1:
                self._scan_parallel(consume)
            else:
                self._scan_serial(consume)
        except SimulationCancelled:
            logger.info("Scan cancelled")
            raise
        finally:
            if bar is not None:
                bar.close()
        elapsed = time.time() - start_time

        noisy, data, pixels = render(signal, beam, scan, self.params.detector,
                                     self.params.image, mc.seed)
        n_primaries = totals['primaries']
        results = SimulationResults(
            image=ImageBuffer(noisy, data, pixels),
            avg_penetration_depth=totals['depth'] / n_primaries,
            backscatter_coefficient=totals['backscattered'] / n_primaries,
            total_electrons_simulated=n_primaries + totals['secondaries'],
            simulation_time=elapsed,
            n_primaries=n_primaries,
            n_secondaries=totals['secondaries'],
            n_detected=totals['detected'],
            max_depth_cutoff=self.max_depth,
        )

        rate = results.total_electrons_simulated / elapsed if elapsed > 0 else float('inf')
        logger.info("Scan complete in %.2fs: eta=%.4f, <depth>=%.1f nm, %d electrons",
                    elapsed, results.backscatter_coefficient,
                    results.avg_penetration_depth, results.total_electrons_simulated)
        if self.verbose:
            print(f"\nScan complete:")
            print(f"  Time: {elapsed:.1f}s")
            print(f"  Rate: {rate:.0f} electrons/sec")
            print(f"  Backscatter coefficient: {results.backscatter_coefficient:.4f}")
            print(f"  Avg penetration depth: {results.avg_penetration_depth:.1f} nm")
            print(f"  Electrons simulated: {results.total_electrons_simulated:,}")
        return results


def run_scan(sample: Sample, params: SimulationParameters, progress=None,
             cancel: Optional[CancelToken] = None, verbose: bool = False) -> SimulationResults:
    """One-call form of ScanController(...).run()."""
    return ScanController(sample, params, progress=progress, cancel=cancel,
                          verbose=verbose).run()

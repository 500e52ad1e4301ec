#!/usr/bin/env python3
"""
Profile trajectory transport and parallel scan scaling.
"""
import time
import cProfile
import pstats
from io import StringIO

import numpy as np

from sem_mc.core.materials import get_material
from sem_mc.core.parameters import (BeamParams, MonteCarloParams, ScanParams,
                                    SimulationParameters)
from sem_mc.core.particle import Electron
from sem_mc.core.sample import HomogeneousSample
from sem_mc.simulation.scan import run_scan
from sem_mc.transport.detector import Detector
from sem_mc.transport.engine import TrajectoryEngine


def _params(width, height, n_workers):
    return SimulationParameters(
        beam=BeamParams(energy=10.0),
        scan=ScanParams(width=width, height=height),
        monte_carlo=MonteCarloParams(num_electrons=20, min_energy=200.0,
                                     seed=5, n_workers=n_workers),
    ).validate()


def profile_single_trajectory():
    """Profile one batch of trajectories in detail."""
    print("\n" + "="*70)
    print("PROFILING TRAJECTORY TRANSPORT")
    print("="*70)

    sample = HomogeneousSample(get_material('Cu'), 5000.0, 5000.0, 5000.0)
    params = _params(1, 1, 1)
    engine = TrajectoryEngine(sample, params.monte_carlo, Detector(params.detector),
                              max_depth=2000.0)
    rng = np.random.default_rng(0)

    profiler = cProfile.Profile()
    profiler.enable()
    start = time.time()
    collisions = 0
    for _ in range(50):
        result = engine.simulate(Electron(10.0, (0.0, 0.0, 0.0), (0.0, 0.0, 1.0)), rng)
        collisions += result.collisions
    elapsed = time.time() - start
    profiler.disable()

    print(f"   Time: {elapsed:.4f}s for 50 electrons")
    print(f"   Collisions: {collisions} ({1e6 * elapsed / max(collisions, 1):.1f} us/step)")

    print("\n   Top function calls:")
    s = StringIO()
    ps = pstats.Stats(profiler, stream=s).sort_stats('cumulative')
    ps.print_stats(20)
    print(s.getvalue())


def profile_parallel_scan():
    """Compare serial and pooled scans of the same field."""
    print("\n" + "="*70)
    print("PROFILING PARALLEL SCAN")
    print("="*70)

    sample = HomogeneousSample(get_material('Si'), 5000.0, 5000.0, 5000.0)
    baseline = None
    for n_workers in (1, 2, 4):
        start = time.time()
        with run_scan(sample, _params(8, 8, n_workers)) as results:
            elapsed = time.time() - start
            if baseline is None:
                baseline = (elapsed, results.image.signal.copy())
            identical = np.array_equal(baseline[1], results.image.signal)
        print(f"   {n_workers} worker(s): {elapsed:.2f}s "
              f"(speedup {baseline[0] / elapsed:.2f}x, identical: {identical})")


if __name__ == "__main__":
    profile_single_trajectory()
    profile_parallel_scan()

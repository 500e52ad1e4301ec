"""
Batch job queue: enqueue (sample, parameters) pairs, run them in order.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sem_mc.core.parameters import SimulationParameters
from sem_mc.core.sample import Sample
from sem_mc.errors import InvalidParameterError
from sem_mc.simulation.context import SimulationContext
from sem_mc.simulation.results import SimulationResults

logger = logging.getLogger(__name__)


@dataclass
class SimulationJob:
    sample: Sample
    params: SimulationParameters
    name: str = ''


class SimulationManager:
    """
    Queue of simulation jobs executed on one context.

    Parameters are validated when a job is enqueued, so a bad job is
    rejected before anything runs.
    """

    def __init__(self, context: SimulationContext):
        self.context = context
        self.jobs: List[SimulationJob] = []

    def enqueue(self, sample: Sample, params: SimulationParameters,
                name: Optional[str] = None) -> int:
        """Add a job; returns its position in the queue."""
        if not isinstance(sample, Sample):
            raise InvalidParameterError(f"Expected a Sample, got {sample!r}")
        params.validate()
        self.jobs.append(SimulationJob(sample, params, name or f"job-{len(self.jobs)}"))
        return len(self.jobs) - 1

    @property
    def pending(self) -> int:
        return len(self.jobs)

    def run_all(self, verbose: bool = False) -> List[SimulationResults]:
        """
        Run every pending job and empty the queue.

        Returns:
            Results in enqueue order. If a job fails, results produced so far
            are released and the error propagates.
        """
        jobs, self.jobs = self.jobs, []
        results: List[SimulationResults] = []
        try:
            for job in jobs:
                logger.info("Running %s", job.name)
                handle = self.context.add_sample(job.sample)
                try:
                    results.append(self.context.run(handle, job.params, verbose=verbose))
                finally:
                    self.context.destroy_sample(handle)
        except BaseException:
            for result in results:
                result.release()
            raise
        return results

    def clear(self):
        """Drop pending jobs without running them."""
        self.jobs.clear()

    def __len__(self) -> int:
        return len(self.jobs)

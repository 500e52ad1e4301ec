"""Physics module: Elastic scattering, stopping power, secondary emission."""

from sem_mc.physics.stopping_power import StoppingPower
from sem_mc.physics.scattering import ElasticScattering

__all__ = ["StoppingPower", "ElasticScattering"]

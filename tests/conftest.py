"""Shared fixtures: small, fast configurations."""

import pytest

from sem_mc.core.materials import get_material
from sem_mc.core.parameters import (BeamParams, DetectorParams, MonteCarloParams,
                                    ScanParams, SimulationParameters)
from sem_mc.core.sample import HomogeneousSample


def make_params(width=2, height=2, num_electrons=4, energy=3.0, seed=7,
                min_energy=200.0, n_workers=1, **detector) -> SimulationParameters:
    """Low-energy carbon-friendly settings that keep trajectories short."""
    return SimulationParameters(
        beam=BeamParams(energy=energy, spot_size=2.0),
        scan=ScanParams(width=width, height=height, pixel_size=10.0),
        monte_carlo=MonteCarloParams(num_electrons=num_electrons, min_energy=min_energy,
                                     seed=seed, n_workers=n_workers),
        detector=DetectorParams(**detector),
    ).validate()


@pytest.fixture(scope="module")
def carbon():
    return get_material("C")


@pytest.fixture(scope="module")
def copper():
    return get_material("Cu")


@pytest.fixture(scope="module")
def carbon_block(carbon):
    return HomogeneousSample(carbon, 2000.0, 2000.0, 2000.0)


@pytest.fixture
def params():
    return make_params()


@pytest.fixture(scope="session")
def param_factory():
    return make_params

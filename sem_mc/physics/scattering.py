"""
Elastic electron scattering (screened Rutherford).

Single-scattering model after Joy: the screened Rutherford cross-section
gives the elastic mean free path, and the screened angular distribution is
sampled in closed form.

The numba kernels take their random numbers as arguments; they are drawn
from the caller's numpy Generator so that a seed reproduces a run exactly.

References:
    - D.C. Joy, Monte Carlo Modeling for Electron Microscopy and
      Microanalysis, Oxford (1995), ch. 3
    - Newbury & Myklebust, screening parameter fit
"""

import math

import numba
import numpy as np
from typing import Protocol, Tuple

from sem_mc.core.materials import Material

AVOGADRO = 6.02214076e23  # 1/mol


@numba.njit(fastmath=True, cache=True)
def screening_parameter(energy_keV: float, Z: float) -> float:
    """
    Screening parameter alpha.

    Accounts for the incident electron not seeing the whole nuclear charge
    behind the atomic electron cloud:
        alpha = 3.4e-3 Z^0.67 / E

    Parameters:
        energy_keV: Electron energy [keV]
        Z: Atomic number of the target

    Returns:
        alpha (dimensionless)
    """
    return 3.4e-3 * Z ** 0.67 / energy_keV


@numba.njit(fastmath=True, cache=True)
def elastic_cross_section(energy_keV: float, Z: float) -> float:
    """
    Screened Rutherford elastic cross-section with relativistic correction.

        sigma = 5.21e-7 Z²/E² · 4π/(α(1+α)) · ((E+511)/(E+1022))²

    Parameters:
        energy_keV: Electron energy [keV]
        Z: Atomic number of the target

    Returns:
        Cross-section [nm²/atom]; 0 when undefined (E <= 0 or Z <= 0)
    """
    if energy_keV <= 0.0 or Z <= 0.0:
        return 0.0
    alpha = screening_parameter(energy_keV, Z)
    relativistic = ((energy_keV + 511.0) / (energy_keV + 1022.0)) ** 2
    return (5.21e-7 * Z * Z / (energy_keV * energy_keV)
            * 4.0 * np.pi / (alpha * (1.0 + alpha)) * relativistic)


@numba.njit(fastmath=True, cache=True)
def elastic_mean_free_path(energy_keV: float, Z: float, A: float,
                           rho: float) -> float:
    """
    Elastic mean free path.

        lambda = A / (N_A · rho · sigma)

    Parameters:
        energy_keV: Electron energy [keV]
        Z: Atomic number
        A: Atomic weight [g/mol]
        rho: Density [g/cm³]

    Returns:
        Mean free path [nm], or -1.0 when the cross-section vanishes
    """
    if A <= 0.0 or rho <= 0.0:
        return -1.0
    sigma = elastic_cross_section(energy_keV, Z)
    if sigma <= 0.0:
        return -1.0
    # 1 cm³ = 1e21 nm³
    return A / (6.02214076e23 * rho * 1.0e-21 * sigma)


@numba.njit(fastmath=True, cache=True)
def sample_cos_theta(alpha: float, r: float) -> float:
    """
    Sample the polar scattering cosine from the screened distribution.

        cos θ = 1 - 2αR / (1 + α - R),   R uniform in [0, 1)

    Small angles dominate; large-angle events become likelier as alpha grows
    at low energy.
    """
    cos_theta = 1.0 - 2.0 * alpha * r / (1.0 + alpha - r)
    if cos_theta < -1.0:
        return -1.0
    if cos_theta > 1.0:
        return 1.0
    return cos_theta


@numba.njit(fastmath=True, cache=True)
def rotate_direction(ux: float, uy: float, uz: float,
                     cos_theta: float, phi: float) -> Tuple[float, float, float]:
    """
    Rotate a direction by polar angle theta and azimuth phi.

    Direction-cosine update relative to the current flight direction.
    Near the z-axis the local frame degenerates, so the new direction is
    built directly from (theta, phi) about ±z.

    Parameters:
        ux, uy, uz: Current unit direction
        cos_theta: Cosine of the polar scattering angle
        phi: Azimuthal angle [radians]

    Returns:
        New unit direction (ux, uy, uz)
    """
    sin_theta = np.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    cos_phi = np.cos(phi)
    sin_phi = np.sin(phi)

    if abs(uz) > 0.99999:
        # Direction nearly along z-axis
        sign = 1.0 if uz > 0.0 else -1.0
        new_x = sin_theta * cos_phi
        new_y = sin_theta * sin_phi
        new_z = sign * cos_theta
    else:
        tmp = np.sqrt(1.0 - uz * uz)
        new_x = ux * cos_theta + sin_theta * (ux * uz * cos_phi - uy * sin_phi) / tmp
        new_y = uy * cos_theta + sin_theta * (uy * uz * cos_phi + ux * sin_phi) / tmp
        new_z = uz * cos_theta - tmp * sin_theta * cos_phi

    # Renormalize
    norm = np.sqrt(new_x * new_x + new_y * new_y + new_z * new_z)
    return new_x / norm, new_y / norm, new_z / norm


@numba.njit(fastmath=True, cache=True)
def isotropic_direction(r1: float, r2: float) -> Tuple[float, float, float]:
    """Unit vector uniform on the sphere from two uniform numbers."""
    cos_theta = 1.0 - 2.0 * r1
    sin_theta = np.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    phi = 2.0 * np.pi * r2
    return sin_theta * np.cos(phi), sin_theta * np.sin(phi), cos_theta


class ScatteringModel(Protocol):
    """Elastic scattering plug-in used by the trajectory engine."""

    def mean_free_path(self, material: Material, energy_keV: float) -> float:
        ...

    def scatter(self, direction: Tuple[float, float, float], material: Material,
                energy_keV: float, rng: np.random.Generator) -> Tuple[float, float, float]:
        ...


class ElasticScattering:
    """
    Screened Rutherford elastic scattering.

    Usage:
        model = ElasticScattering()
        mfp = model.mean_free_path(get_material('Cu'), 20.0)
        new_dir = model.scatter((0.0, 0.0, 1.0), material, 20.0, rng)
    """

    def mean_free_path(self, material: Material, energy_keV: float) -> float:
        """
        Elastic mean free path [nm].

        Returns inf for vacuum or wherever the cross-section vanishes; the
        engine then propagates in a straight line with no scattering.
        """
        if material.is_vacuum:
            return math.inf
        mfp = elastic_mean_free_path(energy_keV, material.atomic_number,
                                     material.atomic_weight, material.density)
        if not (mfp > 0.0 and math.isfinite(mfp)):
            return math.inf
        return mfp

    def scatter(self, direction: Tuple[float, float, float], material: Material,
                energy_keV: float, rng: np.random.Generator) -> Tuple[float, float, float]:
        """
        Sample a new flight direction after one elastic event.

        Parameters:
            direction: Current unit direction
            material: Scattering material
            energy_keV: Electron energy [keV]
            rng: Random generator

        Returns:
            New unit direction
        """
        alpha = screening_parameter(energy_keV, material.atomic_number)
        cos_theta = sample_cos_theta(alpha, rng.random())
        phi = 2.0 * np.pi * rng.random()
        return rotate_direction(direction[0], direction[1], direction[2],
                                cos_theta, phi)

    def __repr__(self) -> str:
        return "ElasticScattering(screened Rutherford)"

"""
Secondary electron generation and emission.

Without explicit secondary tracking the SE signal is estimated from the
energy each primary deposits near the surface: every se_energy eV deposited
creates one SE, half of which head for the surface, and they survive the
trip with probability exp(-z / se_escape_depth).

References:
    - Lin & Joy, Surf. Interface Anal. 37, 895 (2005)
    - Chung & Everhart, J. Appl. Phys. 45, 707 (1974)
"""

import numba
import numpy as np

# Exit energy below which an electron counts as a secondary [eV]
SE_ENERGY_LIMIT_EV = 50.0


@numba.njit(fastmath=True, cache=True)
def se_generation(energy_lost_keV: float, depth_nm: float,
                  se_energy_eV: float, escape_depth_nm: float) -> float:
    """
    Expected number of secondaries escaping from one path segment.

        dN = (dE / epsilon) · 0.5 · exp(-z / lambda)

    Parameters:
        energy_lost_keV: Energy deposited over the segment [keV]
        depth_nm: Depth of the segment midpoint [nm]
        se_energy_eV: Mean energy to create one SE [eV]
        escape_depth_nm: SE escape depth [nm]

    Returns:
        Expected SE count
    """
    if energy_lost_keV <= 0.0 or se_energy_eV <= 0.0 or escape_depth_nm <= 0.0:
        return 0.0
    if depth_nm < 0.0:
        depth_nm = 0.0
    return (energy_lost_keV * 1.0e3 / se_energy_eV) * 0.5 * np.exp(-depth_nm / escape_depth_nm)


def se_fraction_above(threshold_eV: float, work_function_eV: float) -> float:
    """
    Fraction of emitted secondaries with energy above a threshold.

    The Chung-Everhart spectrum dN/dE ∝ E/(E+W)^4 integrates to

        F(E > T) = 3W²/(T+W)² - 2W³/(T+W)³

    Parameters:
        threshold_eV: Detector energy threshold [eV]
        work_function_eV: Work function of the emitting surface [eV]
    """
    if threshold_eV <= 0.0:
        return 1.0
    if work_function_eV <= 0.0:
        return 0.0
    ratio = work_function_eV / (threshold_eV + work_function_eV)
    return 3.0 * ratio ** 2 - 2.0 * ratio ** 3


def is_secondary_energy(energy_eV: float) -> bool:
    """Conventional SE/BSE split at 50 eV."""
    return energy_eV <= SE_ENERGY_LIMIT_EV

"""
Continuous energy loss of electrons (modified Bethe law).

The Joy-Luo form of the Bethe stopping power stays finite down to energies
of order 100 eV, which the plain Bethe expression does not.

References:
    - Joy & Luo, Scanning 11, 176 (1989)
    - Bethe, Ann. Phys. 5, 325 (1930)
"""

import math

import numba
import numpy as np
from scipy import integrate
from typing import Optional, Protocol

from sem_mc.core.materials import Material


@numba.njit(fastmath=True, cache=True)
def joy_luo_stopping_power(energy_keV: float, Z: float, A: float, rho: float,
                           J_keV: float) -> float:
    """
    Energy loss rate -dE/ds.

        dE/ds = 7.85e-3 · rho·Z/(A·E) · ln(1.166 (E/J + 0.85))   [keV/nm]

    Parameters:
        energy_keV: Electron energy [keV]
        Z: Atomic number
        A: Atomic weight [g/mol]
        rho: Density [g/cm³]
        J_keV: Mean ionization energy [keV]

    Returns:
        Stopping power [keV/nm], never negative
    """
    if energy_keV <= 0.0 or Z <= 0.0 or A <= 0.0 or rho <= 0.0 or J_keV <= 0.0:
        return 0.0
    value = (7.85e-3 * rho * Z / (A * energy_keV)
             * np.log(1.166 * (energy_keV / J_keV + 0.85)))
    if value < 0.0:
        return 0.0
    return value


class StoppingModel(Protocol):
    """Continuous-slowing-down plug-in used by the trajectory engine."""

    def stopping_power(self, material: Material, energy_keV: float) -> float:
        ...

    def energy_loss(self, material: Material, energy_keV: float,
                    path_nm: float) -> float:
        ...


class StoppingPower:
    """
    Joy-Luo stopping power and CSDA range for electrons in matter.

    Example:
        sp = StoppingPower()
        sp.stopping_power(get_material('Cu'), 20.0)   # keV/nm
        sp.csda_range(get_material('Cu'), 20.0)       # nm
    """

    def stopping_power(self, material: Material, energy_keV: float) -> float:
        """Stopping power [keV/nm] (0 in vacuum)."""
        if material.is_vacuum:
            return 0.0
        return joy_luo_stopping_power(energy_keV, material.atomic_number,
                                      material.atomic_weight, material.density,
                                      material.mean_ionization_keV)

    def energy_loss(self, material: Material, energy_keV: float,
                    path_nm: float) -> float:
        """
        Energy lost over a path segment [keV].

        Evaluated at the midpoint energy of the segment; never exceeds the
        electron's energy and never negative.
        """
        if path_nm <= 0.0 or energy_keV <= 0.0:
            return 0.0
        loss = self.stopping_power(material, energy_keV) * path_nm
        if 0.0 < loss < energy_keV:
            mid = energy_keV - 0.5 * loss
            loss = self.stopping_power(material, mid) * path_nm
        if not math.isfinite(loss) or loss < 0.0:
            return 0.0
        return min(loss, energy_keV)

    def csda_range(self, material: Material, energy_keV: float,
                   min_energy_keV: float = 0.05) -> float:
        """
        Continuous-slowing-down range [nm].

            R = ∫ dE / (dE/ds)   from min_energy to energy

        Parameters:
            material: Target material
            energy_keV: Starting energy [keV]
            min_energy_keV: Lower integration limit [keV]

        Returns:
            Range [nm] (inf in vacuum)
        """
        if material.is_vacuum:
            return math.inf
        if energy_keV <= min_energy_keV:
            return 0.0

        def inverse_stopping(e):
            s = self.stopping_power(material, e)
            return 1.0 / s if s > 0.0 else 0.0

        value, _ = integrate.quad(inverse_stopping, min_energy_keV, energy_keV,
                                  limit=200)
        return value

    def kanaya_okayama_range(self, material: Material, energy_keV: float) -> float:
        """
        Empirical Kanaya-Okayama electron range [nm] (for comparison).

            R = 27.6 A E^1.67 / (Z^0.889 rho)   [nm]
        """
        if material.is_vacuum:
            return math.inf
        return (27.6 * material.atomic_weight * energy_keV ** 1.67
                / (material.atomic_number ** 0.889 * material.density))

    def __repr__(self) -> str:
        return "StoppingPower(Joy-Luo)"


def auto_max_depth(material: Material, energy_keV: float,
                   sp: Optional[StoppingPower] = None) -> float:
    """Default depth cutoff: twice the CSDA range of the surface material [nm]."""
    sp = sp or StoppingPower()
    return 2.0 * sp.csda_range(material, energy_keV)

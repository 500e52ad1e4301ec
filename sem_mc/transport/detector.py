"""
Detector model: decides whether an escaping electron becomes signal.

The detector axis points from the beam impact point towards the detector:
elevation take_off_angle above the surface, azimuth azimuthal_angle. With
+z pointing into the sample the axis is

    (cos t cos a, cos t sin a, -sin t)

Backscattered electrons travel in straight lines, so they are only counted
inside the detector's acceptance cone. Secondaries are pulled in by the
collector bias and are accepted from any outward direction.
"""

import math

import numpy as np
from typing import Optional, Sequence, Tuple

from sem_mc.core.parameters import DetectorParams, SignalType
from sem_mc.physics.secondary import is_secondary_energy, se_fraction_above


class Detector:
    """
    Acceptance test for exit events.

    Parameters:
        params: Detector parameters
    """

    def __init__(self, params: DetectorParams):
        self.params = params
        t = params.take_off_angle
        a = params.azimuthal_angle
        self.axis = (math.cos(t) * math.cos(a),
                     math.cos(t) * math.sin(a),
                     -math.sin(t))
        self.cos_acceptance = math.cos(params.acceptance_angle)
        self.threshold_keV = params.energy_threshold * 1.0e-3
        self.detects_secondary = params.signal_type in (SignalType.SECONDARY,
                                                        SignalType.COMBINED)
        self.detects_backscattered = params.signal_type in (SignalType.BACKSCATTERED,
                                                            SignalType.COMBINED)

    def in_acceptance_cone(self, direction: Sequence[float]) -> bool:
        """True if the direction lies within the backscatter detector cone."""
        cos_angle = (direction[0] * self.axis[0] + direction[1] * self.axis[1]
                     + direction[2] * self.axis[2])
        return cos_angle >= self.cos_acceptance

    def _collect(self, rng: np.random.Generator) -> float:
        efficiency = self.params.collection_efficiency
        if efficiency >= 1.0:
            return 1.0
        if efficiency <= 0.0:
            return 0.0
        return 1.0 if rng.random() < efficiency else 0.0

    def accept_channels(self, exit_position: Sequence[float],
                        exit_direction: Sequence[float], exit_energy: float,
                        rng: np.random.Generator,
                        secondary: Optional[bool] = None) -> Tuple[float, float]:
        """
        Run secondary and backscatter acceptance independently.

        Parameters:
            exit_position: Surface crossing point [nm]
            exit_direction: Unit direction at exit
            exit_energy: Exit energy [keV]
            rng: Random generator
            secondary: Class of the electron; None classifies by exit energy

        Returns:
            (secondary weight, backscattered weight)
        """
        if exit_direction[2] >= 0.0 or exit_energy <= self.threshold_keV:
            return 0.0, 0.0

        se_weight = 0.0
        bse_weight = 0.0
        if secondary is None:
            secondary = is_secondary_energy(exit_energy * 1.0e3)
        if self.detects_secondary and secondary:
            se_weight = self._collect(rng)
        if self.detects_backscattered and not secondary:
            if self.in_acceptance_cone(exit_direction):
                bse_weight = self._collect(rng)
        return se_weight, bse_weight

    def accept(self, exit_position: Sequence[float], exit_direction: Sequence[float],
               exit_energy: float, rng: np.random.Generator,
               secondary: Optional[bool] = None) -> Tuple[bool, float]:
        """
        Decide whether an escaping electron is registered.

        Returns:
            (detected, weight); combined mode sums both channels
        """
        se_weight, bse_weight = self.accept_channels(exit_position, exit_direction,
                                                     exit_energy, rng, secondary)
        weight = se_weight + bse_weight
        return weight > 0.0, weight

    def accept_yield(self, se_yield: float, work_function_eV: float,
                     rng: np.random.Generator) -> float:
        """
        Detected count from an analytic SE yield.

        Emission is Poisson with mean se_yield; thinning by the collection
        efficiency and the share of the SE spectrum above threshold keeps
        it Poisson.

        Parameters:
            se_yield: Expected escaping secondaries
            work_function_eV: Work function of the emitting surface [eV]
            rng: Random generator

        Returns:
            Detected secondaries
        """
        if not self.detects_secondary or se_yield <= 0.0:
            return 0.0
        mean = (se_yield * self.params.collection_efficiency
                * se_fraction_above(self.params.energy_threshold, work_function_eV))
        if mean <= 0.0:
            return 0.0
        return float(rng.poisson(mean))

    def __repr__(self) -> str:
        return (f"Detector({self.params.signal_type.value}, "
                f"efficiency={self.params.collection_efficiency:g})")


def accept(exit_position: Sequence[float], exit_direction: Sequence[float],
           exit_energy: float, params: DetectorParams,
           rng: np.random.Generator) -> Tuple[bool, float]:
    """Functional form of Detector.accept for one-off queries."""
    return Detector(params).accept(exit_position, exit_direction, exit_energy, rng)

"""
Electron state.

Single electrons are small mutable objects walked through the sample by the
trajectory engine; a pixel's batch of primaries is generated at once into a
NumPy structured array.
"""

import math

import numpy as np
from typing import Iterator, Tuple

from sem_mc.core.parameters import BeamParams
from sem_mc.errors import PhysicsError


# Structured dtype for a batch of electrons
ELECTRON_DTYPE = np.dtype([
    ('position', np.float64, 3),      # x, y, z [nm]
    ('direction', np.float64, 3),     # unit vector
    ('energy', np.float64),           # keV
    ('weight', np.float64),           # statistical weight
])

UNIT_TOLERANCE = 1e-6


class Electron:
    """
    One electron inside a trajectory.

    Parameters:
        energy: Kinetic energy [keV]
        position: (x, y, z) position [nm]
        direction: (ux, uy, uz) unit vector (not normalized here)
        weight: Statistical weight
        generation: 0 for primaries, >0 for secondaries
    """

    __slots__ = ('energy', 'x', 'y', 'z', 'ux', 'uy', 'uz',
                 'weight', 'generation', 'collisions')

    def __init__(self, energy: float, position: Tuple[float, float, float],
                 direction: Tuple[float, float, float], weight: float = 1.0,
                 generation: int = 0):
        self.energy = float(energy)
        self.x, self.y, self.z = (float(v) for v in position)
        self.ux, self.uy, self.uz = (float(v) for v in direction)
        self.weight = float(weight)
        self.generation = generation
        self.collisions = 0

    @property
    def position(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    @property
    def direction(self) -> Tuple[float, float, float]:
        return (self.ux, self.uy, self.uz)

    @property
    def is_primary(self) -> bool:
        return self.generation == 0

    def validate(self):
        """
        Reject states the transport model cannot start from.

        Raises:
            PhysicsError: non-finite position/energy, negative energy or a
                direction that is not a unit vector
        """
        values = (self.energy, self.x, self.y, self.z, self.ux, self.uy, self.uz)
        if not all(math.isfinite(v) for v in values):
            raise PhysicsError("Electron state contains non-finite values")
        if self.energy < 0.0:
            raise PhysicsError(f"Electron energy ({self.energy} keV) is negative")
        norm = math.sqrt(self.ux * self.ux + self.uy * self.uy + self.uz * self.uz)
        if abs(norm - 1.0) > UNIT_TOLERANCE:
            raise PhysicsError(f"Electron direction is not a unit vector (|u| = {norm:.6f})")

    def __repr__(self) -> str:
        return (f"Electron(E={self.energy:.4f} keV, "
                f"r=({self.x:.2f}, {self.y:.2f}, {self.z:.2f}) nm, "
                f"collisions={self.collisions})")


class ElectronArray:
    """Batch of primary electrons for one beam position."""

    def __init__(self, n_electrons: int):
        """
        Initialize electron array.

        Parameters:
            n_electrons: Number of electrons to allocate
        """
        self.electrons = np.zeros(n_electrons, dtype=ELECTRON_DTYPE)
        self.n_electrons = n_electrons

    def initialize_beam(self, beam: BeamParams, x0: float, y0: float,
                        rng: np.random.Generator):
        """
        Fill the array with primaries entering the surface at (x0, y0).

        Positions are Gaussian about the beam axis with sigma = spot_size/2.355
        (spot size is a FWHM). Directions are uniform in solid angle inside
        the convergence cone around +z. Energies are Gaussian about the beam
        energy with the beam's energy spread.

        Parameters:
            beam: Beam parameters
            x0, y0: Beam position on the sample [nm]
            rng: Random generator for this pixel
        """
        n = self.n_electrons
        sigma_xy = beam.spot_size / 2.355

        if sigma_xy > 0:
            x = rng.normal(x0, sigma_xy, n)
            y = rng.normal(y0, sigma_xy, n)
        else:
            x = np.full(n, x0, dtype=np.float64)
            y = np.full(n, y0, dtype=np.float64)

        cos_alpha = math.cos(beam.convergence_angle)
        cos_theta = 1.0 - rng.random(n) * (1.0 - cos_alpha)
        phi = rng.uniform(0.0, 2.0 * np.pi, n)
        sin_theta = np.sqrt(np.maximum(0.0, 1.0 - cos_theta ** 2))

        self.electrons['position'][:, 0] = x
        self.electrons['position'][:, 1] = y
        self.electrons['position'][:, 2] = 0.0
        self.electrons['direction'][:, 0] = sin_theta * np.cos(phi)
        self.electrons['direction'][:, 1] = sin_theta * np.sin(phi)
        self.electrons['direction'][:, 2] = cos_theta
        self.electrons['weight'] = 1.0

        # Energy with optional spread
        sigma_e = beam.sigma_energy
        if sigma_e > 0:
            energies = rng.normal(beam.energy, sigma_e, n)
            self.electrons['energy'] = np.maximum(energies, 0.0)  # No negative energies
        else:
            self.electrons['energy'] = beam.energy

    def electron(self, index: int) -> Electron:
        """Single Electron view of one array entry."""
        entry = self.electrons[index]
        return Electron(entry['energy'], entry['position'], entry['direction'],
                        weight=entry['weight'])

    def __iter__(self) -> Iterator[Electron]:
        for i in range(self.n_electrons):
            yield self.electron(i)

    def __len__(self) -> int:
        return self.n_electrons

    def get_statistics(self) -> dict:
        """Get statistics about the electron batch."""
        energies = self.electrons['energy']
        return {
            'n_total': self.n_electrons,
            'mean_energy': float(np.mean(energies)) if len(energies) > 0 else 0.0,
            'max_energy': float(np.max(energies)) if len(energies) > 0 else 0.0,
            'min_energy': float(np.min(energies)) if len(energies) > 0 else 0.0,
        }

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return (f"ElectronArray(n={stats['n_total']}, "
                f"<E>={stats['mean_energy']:.3f} keV)")

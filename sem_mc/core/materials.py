"""
Material definitions for electron-solid interaction.

A Material carries the constants used by the scattering, stopping-power and
secondary-emission models. Instances are immutable and shared by reference
across all samples and layers that use them.

References:
    - Berger & Seltzer, NBS 82-2550 (mean ionization fit)
    - Lin & Joy, Surf. Interface Anal. 37, 895 (2005) (SE parameters)
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sem_mc.errors import InvalidParameterError, PhysicsError


def mean_ionization_eV(Z: float) -> float:
    """
    Mean ionization potential from the Berger-Seltzer fit.

    J = 9.76 Z + 58.5 Z^-0.19  [eV]
    """
    return 9.76 * Z + 58.5 / Z ** 0.19


def estimate_atomic_weight(Z: float) -> float:
    """Rough A(Z) for custom materials given without an atomic weight."""
    if Z <= 1.0:
        return 1.008
    return 2.0 * Z + 0.0066 * Z ** 2.2


@dataclass(frozen=True)
class Material:
    """
    Physical constants of one substance.

    Parameters:
        name: Symbol or name
        atomic_number: Z (mean Z for compounds)
        density: Density [g/cm³]
        work_function: Surface work function [eV]
        mean_ionization: Mean ionization energy J [eV]
        atomic_weight: Molar mass A [g/mol]
        se_energy: Mean energy spent per secondary electron created [eV]
        se_escape_depth: Effective SE escape depth [nm]
    """
    name: str
    atomic_number: float
    density: float
    work_function: float = 4.5
    mean_ionization: Optional[float] = None
    atomic_weight: Optional[float] = None
    se_energy: float = 50.0
    se_escape_depth: float = 1.0
    aliases: tuple = field(default=(), compare=False, repr=False)

    def __post_init__(self):
        # Fill derived constants; frozen dataclass needs object.__setattr__
        if self.mean_ionization is None and self.atomic_number > 0:
            object.__setattr__(self, 'mean_ionization',
                               mean_ionization_eV(self.atomic_number))
        if self.atomic_weight is None and self.atomic_number > 0:
            object.__setattr__(self, 'atomic_weight',
                               estimate_atomic_weight(self.atomic_number))

    @property
    def is_vacuum(self) -> bool:
        return self.atomic_number <= 0 or self.density <= 0

    @property
    def mean_ionization_keV(self) -> float:
        return (self.mean_ionization or 0.0) * 1.0e-3

    def validate_physics(self):
        """
        Check that the transport model is defined for this material.

        Raises:
            PhysicsError: zero/negative Z, density or atomic weight,
                or any non-finite constant.
        """
        if not (math.isfinite(self.atomic_number) and self.atomic_number > 0):
            raise PhysicsError(f"Material '{self.name}': atomic number must be > 0")
        if not (math.isfinite(self.density) and self.density > 0):
            raise PhysicsError(f"Material '{self.name}': density must be > 0")
        values = (self.atomic_weight, self.mean_ionization, self.work_function)
        if any(v is None or not math.isfinite(v) for v in values):
            raise PhysicsError(f"Material '{self.name}' has non-finite constants")
        if self.atomic_weight <= 0 or self.mean_ionization <= 0:
            raise PhysicsError(f"Material '{self.name}': atomic weight and "
                               f"mean ionization must be > 0")


VACUUM = Material(name='vacuum', atomic_number=0.0, density=0.0,
                  work_function=0.0, mean_ionization=0.0, atomic_weight=0.0)


# Preset table. Work functions from Michaelson (1977); SE parameters from
# Lin & Joy where available, otherwise typical metal/semiconductor values.
_PRESETS = [
    Material('C', 6, 2.0, work_function=5.0, mean_ionization=78.0,
             atomic_weight=12.011, se_energy=60.0, se_escape_depth=3.0,
             aliases=('carbon',)),
    Material('Al', 13, 2.70, work_function=4.28, mean_ionization=166.0,
             atomic_weight=26.982, se_energy=60.0, se_escape_depth=1.5,
             aliases=('aluminum', 'aluminium')),
    Material('Si', 14, 2.33, work_function=4.85, mean_ionization=173.0,
             atomic_weight=28.086, se_energy=90.0, se_escape_depth=2.7,
             aliases=('silicon',)),
    Material('Cu', 29, 8.96, work_function=4.65, mean_ionization=322.0,
             atomic_weight=63.546, se_energy=45.0, se_escape_depth=1.0,
             aliases=('copper',)),
    Material('W', 74, 19.30, work_function=4.55, mean_ionization=727.0,
             atomic_weight=183.84, se_energy=40.0, se_escape_depth=0.6,
             aliases=('tungsten',)),
    Material('Au', 79, 19.32, work_function=5.10, mean_ionization=790.0,
             atomic_weight=196.967, se_energy=35.0, se_escape_depth=0.5,
             aliases=('gold',)),
]

PRESETS: Dict[str, Material] = {m.name: m for m in _PRESETS}

_LOOKUP: Dict[str, Material] = {}
for _m in _PRESETS:
    _LOOKUP[_m.name.lower()] = _m
    for _alias in _m.aliases:
        _LOOKUP[_alias] = _m


def get_material(name: str) -> Material:
    """
    Look up a predefined material by symbol or name (case-insensitive).

    Raises:
        InvalidParameterError: unknown name
    """
    if not isinstance(name, str):
        raise InvalidParameterError(f"Material name must be a string, got {name!r}")
    try:
        return _LOOKUP[name.strip().lower()]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown material '{name}'. Available: {list_material_names()}"
        ) from None


def list_material_names() -> List[str]:
    """Symbols of all predefined materials."""
    return list(PRESETS.keys())


def custom_material(name: str, atomic_number: float, density: float,
                    work_function: float = 4.5,
                    mean_ionization: Optional[float] = None,
                    atomic_weight: Optional[float] = None,
                    se_energy: float = 50.0,
                    se_escape_depth: float = 1.0) -> Material:
    """
    Create a user-defined material after validating its constants.

    Raises:
        InvalidParameterError: empty name, Z outside [1, 100], density <= 0,
            negative work function or non-positive optional constants
    """
    if not name or not str(name).strip():
        raise InvalidParameterError("Material name cannot be empty")
    if not (1 <= atomic_number <= 100):
        raise InvalidParameterError(
            f"atomic_number ({atomic_number}) must be between 1 and 100")
    if not (math.isfinite(density) and density > 0):
        raise InvalidParameterError(f"density ({density}) must be > 0")
    if not (math.isfinite(work_function) and work_function >= 0):
        raise InvalidParameterError(f"work_function ({work_function}) must be >= 0")
    for label, value in (('mean_ionization', mean_ionization),
                         ('atomic_weight', atomic_weight)):
        if value is not None and not (math.isfinite(value) and value > 0):
            raise InvalidParameterError(f"{label} ({value}) must be > 0")
    if se_energy <= 0 or se_escape_depth <= 0:
        raise InvalidParameterError("se_energy and se_escape_depth must be > 0")

    return Material(name=str(name).strip(), atomic_number=float(atomic_number),
                    density=float(density), work_function=float(work_function),
                    mean_ionization=mean_ionization, atomic_weight=atomic_weight,
                    se_energy=float(se_energy),
                    se_escape_depth=float(se_escape_depth))


def material_from_dict(entry) -> Material:
    """
    Resolve a material from a config entry.

    Accepts a preset name string or a mapping with the custom_material keys.
    """
    if isinstance(entry, str):
        return get_material(entry)
    if isinstance(entry, Material):
        return entry
    if not isinstance(entry, dict):
        raise InvalidParameterError(f"Cannot interpret material entry {entry!r}")
    if set(entry) == {'name'}:
        return get_material(entry['name'])
    allowed = {'name', 'atomic_number', 'density', 'work_function',
               'mean_ionization', 'atomic_weight', 'se_energy', 'se_escape_depth'}
    unknown = set(entry) - allowed
    if unknown:
        raise InvalidParameterError(f"Unknown material keys: {sorted(unknown)}")
    try:
        return custom_material(**entry)
    except TypeError as e:
        raise InvalidParameterError(f"Incomplete material entry {entry!r}: {e}") from None

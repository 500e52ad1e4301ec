"""Core module: Electron state, materials, sample geometry, parameters."""

from sem_mc.core.materials import Material, VACUUM, get_material, custom_material
from sem_mc.core.particle import ElectronArray, Electron
from sem_mc.core.sample import HomogeneousSample, LayeredSample, lookup_material_at

__all__ = ["Material", "VACUUM", "get_material", "custom_material", "ElectronArray",
           "Electron", "HomogeneousSample", "LayeredSample", "lookup_material_at"]

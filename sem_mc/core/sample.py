"""
Sample geometry: where each material sits in space.

The surface is the plane z = 0 and +z points into the sample. The lateral
bounding box is centred on the beam axis. Layer intervals are half-open
[top, bottom) so an interface belongs to the layer below it and
zero-thickness layers are never resolved.
"""

import math
import numbers
from typing import List, Optional, Sequence, Tuple

from sem_mc.core.materials import Material, VACUUM
from sem_mc.errors import InvalidParameterError


def _check_extent(label: str, value: float):
    if not (isinstance(value, numbers.Real) and math.isfinite(value) and value > 0):
        raise InvalidParameterError(f"{label} ({value}) must be a finite number > 0")


def _check_material(material):
    if not isinstance(material, Material):
        raise InvalidParameterError(f"Expected a Material, got {material!r}")
    if material == VACUUM:
        raise InvalidParameterError("Vacuum cannot be used as a sample material")
    material.validate_physics()


class Sample:
    """
    Common geometry for homogeneous and layered samples.

    Subclasses fill self.layers with (material, top, bottom) tuples in
    depth order.
    """

    def __init__(self, width: float, height: float):
        _check_extent('width', width)
        _check_extent('height', height)
        self.width = float(width)
        self.height = float(height)
        self.layers: List[Tuple[Material, float, float]] = []

    @property
    def total_depth(self) -> float:
        """Depth of the lowest interface (inf for a semi-infinite substrate)."""
        return self.layers[-1][2]

    @property
    def surface_material(self) -> Material:
        for material, top, bottom in self.layers:
            if bottom > top:
                return material
        return self.layers[-1][0]

    @property
    def materials(self) -> List[Material]:
        return [layer[0] for layer in self.layers]

    def in_lateral_bounds(self, x: float, y: float) -> bool:
        return abs(x) <= 0.5 * self.width and abs(y) <= 0.5 * self.height

    def layer_index_at(self, x: float, y: float, z: float) -> int:
        """Index of the layer containing the point, or -1 for vacuum."""
        if z < 0.0 or not self.in_lateral_bounds(x, y):
            return -1
        for i, (_, top, bottom) in enumerate(self.layers):
            if top <= z < bottom:
                return i
        return -1

    def contains(self, x: float, y: float, z: float) -> bool:
        return self.layer_index_at(x, y, z) >= 0

    def material_at(self, x: float, y: float, z: float) -> Material:
        index = self.layer_index_at(x, y, z)
        if index < 0:
            return VACUUM
        return self.layers[index][0]

    def distance_to_boundary(self, position: Sequence[float],
                             direction: Sequence[float],
                             layer_index: Optional[int] = None) -> float:
        """
        Distance along a ray to the next interface or bounding-box face.

        Parameters:
            position: (x, y, z) inside the sample [nm]
            direction: Unit direction vector
            layer_index: Layer containing the point, if already known

        Returns:
            Distance [nm] (inf if the ray never meets a boundary)
        """
        x, y, z = position
        ux, uy, uz = direction
        half_w = 0.5 * self.width
        half_h = 0.5 * self.height

        t = math.inf
        if ux > 0.0:
            t = min(t, (half_w - x) / ux)
        elif ux < 0.0:
            t = min(t, (-half_w - x) / ux)
        if uy > 0.0:
            t = min(t, (half_h - y) / uy)
        elif uy < 0.0:
            t = min(t, (-half_h - y) / uy)

        index = self.layer_index_at(x, y, z) if layer_index is None else layer_index
        if index >= 0:
            _, top, bottom = self.layers[index]
        else:
            top, bottom = 0.0, math.inf
        if uz > 0.0 and math.isfinite(bottom):
            t = min(t, (bottom - z) / uz)
        elif uz < 0.0:
            t = min(t, (top - z) / uz)

        return max(t, 0.0)

    def describe(self) -> dict:
        """Plain-dict summary (used for logging and HDF5 metadata)."""
        return {
            'type': type(self).__name__,
            'width_nm': self.width,
            'height_nm': self.height,
            'layers': [(m.name, top, bottom) for m, top, bottom in self.layers],
        }


class HomogeneousSample(Sample):
    """Single material filling a finite box."""

    def __init__(self, material: Material, width: float, height: float, depth: float):
        super().__init__(width, height)
        _check_material(material)
        _check_extent('depth', depth)
        self.material = material
        self.depth = float(depth)
        self.layers = [(material, 0.0, self.depth)]

    def __repr__(self) -> str:
        return (f"HomogeneousSample({self.material.name}, "
                f"{self.width:g}x{self.height:g}x{self.depth:g} nm)")


class LayeredSample(Sample):
    """
    Stack of layers; the last layer continues as a semi-infinite substrate.

    Parameters:
        layers: Ordered (material, thickness [nm]) pairs from the surface down
        width, height: Lateral extent [nm]
    """

    def __init__(self, layers: Sequence[Tuple[Material, float]],
                 width: float, height: float):
        super().__init__(width, height)
        layers = list(layers)
        if not layers:
            raise InvalidParameterError("A layered sample needs at least one layer")

        top = 0.0
        stack = []
        for i, entry in enumerate(layers):
            try:
                material, thickness = entry
            except (TypeError, ValueError):
                raise InvalidParameterError(
                    f"Layer {i} must be a (material, thickness) pair") from None
            _check_material(material)
            if not (isinstance(thickness, numbers.Real) and math.isfinite(thickness)
                    and thickness >= 0):
                raise InvalidParameterError(
                    f"Layer {i} thickness ({thickness}) must be finite and >= 0")
            bottom = top + float(thickness)
            stack.append((material, top, bottom))
            top = bottom

        # Semi-infinite below the last explicit layer
        last_material, last_top, _ = stack[-1]
        stack[-1] = (last_material, last_top, math.inf)
        self.layers = stack
        self.thicknesses = [float(t) for _, t in layers]

    def __repr__(self) -> str:
        names = '/'.join(f"{m.name}({t:g})" for (m, _, _), t
                         in zip(self.layers, self.thicknesses))
        return f"LayeredSample({names}, {self.width:g}x{self.height:g} nm)"


def lookup_material_at(sample: Sample, x: float, y: float, z: float) -> Material:
    """Material at a 3D point; VACUUM outside the sample."""
    return sample.material_at(x, y, z)

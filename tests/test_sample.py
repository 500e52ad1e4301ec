"""Tests for sample geometry and material lookup."""

import math

import pytest

from sem_mc.core.materials import VACUUM, Material, get_material
from sem_mc.core.sample import HomogeneousSample, LayeredSample, lookup_material_at
from sem_mc.errors import InvalidParameterError, PhysicsError


@pytest.fixture(scope="module")
def stack():
    return LayeredSample([(get_material("C"), 10.0), (get_material("Cu"), 50.0),
                          (get_material("Si"), 100.0)], 200.0, 100.0)


class TestHomogeneous:

    def test_inside_and_outside(self, carbon):
        sample = HomogeneousSample(carbon, 100.0, 100.0, 50.0)
        assert lookup_material_at(sample, 0.0, 0.0, 0.0) is carbon
        assert lookup_material_at(sample, 49.0, -49.0, 49.9) is carbon
        assert lookup_material_at(sample, 0.0, 0.0, -0.1) is VACUUM
        assert lookup_material_at(sample, 51.0, 0.0, 10.0) is VACUUM
        assert lookup_material_at(sample, 0.0, 0.0, 50.0) is VACUUM

    @pytest.mark.parametrize("dims", [(0, 10, 10), (10, -1, 10), (10, 10, 0),
                                      (10, 10, math.inf), (10, math.nan, 10)])
    def test_invalid_extent(self, carbon, dims):
        with pytest.raises(InvalidParameterError):
            HomogeneousSample(carbon, *dims)

    def test_vacuum_material_rejected(self):
        with pytest.raises(InvalidParameterError):
            HomogeneousSample(VACUUM, 10, 10, 10)

    @pytest.mark.parametrize("material", [Material("x", 0, 1.0), Material("x", 6, -1.0),
                                          Material("x", 6, math.nan)])
    def test_non_physical_material(self, material):
        with pytest.raises(PhysicsError):
            HomogeneousSample(material, 10, 10, 10)
        with pytest.raises(PhysicsError):
            LayeredSample([(get_material("C"), 5.0), (material, 5.0)], 10, 10)


class TestLayered:

    def test_resolves_exactly_one_layer(self, stack):
        assert stack.material_at(0, 0, 0).name == "C"
        assert stack.material_at(0, 0, 9.99).name == "C"
        assert stack.material_at(0, 0, 10.0).name == "Cu"
        assert stack.material_at(0, 0, 59.0).name == "Cu"
        assert stack.material_at(0, 0, 60.0).name == "Si"

    def test_semi_infinite_substrate(self, stack):
        assert stack.material_at(0, 0, 1.0e6).name == "Si"
        assert math.isinf(stack.total_depth)

    def test_outside_box_is_vacuum(self, stack):
        assert stack.material_at(101.0, 0, 20.0) is VACUUM
        assert stack.material_at(0, 51.0, 20.0) is VACUUM
        assert stack.material_at(0, 0, -1.0) is VACUUM
        assert not stack.contains(0, 0, -1.0)

    def test_zero_thickness_layer_never_resolved(self):
        sample = LayeredSample([(get_material("Au"), 0.0), (get_material("Si"), 20.0)],
                               100.0, 100.0)
        assert sample.material_at(0, 0, 0).name == "Si"
        assert sample.surface_material.name == "Si"

    @pytest.mark.parametrize("thickness", [-1.0, math.nan, math.inf, "10"])
    def test_bad_thickness(self, thickness):
        with pytest.raises(InvalidParameterError):
            LayeredSample([(get_material("C"), 10.0), (get_material("Si"), thickness)],
                          100.0, 100.0)

    def test_empty_stack(self):
        with pytest.raises(InvalidParameterError):
            LayeredSample([], 100.0, 100.0)

    def test_malformed_entry(self):
        with pytest.raises(InvalidParameterError):
            LayeredSample([get_material("C")], 100.0, 100.0)

    def test_materials_shared_by_reference(self):
        cu = get_material("Cu")
        sample = LayeredSample([(cu, 5.0), (cu, 5.0)], 10.0, 10.0)
        assert sample.layers[0][0] is sample.layers[1][0] is cu


class TestDistanceToBoundary:

    def test_down_to_interface(self, stack):
        assert stack.distance_to_boundary((0, 0, 0), (0, 0, 1)) == pytest.approx(10.0)
        assert stack.distance_to_boundary((0, 0, 20), (0, 0, 1)) == pytest.approx(40.0)

    def test_up_to_surface(self, stack):
        assert stack.distance_to_boundary((0, 0, 5), (0, 0, -1)) == pytest.approx(5.0)

    def test_lateral_face(self, stack):
        assert stack.distance_to_boundary((90, 0, 5), (1, 0, 0)) == pytest.approx(10.0)

    def test_oblique(self, stack):
        s = math.sqrt(0.5)
        assert stack.distance_to_boundary((0, 0, 0), (s, 0, s)) == pytest.approx(10.0 / s)

    def test_substrate_sideways_only(self, stack):
        assert stack.distance_to_boundary((0, 0, 500), (0, 0, 1)) == math.inf
        assert stack.distance_to_boundary((0, 0, 500), (0, 1, 0)) == pytest.approx(50.0)

    def test_never_negative(self, stack):
        assert stack.distance_to_boundary((0, 0, 0), (0, 0, -1)) == 0.0

    def test_describe(self, stack):
        info = stack.describe()
        assert info["type"] == "LayeredSample"
        assert [name for name, _, _ in info["layers"]] == ["C", "Cu", "Si"]

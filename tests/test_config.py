"""Tests for YAML configuration loading and saving."""

import pytest

from sem_mc.config import build_sample, dump_config, load_config, parse_config
from sem_mc.core.parameters import SignalType, default_parameters
from sem_mc.core.sample import HomogeneousSample, LayeredSample
from sem_mc.errors import InvalidParameterError, SemIOError

CONFIG = """
beam:
  energy: 10.0
  spot_size: 3.0
scan:
  width: 8
  height: 4
monte_carlo:
  num_electrons: 25
  seed: 11
detector:
  signal_type: backscattered
  noise_model: poisson
sample:
  width: 1000
  height: 1000
  layers:
    - {material: C, thickness: 20}
    - {material: Si, thickness: 500}
"""


class TestParse:

    def test_empty_document_gives_defaults(self):
        params, sample = parse_config(None)
        assert params == default_parameters()
        assert sample is None

    def test_partial_sections(self):
        params, _ = parse_config({'beam': {'energy': 5.0}})
        assert params.beam.energy == 5.0
        assert params.scan == default_parameters().scan

    def test_unknown_section(self):
        with pytest.raises(InvalidParameterError, match="sections"):
            parse_config({'beem': {}})

    def test_unknown_key(self):
        with pytest.raises(InvalidParameterError, match="energie"):
            parse_config({'beam': {'energie': 5.0}})

    def test_section_not_mapping(self):
        with pytest.raises(InvalidParameterError):
            parse_config({'scan': 64})

    def test_values_validated(self):
        with pytest.raises(InvalidParameterError):
            parse_config({'beam': {'energy': -1.0}})
        with pytest.raises(InvalidParameterError):
            parse_config({'detector': {'signal_type': 'auger'}})


class TestSampleSection:

    def test_homogeneous(self):
        sample = build_sample({'material': 'Cu', 'width': 100, 'height': 100, 'depth': 50})
        assert isinstance(sample, HomogeneousSample)
        assert sample.material.name == 'Cu'

    def test_layered_inferred(self):
        sample = build_sample({'width': 100, 'height': 100,
                               'layers': [{'material': 'C', 'thickness': 5}]})
        assert isinstance(sample, LayeredSample)

    def test_custom_material(self):
        sample = build_sample({
            'type': 'homogeneous', 'width': 100, 'height': 100, 'depth': 50,
            'material': {'name': 'GaAs', 'atomic_number': 32, 'density': 5.32},
        })
        assert sample.material.name == 'GaAs'

    @pytest.mark.parametrize("section", [
        {'material': 'Cu', 'width': 100, 'height': 100},
        {'material': 'Cu', 'width': 100, 'height': 100, 'depth': 5, 'colour': 'red'},
        {'type': 'wedge', 'width': 100, 'height': 100},
        {'width': 100, 'height': 100, 'layers': [{'material': 'C'}]},
        {'width': 100, 'height': 100,
         'layers': [{'material': 'C', 'thickness': 5, 'rough': True}]},
    ])
    def test_rejected(self, section):
        with pytest.raises(InvalidParameterError):
            build_sample(section)


class TestFiles:

    def test_load(self, tmp_path):
        path = tmp_path / 'run.yaml'
        path.write_text(CONFIG)
        params, sample = load_config(path)
        assert params.beam.energy == 10.0
        assert (params.scan.width, params.scan.height) == (8, 4)
        assert params.detector.signal_type == SignalType.BACKSCATTERED
        assert [m.name for m, _, _ in sample.layers] == ['C', 'Si']
        assert sample.total_depth == pytest.approx(520.0)

    def test_dump_then_load(self, tmp_path):
        path = tmp_path / 'run.yaml'
        path.write_text(CONFIG)
        params, sample = load_config(path)

        out = tmp_path / 'saved.yaml'
        dump_config(params, out, sample)
        reloaded, resample = load_config(out)
        assert reloaded == params
        assert resample.thicknesses == sample.thicknesses
        assert [m.atomic_number for m, _, _ in resample.layers] == [6, 14]

    def test_missing_file(self, tmp_path):
        with pytest.raises(SemIOError):
            load_config(tmp_path / 'nope.yaml')

    def test_malformed(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("beam: [energy: 1\n")
        with pytest.raises(InvalidParameterError, match="Malformed"):
            load_config(path)

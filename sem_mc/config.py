"""
YAML configuration files.

A run is described by one document:

    beam:        {energy: 20.0, current: 1.0, spot_size: 2.0}
    scan:        {width: 64, height: 64, pixel_size: 5.0}
    monte_carlo: {num_electrons: 200, seed: 42}
    detector:    {signal_type: secondary, noise_model: poisson}
    image:       {gamma: 1.2}
    sample:
      type: layered
      width: 2000
      height: 2000
      layers:
        - {material: C, thickness: 20}
        - {material: Si, thickness: 500}

Every section is optional and falls back to the defaults. Materials are a
preset name or a mapping with the custom-material keys. Unknown sections
or keys are rejected.
"""

import dataclasses
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from sem_mc.core.materials import material_from_dict
from sem_mc.core.parameters import (BeamParams, DetectorParams, ImageParams,
                                    MonteCarloParams, ScanParams,
                                    SimulationParameters)
from sem_mc.core.sample import HomogeneousSample, LayeredSample, Sample
from sem_mc.errors import InvalidParameterError, SemIOError

SECTIONS = {
    'beam': BeamParams,
    'scan': ScanParams,
    'monte_carlo': MonteCarloParams,
    'detector': DetectorParams,
    'image': ImageParams,
}


def _build_section(name: str, cls, values: Optional[dict]):
    if values is None:
        return cls()
    if not isinstance(values, dict):
        raise InvalidParameterError(f"Section '{name}' must be a mapping")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise InvalidParameterError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return cls(**values)


def build_sample(section: dict) -> Sample:
    """Create the sample described by a `sample` config section."""
    if not isinstance(section, dict):
        raise InvalidParameterError("Section 'sample' must be a mapping")
    section = dict(section)
    kind = section.pop('type', 'layered' if 'layers' in section else 'homogeneous')

    try:
        width = section.pop('width')
        height = section.pop('height')
        if kind == 'homogeneous':
            material = material_from_dict(section.pop('material'))
            depth = section.pop('depth')
            sample = HomogeneousSample(material, width, height, depth)
        elif kind == 'layered':
            layers = []
            for entry in section.pop('layers'):
                if not isinstance(entry, dict) or set(entry) != {'material', 'thickness'}:
                    raise InvalidParameterError(
                        f"Layer entry {entry!r} needs exactly 'material' and 'thickness'")
                layers.append((material_from_dict(entry['material']), entry['thickness']))
            sample = LayeredSample(layers, width, height)
        else:
            raise InvalidParameterError(f"Unknown sample type {kind!r}")
    except KeyError as e:
        raise InvalidParameterError(f"Sample section is missing {e}") from None

    if section:
        raise InvalidParameterError(f"Unknown keys in 'sample': {sorted(section)}")
    return sample


def parse_config(document: Optional[Dict[str, Any]]) -> Tuple[SimulationParameters, Optional[Sample]]:
    """
    Build a validated parameter bundle (and sample, if described).

    Raises:
        InvalidParameterError: unknown sections/keys or invalid values
    """
    document = document or {}
    if not isinstance(document, dict):
        raise InvalidParameterError("Configuration must be a mapping")
    unknown = set(document) - set(SECTIONS) - {'sample'}
    if unknown:
        raise InvalidParameterError(f"Unknown configuration sections: {sorted(unknown)}")

    try:
        sections = {name: _build_section(name, cls, document.get(name))
                    for name, cls in SECTIONS.items()}
    except TypeError as e:
        raise InvalidParameterError(str(e)) from None
    params = SimulationParameters(**sections).validate()

    sample = build_sample(document['sample']) if 'sample' in document else None
    return params, sample


def load_config(path: Union[str, Path]) -> Tuple[SimulationParameters, Optional[Sample]]:
    """Read and parse a YAML configuration file."""
    path = Path(path)
    try:
        with open(path) as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise SemIOError(f"Cannot read configuration {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidParameterError(f"Malformed YAML in {path}: {e}") from e
    return parse_config(document)


def dump_config(params: SimulationParameters, path: Union[str, Path],
                sample: Optional[Sample] = None):
    """Write a parameter bundle (and sample) back to YAML."""
    document = params.to_dict()
    if sample is not None:
        document['sample'] = sample_to_dict(sample)
    try:
        with open(path, 'w') as f:
            yaml.safe_dump(document, f, sort_keys=False)
    except OSError as e:
        raise SemIOError(f"Cannot write configuration {path}: {e}") from e


def _material_entry(material) -> dict:
    return {
        'name': material.name,
        'atomic_number': material.atomic_number,
        'density': material.density,
        'work_function': material.work_function,
        'mean_ionization': material.mean_ionization,
        'atomic_weight': material.atomic_weight,
        'se_energy': material.se_energy,
        'se_escape_depth': material.se_escape_depth,
    }


def sample_to_dict(sample: Sample) -> dict:
    """Config-section form of a sample (inverse of build_sample)."""
    if isinstance(sample, HomogeneousSample):
        return {'type': 'homogeneous', 'width': sample.width, 'height': sample.height,
                'depth': sample.depth, 'material': _material_entry(sample.material)}
    if isinstance(sample, LayeredSample):
        return {'type': 'layered', 'width': sample.width, 'height': sample.height,
                'layers': [{'material': _material_entry(m), 'thickness': t}
                           for (m, _, _), t in zip(sample.layers, sample.thicknesses)]}
    raise InvalidParameterError(f"Cannot serialise {type(sample).__name__}")

"""Tests for image and HDF5 export."""

import h5py
import numpy as np
import pytest
from matplotlib import image as mpimg

from sem_mc.core.parameters import default_parameters
from sem_mc.errors import InvalidParameterError, NotInitializedError, SemIOError
from sem_mc.imaging.export import png_metadata, save_image, save_results_hdf5
from sem_mc.imaging.formation import to_grayscale_bytes
from sem_mc.simulation.results import ImageBuffer, SimulationResults


@pytest.fixture
def image():
    signal = np.linspace(0.0, 0.6, 12).reshape(3, 4)
    data = signal / signal.max()
    return ImageBuffer(signal, data, to_grayscale_bytes(data))


@pytest.fixture
def results(image):
    return SimulationResults(image=image, avg_penetration_depth=120.0,
                             backscatter_coefficient=0.25,
                             total_electrons_simulated=1200, simulation_time=0.5,
                             n_primaries=1200)


class TestImageFormats:

    def test_png_with_metadata(self, image, tmp_path):
        path = save_image(image, tmp_path / 'scan.png',
                          metadata=png_metadata(default_parameters()))
        loaded = mpimg.imread(path)
        assert loaded.shape[:2] == (3, 4)
        assert b'Energy_keV' in path.read_bytes()

    def test_bmp(self, image, tmp_path):
        path = save_image(image, tmp_path / 'scan.bmp')
        assert path.read_bytes()[:2] == b'BM'

    def test_png_decimated_above_display_limit(self, image, tmp_path, monkeypatch):
        monkeypatch.setattr('sem_mc.imaging.formation.MAX_DISPLAY_DIM', 2)
        loaded = mpimg.imread(save_image(image, tmp_path / 'scan.png'))
        assert loaded.shape[:2] == (1, 2)
        raw = save_image(image, tmp_path / 'scan.dat', fmt='raw')
        assert np.fromfile(raw, dtype=np.uint8).size == 12

    def test_raw(self, image, tmp_path):
        path = save_image(image, tmp_path / 'scan.dat', fmt='raw')
        raw = np.fromfile(path, dtype=np.uint8)
        assert raw.size == 12
        assert np.array_equal(raw.reshape(3, 4), image.pixels)

    def test_npy_keeps_signal(self, image, tmp_path):
        path = save_image(image, tmp_path / 'scan.bin', fmt='npy')
        assert path.name == 'scan.bin'
        assert np.array_equal(np.load(path), image.signal)

    def test_unknown_format(self, image, tmp_path):
        with pytest.raises(InvalidParameterError):
            save_image(image, tmp_path / 'scan.tiff')

    def test_unwritable(self, image, tmp_path):
        with pytest.raises(SemIOError):
            save_image(image, tmp_path / 'no' / 'such' / 'scan.raw')

    def test_released_buffer(self, image, tmp_path):
        image.release()
        with pytest.raises(NotInitializedError):
            save_image(image, tmp_path / 'scan.png')


class TestHDF5:

    def test_layout(self, results, tmp_path):
        path = save_results_hdf5(results, tmp_path / 'run.h5', default_parameters())
        with h5py.File(path, 'r') as f:
            assert np.array_equal(f['signal'][()], results.image.signal)
            assert np.array_equal(f['pixels'][()], results.image.pixels)
            assert f['data'].compression == 'gzip'
            assert f.attrs['backscatter_coefficient'] == 0.25
            assert f.attrs['total_electrons_simulated'] == 1200
            assert f['parameters/beam'].attrs['energy'] == 20.0
            assert f['parameters/detector'].attrs['signal_type'] == 'secondary'
            assert 'max_depth' not in f['parameters/monte_carlo'].attrs

    def test_without_parameters(self, results, tmp_path):
        path = save_results_hdf5(results, tmp_path / 'run.h5')
        with h5py.File(path, 'r') as f:
            assert 'parameters' not in f

    def test_unwritable(self, results, tmp_path):
        with pytest.raises(SemIOError):
            save_results_hdf5(results, tmp_path / 'no' / 'run.h5')

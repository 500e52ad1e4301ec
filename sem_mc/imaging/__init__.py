"""Imaging module: Noise, tone mapping and export."""

from sem_mc.imaging.formation import ImageFilter, display_pixels, render, to_grayscale_bytes
from sem_mc.imaging.export import save_image, save_results_hdf5

__all__ = ["ImageFilter", "display_pixels", "render", "to_grayscale_bytes", "save_image", "save_results_hdf5"]

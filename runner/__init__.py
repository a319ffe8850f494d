"""
Tile-Dither Runner Package

FITS in/out, logging, error handling and parallel execution around the
tile quantization backend.
"""

from .tile_quantizer import quantize_fits, dequantize_fits, run_tiles

__all__ = ["quantize_fits", "dequantize_fits", "run_tiles"]

"""
Parallel tile quantization.

Every job builds its own QuantizeRandoms; the dither table is shared per
process and the cursor never crosses a job boundary, so results do not depend
on scheduling.
"""

import numpy as np

from tile_dither_backend.quantize import dequantize_tile, quantize_tile
from tile_dither_backend.quantize_randoms import QuantizeRandoms

from runner.error_handling import log_exception


@log_exception
def process_tile_job(args):
    """
    Worker function for parallel tile processing.

    Args:
        args: tuple of (mode, tile_index, corner, size, tile_data, scale),
            mode is "quantize" or "dequantize"

    Returns:
        tuple: (tile_index, corner, size, result_tile)
    """
    mode, tile_index, corner, size, tile_data, scale = args

    randoms = QuantizeRandoms()
    if mode == "quantize":
        result = quantize_tile(tile_data, scale, randoms, tile_index)
    elif mode == "dequantize":
        result = dequantize_tile(tile_data, scale, randoms, tile_index)
    else:
        raise ValueError(f"unknown tile job mode: {mode!r}")

    return tile_index, corner, size, np.asarray(result)

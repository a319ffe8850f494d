import numpy as np
from typing import Dict, Any, List, Optional, Sequence, Tuple

from tile_dither_backend.tile_looper import TileDescriptor, TileLooper
from tile_dither_backend.quantize_randoms import QuantizeRandoms

INT32_MIN = float(np.iinfo(np.int32).min)
INT32_MAX = float(np.iinfo(np.int32).max)


def round_half_away(x: np.ndarray) -> np.ndarray:
    """
    Round to nearest integer, halves away from zero (NINT)
    """
    return np.where(x >= 0, np.floor(x + 0.5), -np.floor(-x + 0.5))


def tile_slices(descriptor: TileDescriptor) -> Tuple[slice, ...]:
    """
    Numpy slices for a tile descriptor.

    Descriptors use FITS axis order (axis 0 = NAXIS1), numpy arrays the
    reverse, so the slice tuple is built from the last FITS axis down.
    """
    return tuple(
        slice(c, c + s)
        for c, s in zip(reversed(descriptor.corner), reversed(descriptor.size))
    )


def image_size_of(data: np.ndarray) -> Tuple[int, ...]:
    """FITS-order image size of a numpy array."""
    return tuple(int(n) for n in reversed(data.shape))


def quantize_tile(
    tile: np.ndarray,
    scale: float,
    randoms: QuantizeRandoms,
    tile_index: int
) -> np.ndarray:
    """
    Quantize one tile with subtractive dithering.

    Args:
        tile: Floating point tile data (numpy order)
        scale: Quantization step
        randoms: Dither generator, reseeked to tile_index here
        tile_index: Absolute index of the tile in the full grid

    Returns:
        int32 array, round(tile / scale + dither)

    Raises:
        ValueError: scale <= 0, non-finite pixels, or values outside int32
    """
    if scale <= 0:
        raise ValueError(f"scale must be > 0, got {scale}")

    tile = np.asarray(tile, dtype=np.float64)
    if not np.all(np.isfinite(tile)):
        raise ValueError(f"tile {tile_index}: non-finite pixel values cannot be quantized")

    randoms.compute_offset(tile_index)
    # C order: the last numpy axis (FITS axis 0) varies fastest.
    dither = randoms.next_values(tile.size).reshape(tile.shape)

    q = round_half_away(tile / scale + dither)
    if q.min() < INT32_MIN or q.max() > INT32_MAX:
        raise ValueError(
            f"tile {tile_index}: quantized values [{q.min():.0f}, {q.max():.0f}] "
            f"exceed the int32 range at scale {scale}"
        )
    return q.astype(np.int32)


def dequantize_tile(
    qtile: np.ndarray,
    scale: float,
    randoms: QuantizeRandoms,
    tile_index: int
) -> np.ndarray:
    """
    Inverse of quantize_tile: (q - dither) * scale
    """
    if scale <= 0:
        raise ValueError(f"scale must be > 0, got {scale}")

    qtile = np.asarray(qtile)
    randoms.compute_offset(tile_index)
    dither = randoms.next_values(qtile.size).reshape(qtile.shape)

    return (qtile.astype(np.float64) - dither) * scale


def build_looper(
    data: np.ndarray,
    tile_shape: Sequence[int],
    tiles_corner: Optional[Sequence[int]] = None,
    tiles_count: Optional[Sequence[int]] = None
) -> TileLooper:
    """
    Tile looper for a numpy image. tile_shape and the window are given in
    FITS axis order, like the descriptors.
    """
    return TileLooper(image_size_of(data), tile_shape, tiles_corner, tiles_count)


def quantize_image(
    data: np.ndarray,
    tile_shape: Sequence[int],
    scale: float,
    tiles_corner: Optional[Sequence[int]] = None,
    tiles_count: Optional[Sequence[int]] = None,
    randoms: Optional[QuantizeRandoms] = None
) -> Dict[str, Any]:
    """
    Quantize an image tile by tile.

    Pixels outside the tile window stay 0 in the output.

    Returns:
        Dictionary with the int32 image and the processed descriptors
    """
    looper = build_looper(data, tile_shape, tiles_corner, tiles_count)
    randoms = randoms or QuantizeRandoms()

    out = np.zeros(data.shape, dtype=np.int32)
    tiles: List[TileDescriptor] = []
    for td in looper:
        sl = tile_slices(td)
        out[sl] = quantize_tile(data[sl], scale, randoms, td.index)
        tiles.append(td)

    return {
        'data': out,
        'tiles': tiles,
        'n_tiles': looper.n_tiles,
        'scale': float(scale)
    }


def dequantize_image(
    qdata: np.ndarray,
    tile_shape: Sequence[int],
    scale: float,
    tiles_corner: Optional[Sequence[int]] = None,
    tiles_count: Optional[Sequence[int]] = None,
    randoms: Optional[QuantizeRandoms] = None
) -> np.ndarray:
    """
    Restore a float image from quantize_image output
    """
    looper = build_looper(qdata, tile_shape, tiles_corner, tiles_count)
    randoms = randoms or QuantizeRandoms()

    out = np.zeros(qdata.shape, dtype=np.float64)
    for td in looper:
        sl = tile_slices(td)
        out[sl] = dequantize_tile(qdata[sl], scale, randoms, td.index)

    return out

"""
FITS file utilities for the tile-dither runner.

Reading float images and writing quantized integer images.
"""

from pathlib import Path
from typing import Any

import numpy as np
from astropy.io import fits

# Provenance cards written next to quantized data.
CARD_SCALE = "DTHSCALE"
CARD_TILE_PREFIX = "DTHTILE"
CARD_CORNER_PREFIX = "DTHCORN"
CARD_COUNT_PREFIX = "DTHCNT"


def is_fits_image_path(p: Path) -> bool:
    """Check if path has FITS extension."""
    suf = p.suffix.lower()
    return suf in {".fit", ".fits", ".fts"}


def read_fits_float(path: Path) -> tuple[np.ndarray, Any]:
    """Read primary HDU as float64 array with header."""
    with fits.open(str(path), memmap=False) as hdul:
        hdr = hdul[0].header.copy()
        data = hdul[0].data
        if data is None:
            raise RuntimeError(f"no data in FITS: {path}")
        return np.asarray(data, dtype=np.float64).copy(), hdr


def read_fits_int(path: Path) -> tuple[np.ndarray, Any]:
    """Read primary HDU integer data without BSCALE/BZERO applied."""
    with fits.open(str(path), memmap=False, do_not_scale_image_data=True) as hdul:
        hdr = hdul[0].header.copy()
        data = hdul[0].data
        if data is None:
            raise RuntimeError(f"no data in FITS: {path}")
        return np.asarray(data).copy(), hdr


def _put_axis_cards(hdr: fits.Header, prefix: str, values, comment: str) -> None:
    if values is None:
        return
    for i, v in enumerate(values):
        hdr[f"{prefix}{i + 1}"] = (int(v), f"{comment} axis {i + 1}")


def _get_axis_cards(hdr: Any, prefix: str, dim: int) -> list[int] | None:
    key = f"{prefix}1"
    if key not in hdr:
        return None
    return [int(hdr[f"{prefix}{i + 1}"]) for i in range(dim)]


def write_quantized_fits(
    path: Path,
    qdata: np.ndarray,
    scale: float,
    tile_shape,
    tiles_corner=None,
    tiles_count=None,
    header: Any = None,
) -> None:
    """Write int32 data with the scale and tile geometry needed to restore it."""
    hdr = fits.Header()
    if header is not None:
        for card in header.cards:
            if card.keyword in ("SIMPLE", "BITPIX", "EXTEND", "BSCALE", "BZERO") or card.keyword.startswith("NAXIS"):
                continue
            hdr.append(card)
    hdr[CARD_SCALE] = (float(scale), "quantization step")
    _put_axis_cards(hdr, CARD_TILE_PREFIX, tile_shape, "tile size")
    _put_axis_cards(hdr, CARD_CORNER_PREFIX, tiles_corner, "first tile")
    _put_axis_cards(hdr, CARD_COUNT_PREFIX, tiles_count, "tile count")
    fits.writeto(str(path), np.asarray(qdata, dtype=np.int32), header=hdr, overwrite=True)


def read_quantized_geometry(hdr: Any, dim: int) -> dict[str, Any]:
    """Scale and tile geometry written by write_quantized_fits, if any."""
    return {
        "scale": float(hdr[CARD_SCALE]) if CARD_SCALE in hdr else None,
        "shape": _get_axis_cards(hdr, CARD_TILE_PREFIX, dim),
        "corner": _get_axis_cards(hdr, CARD_CORNER_PREFIX, dim),
        "count": _get_axis_cards(hdr, CARD_COUNT_PREFIX, dim),
    }


def write_fits_float(path: Path, data: np.ndarray, header: Any = None) -> None:
    hdr = fits.Header()
    if header is not None:
        for card in header.cards:
            if card.keyword in ("SIMPLE", "BITPIX", "EXTEND", "BSCALE", "BZERO", CARD_SCALE) or card.keyword.startswith("NAXIS"):
                continue
            if card.keyword.startswith((CARD_TILE_PREFIX, CARD_CORNER_PREFIX, CARD_COUNT_PREFIX)):
                continue
            hdr.append(card)
    fits.writeto(str(path), np.asarray(data, dtype=np.float64), header=hdr, overwrite=True)

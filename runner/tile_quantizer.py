"""
Tile quantization runner.

Reads a floating point FITS image, quantizes it tile by tile with subtractive
dithering and writes the integer image (and the reverse). Tiles run serially
with a single dither generator or on a process pool with one generator per
tile job; both give bit-identical output.
"""

import logging
import uuid
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import numpy as np

from tile_dither_backend.quantize import build_looper, dequantize_tile, quantize_tile, tile_slices
from tile_dither_backend.quantize_randoms import QuantizeRandoms
from tile_dither_backend.tile_looper import TileDescriptor, TileLooper

from runner.error_handling import robust_processing
from runner.events import phase_end, phase_progress, phase_start
from runner.fits_utils import (
    is_fits_image_path,
    read_fits_float,
    read_fits_int,
    read_quantized_geometry,
    write_fits_float,
    write_quantized_fits,
)
from runner.parallel import process_tile_job
from runner.utils import sha256_array

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 50


def run_tiles(
    mode: str,
    data: np.ndarray,
    looper: TileLooper,
    scale: float,
    workers: int = 1,
    run_id: Optional[str] = None,
    log_fp=None,
) -> np.ndarray:
    """
    Quantize or dequantize every tile of ``looper`` over ``data``.

    Args:
        mode: "quantize" or "dequantize"
        data: Image in numpy order
        looper: Tile looper built for data (FITS axis order)
        scale: Quantization step
        workers: Process pool size, 1 runs in-process
        run_id: Id used in progress events
        log_fp: Optional text stream receiving JSON event lines

    Returns:
        int32 (quantize) or float64 (dequantize) array; pixels outside the
        tile window are 0
    """
    if mode not in ("quantize", "dequantize"):
        raise ValueError(f"unknown mode: {mode!r}")

    run_id = run_id or uuid.uuid4().hex[:12]
    out_dtype = np.int32 if mode == "quantize" else np.float64
    out = np.zeros(data.shape, dtype=out_dtype)
    total = looper.window_tiles
    phase_name = mode.upper()

    phase_start(run_id, log_fp, phase_name, {"tiles": total, "workers": workers})
    logger.info(f"{phase_name}: {total} tiles of {list(looper.tile_size)} over {list(looper.image_size)}, workers={workers}")

    done = 0
    if workers <= 1:
        randoms = QuantizeRandoms()
        tile_fn = quantize_tile if mode == "quantize" else dequantize_tile
        for td in looper:
            sl = tile_slices(td)
            out[sl] = tile_fn(data[sl], scale, randoms, td.index)
            done += 1
            if done % PROGRESS_EVERY == 0:
                phase_progress(run_id, log_fp, phase_name, done, total)
    else:
        jobs = []
        for td in looper:
            sl = tile_slices(td)
            jobs.append((mode, td.index, td.corner, td.size, np.ascontiguousarray(data[sl]), scale))

        with ProcessPoolExecutor(max_workers=workers) as exe:
            futures = [exe.submit(process_tile_job, j) for j in jobs]
            for f in as_completed(futures):
                index, corner, size, tile = f.result()
                out[tile_slices(TileDescriptor(corner, size, index))] = tile
                done += 1
                if done % PROGRESS_EVERY == 0:
                    phase_progress(run_id, log_fp, phase_name, done, total)

    phase_end(run_id, log_fp, phase_name, "ok", {"tiles": done})
    return out


def _check_fits_paths(input_path: Path, output_path: Path) -> None:
    for role, p in (("input", input_path), ("output", output_path)):
        if not is_fits_image_path(Path(p)):
            raise ValueError(f"{role} is not a FITS path (.fit, .fits, .fts): {p}")


def _tile_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    tile_cfg = config.get("tile") or {}
    quant_cfg = config.get("quantize") or {}
    par_cfg = config.get("parallel") or {}
    return {
        "shape": tile_cfg.get("shape"),
        "corner": tile_cfg.get("corner"),
        "count": tile_cfg.get("count"),
        "scale": quant_cfg.get("scale"),
        "workers": int(par_cfg.get("workers", 1) or 1),
    }


@robust_processing
def quantize_fits(
    input_path: Path,
    output_path: Path,
    config: Dict[str, Any],
    log_fp=None,
) -> Dict[str, Any]:
    """
    Quantize the primary image of a FITS file.

    Args:
        input_path: Floating point FITS image
        output_path: Destination of the int32 image
        config: Configuration with tile/quantize/parallel sections
        log_fp: Optional event stream

    Returns:
        Summary dictionary
    """
    _check_fits_paths(input_path, output_path)
    settings = _tile_settings(config)
    if settings["scale"] is None:
        raise ValueError("quantize.scale is required")
    scale = float(settings["scale"])

    data, hdr = read_fits_float(Path(input_path))
    looper = build_looper(data, settings["shape"], settings["corner"], settings["count"])

    qdata = run_tiles("quantize", data, looper, scale, workers=settings["workers"], log_fp=log_fp)

    write_quantized_fits(
        Path(output_path),
        qdata,
        scale,
        looper.tile_size,
        tiles_corner=settings["corner"],
        tiles_count=settings["count"],
        header=hdr,
    )
    logger.info(f"Quantized {input_path} -> {output_path}")

    return {
        "ok": True,
        "input": str(input_path),
        "output": str(output_path),
        "image_size": list(looper.image_size),
        "tile_shape": list(looper.tile_size),
        "n_tiles": list(looper.n_tiles),
        "tiles_processed": looper.window_tiles,
        "scale": scale,
        "sha256": sha256_array(qdata),
    }


@robust_processing
def dequantize_fits(
    input_path: Path,
    output_path: Path,
    config: Optional[Dict[str, Any]] = None,
    log_fp=None,
    tile_shape: Optional[Sequence[int]] = None,
) -> Dict[str, Any]:
    """
    Restore a float image written by quantize_fits.

    Scale and tile geometry come from the file's provenance cards; config
    values are used where a card is missing. An explicit tile_shape must
    agree with the stored tile cards, otherwise ValueError.
    """
    _check_fits_paths(input_path, output_path)
    settings = _tile_settings(config or {})
    qdata, hdr = read_fits_int(Path(input_path))
    stored = read_quantized_geometry(hdr, qdata.ndim)

    scale = stored["scale"] if stored["scale"] is not None else settings["scale"]
    if scale is None:
        raise ValueError("no quantization scale in file or configuration")
    if tile_shape is not None:
        tile_shape = [int(v) for v in tile_shape]
        if stored["shape"] is not None and stored["shape"] != tile_shape:
            raise ValueError(
                f"tile shape {tile_shape} conflicts with the stored tile cards {stored['shape']}"
            )
    shape = stored["shape"] or tile_shape or settings["shape"]
    corner = stored["corner"] if stored["corner"] is not None else settings["corner"]
    count = stored["count"] if stored["count"] is not None else settings["count"]

    looper = build_looper(qdata, shape, corner, count)
    data = run_tiles("dequantize", qdata, looper, float(scale), workers=settings["workers"], log_fp=log_fp)

    write_fits_float(Path(output_path), data, header=hdr)
    logger.info(f"Dequantized {input_path} -> {output_path}")

    return {
        "ok": True,
        "input": str(input_path),
        "output": str(output_path),
        "image_size": list(looper.image_size),
        "tile_shape": list(looper.tile_size),
        "tiles_processed": looper.window_tiles,
        "scale": float(scale),
    }

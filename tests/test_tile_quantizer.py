import io
import json
from pathlib import Path

import numpy as np
import pytest
from astropy.io import fits

from runner.error_handling import ConfigurationError, ProcessingError
from runner.fits_utils import CARD_SCALE, is_fits_image_path
from runner.tile_quantizer import dequantize_fits, quantize_fits, run_tiles
from tile_dither_backend.quantize import build_looper, quantize_image


def _write_float_fits(path: Path, shape: tuple[int, int] = (40, 30)) -> np.ndarray:
    np.random.seed(7)
    data = np.random.normal(1000.0, 20.0, shape)
    hdr = fits.Header()
    hdr["OBJECT"] = "M45"
    fits.writeto(str(path), data, header=hdr, overwrite=True)
    return data


def _cfg(**overrides) -> dict:
    cfg = {
        "tile": {"shape": [8, 8], "corner": None, "count": None},
        "quantize": {"scale": 0.5},
        "parallel": {"workers": 1},
    }
    for section, values in overrides.items():
        cfg[section].update(values)
    return cfg


def _parse_events(log_text: str) -> list[dict]:
    return [json.loads(line) for line in log_text.splitlines() if line.strip()]


def test_is_fits_image_path():
    assert is_fits_image_path(Path("a.FITS"))
    assert is_fits_image_path(Path("a.fit"))
    assert not is_fits_image_path(Path("a.png"))


def test_run_tiles_matches_backend():
    np.random.seed(3)
    data = np.random.normal(0.0, 3.0, (40, 30))
    looper = build_looper(data, [8, 8])

    q = run_tiles("quantize", data, looper, 0.25)
    expected = quantize_image(data, [8, 8], 0.25)["data"]
    assert np.array_equal(q, expected)


def test_parallel_matches_serial():
    np.random.seed(4)
    data = np.random.normal(0.0, 3.0, (40, 30))
    looper = build_looper(data, [8, 8])

    serial = run_tiles("quantize", data, looper, 0.25, workers=1)
    parallel = run_tiles("quantize", data, looper, 0.25, workers=2)
    assert np.array_equal(serial, parallel)

    back_serial = run_tiles("dequantize", serial, looper, 0.25, workers=1)
    back_parallel = run_tiles("dequantize", parallel, looper, 0.25, workers=2)
    assert np.array_equal(back_serial, back_parallel)


def test_run_tiles_events():
    data = np.zeros((16, 16))
    looper = build_looper(data, [4, 4])
    stream = io.StringIO()

    run_tiles("quantize", data, looper, 1.0, run_id="test", log_fp=stream)

    events = _parse_events(stream.getvalue())
    assert events[0]["type"] == "phase_start"
    assert events[0]["tiles"] == 16
    assert events[-1]["type"] == "phase_end"
    assert events[-1]["status"] == "ok"
    assert events[-1]["tiles"] == 16
    assert all(ev["run_id"] == "test" for ev in events)


def test_run_tiles_unknown_mode():
    data = np.zeros((4, 4))
    with pytest.raises(ValueError):
        run_tiles("compress", data, build_looper(data, [2, 2]), 1.0)


def test_quantize_dequantize_fits(tmp_path):
    src = tmp_path / "frame.fits"
    qpath = tmp_path / "frame_q.fits"
    back = tmp_path / "frame_back.fits"
    data = _write_float_fits(src)

    summary = quantize_fits(src, qpath, _cfg())

    assert summary["ok"] is True
    assert summary["image_size"] == [30, 40]
    assert summary["n_tiles"] == [4, 5]
    assert summary["tiles_processed"] == 20
    assert len(summary["sha256"]) == 64

    with fits.open(str(qpath)) as hdul:
        assert hdul[0].data.dtype.kind == "i"
        assert hdul[0].header[CARD_SCALE] == 0.5
        assert hdul[0].header["OBJECT"] == "M45"

    restored = dequantize_fits(qpath, back)
    assert restored["ok"] is True
    assert restored["scale"] == 0.5

    with fits.open(str(back)) as hdul:
        out = np.asarray(hdul[0].data, dtype=np.float64)
    assert np.max(np.abs(out - data)) <= 0.25 + 1e-9


def test_quantize_fits_reproducible(tmp_path):
    src = tmp_path / "frame.fits"
    _write_float_fits(src)

    a = quantize_fits(src, tmp_path / "a.fits", _cfg())
    b = quantize_fits(src, tmp_path / "b.fits", _cfg(parallel={"workers": 2}))
    assert a["sha256"] == b["sha256"]


def test_quantize_fits_window(tmp_path):
    src = tmp_path / "frame.fits"
    qpath = tmp_path / "frame_q.fits"
    _write_float_fits(src)

    summary = quantize_fits(src, qpath, _cfg(tile={"corner": [1, 1], "count": [2, 2]}))
    assert summary["tiles_processed"] == 4

    restored = dequantize_fits(qpath, tmp_path / "back.fits")
    assert restored["tiles_processed"] == 4


def test_quantize_fits_bad_geometry(tmp_path):
    src = tmp_path / "frame.fits"
    _write_float_fits(src)

    with pytest.raises(ConfigurationError):
        quantize_fits(src, tmp_path / "q.fits", _cfg(tile={"shape": [8, 8, 8]}))


def test_quantize_fits_missing_input(tmp_path):
    with pytest.raises(ProcessingError):
        quantize_fits(tmp_path / "missing.fits", tmp_path / "q.fits", _cfg())


def test_quantize_fits_nan_pixel(tmp_path):
    src = tmp_path / "frame.fits"
    data = np.zeros((16, 16))
    data[3, 5] = np.nan
    fits.writeto(str(src), data, overwrite=True)

    with pytest.raises(ConfigurationError):
        quantize_fits(src, tmp_path / "q.fits", _cfg())
    assert not (tmp_path / "q.fits").exists()


@pytest.mark.parametrize("name", ["frame.png", "frame.fits.gz", "frame"])
def test_quantize_fits_rejects_non_fits_output(tmp_path, name):
    src = tmp_path / "frame.fits"
    _write_float_fits(src)

    with pytest.raises(ConfigurationError):
        quantize_fits(src, tmp_path / name, _cfg())


def test_dequantize_fits_rejects_non_fits_input(tmp_path):
    src = tmp_path / "frame.txt"
    src.write_text("not a fits file", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        dequantize_fits(src, tmp_path / "back.fits")


def test_dequantize_tile_shape_must_match_cards(tmp_path):
    src = tmp_path / "frame.fits"
    qpath = tmp_path / "frame_q.fits"
    _write_float_fits(src)
    quantize_fits(src, qpath, _cfg())

    with pytest.raises(ConfigurationError):
        dequantize_fits(qpath, tmp_path / "back.fits", tile_shape=[4, 4])

    restored = dequantize_fits(qpath, tmp_path / "back.fits", tile_shape=[8, 8])
    assert restored["tile_shape"] == [8, 8]


def test_dequantize_tile_shape_used_without_cards(tmp_path):
    np.random.seed(9)
    data = np.random.normal(10.0, 1.0, (16, 16))
    looper = build_looper(data, [4, 4])
    qdata = run_tiles("quantize", data, looper, 0.5)

    qpath = tmp_path / "bare_q.fits"
    hdr = fits.Header()
    hdr[CARD_SCALE] = 0.5
    fits.writeto(str(qpath), qdata, header=hdr, overwrite=True)

    restored = dequantize_fits(qpath, tmp_path / "back.fits", tile_shape=[4, 4])
    assert restored["tile_shape"] == [4, 4]
    with fits.open(str(tmp_path / "back.fits")) as hdul:
        out = np.asarray(hdul[0].data, dtype=np.float64)
    assert np.max(np.abs(out - data)) <= 0.25 + 1e-9

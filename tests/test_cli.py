import json
import logging

import numpy as np
import pytest
import yaml
from astropy.io import fits

import tile_dither_cli as cli


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _run(capsys, argv: list[str]) -> tuple[int, dict]:
    rc = cli.main(argv)
    out = capsys.readouterr().out
    return rc, json.loads(out)


def test_list_tiles_default(capsys):
    rc, res = _run(capsys, ["list-tiles"])
    assert rc == 0
    assert res["n_tiles"] == [6, 12]
    assert res["total_tiles"] == 72
    assert len(res["tiles"]) == 72
    assert res["tiles"][1] == {"index": 1, "corner": [100, 0], "size": [100, 50]}
    assert res["tiles"][5]["size"] == [12, 50]


def test_list_tiles_window(capsys):
    rc, res = _run(capsys, ["list-tiles", "64", "64", "--tile", "16", "16", "--corner", "1", "1", "--count", "2", "1"])
    assert rc == 0
    assert [t["index"] for t in res["tiles"]] == [5, 6]


def test_list_tiles_invalid(capsys):
    rc, res = _run(capsys, ["list-tiles", "64", "64", "--tile", "16"])
    assert rc == 1
    assert res["ok"] is False


def test_dither_sample(capsys):
    rc, res = _run(capsys, ["dither-sample", "--count", "3", "--skip", "0"])
    assert rc == 0
    assert res["final_seed"] == 1043618065
    assert res["samples"][0] == 16807.0 / 2147483647.0 - 0.5
    assert len(res["samples"]) == 3


def test_config_commands(capsys, tmp_path):
    cfg_path = tmp_path / "tile_dither.yaml"

    rc, res = _run(capsys, ["save-config", str(cfg_path), "--default"])
    assert rc == 0
    assert res["saved"] is True

    rc, res = _run(capsys, ["load-config", str(cfg_path)])
    assert rc == 0
    assert yaml.safe_load(res["yaml"])["tile"]["shape"] == [100, 100]

    rc, res = _run(capsys, ["validate-config", "--path", str(cfg_path), "--strict-exit-codes"])
    assert rc == 0
    assert res["valid"] is True


def test_validate_config_strict_failure(capsys):
    rc, res = _run(capsys, ["validate-config", "--yaml", "tile: {shape: [0]}\n", "--strict-exit-codes"])
    assert rc == 1
    assert res["valid"] is False


def test_get_schema(capsys):
    rc, res = _run(capsys, ["get-schema"])
    assert rc == 0
    assert "tile" in res["properties"]


def test_quantize_round_trip(capsys, tmp_path):
    np.random.seed(11)
    data = np.random.normal(50.0, 2.0, (24, 20))
    src = tmp_path / "in.fits"
    fits.writeto(str(src), data, overwrite=True)
    qpath = tmp_path / "q.fits"
    back = tmp_path / "back.fits"
    events = tmp_path / "events.jsonl"

    rc, res = _run(capsys, [
        "quantize", str(src), str(qpath),
        "--scale", "0.2", "--tile", "8", "8", "--events", str(events),
    ])
    assert rc == 0
    assert res["tiles_processed"] == 9
    assert events.read_text(encoding="utf-8").strip()

    rc, res = _run(capsys, ["dequantize", str(qpath), str(back)])
    assert rc == 0

    with fits.open(str(back)) as hdul:
        out = np.asarray(hdul[0].data, dtype=np.float64)
    assert np.max(np.abs(out - data)) <= 0.1 + 1e-9


def test_quantize_bad_tile(capsys, tmp_path):
    src = tmp_path / "in.fits"
    fits.writeto(str(src), np.zeros((8, 8)), overwrite=True)

    rc, res = _run(capsys, ["quantize", str(src), str(tmp_path / "q.fits"), "--tile", "4"])
    assert rc == 1
    assert res["ok"] is False


def test_dequantize_conflicting_tile(capsys, tmp_path):
    src = tmp_path / "in.fits"
    fits.writeto(str(src), np.random.normal(0.0, 1.0, (16, 16)), overwrite=True)
    qpath = tmp_path / "q.fits"

    rc, _ = _run(capsys, ["quantize", str(src), str(qpath), "--scale", "0.5", "--tile", "8", "8"])
    assert rc == 0

    rc, res = _run(capsys, ["dequantize", str(qpath), str(tmp_path / "back.fits"), "--tile", "4", "4"])
    assert rc == 1
    assert res["ok"] is False
    assert "conflicts" in res["error"]

    rc, res = _run(capsys, ["dequantize", str(qpath), str(tmp_path / "back.fits"), "--tile", "8", "8"])
    assert rc == 0
    assert res["tile_shape"] == [8, 8]

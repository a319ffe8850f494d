from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from tile_dither_backend.schema import load_schema_json

# Scales below this make int32 overflow likely for ordinary float data.
_SMALL_SCALE = 1e-6


@dataclass
class ValidationIssue:
    severity: str  # "error" | "warning"
    code: str
    path: str
    message: str


def _json_path(parts: list[str | int]) -> str:
    if not parts:
        return "$"
    out = "$"
    for p in parts:
        if isinstance(p, int):
            out += f"[{p}]"
        elif p.isidentifier():
            out += f".{p}"
        else:
            out += f"['{p}']"
    return out


def _as_int_list(x: Any) -> list[int] | None:
    if not isinstance(x, list):
        return None
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in x):
        return None
    return list(x)


def _result(issues: list[ValidationIssue]) -> dict:
    return {
        "valid": len([i for i in issues if i.severity == "error"]) == 0,
        "errors": [i.__dict__ for i in issues if i.severity == "error"],
        "warnings": [i.__dict__ for i in issues if i.severity == "warning"],
    }


def validate_config_yaml_text(
    yaml_text: str,
    schema_path: str | None = None,
) -> dict:
    issues: list[ValidationIssue] = []

    try:
        cfg = yaml.safe_load(yaml_text)
    except Exception as e:  # noqa: BLE001
        issues.append(ValidationIssue("error", "yaml_parse_error", "$", str(e)))
        return _result(issues)

    if not isinstance(cfg, dict):
        issues.append(
            ValidationIssue(
                severity="error",
                code="config_not_object",
                path="$",
                message="configuration root must be a mapping/object",
            )
        )
        return _result(issues)

    schema = load_schema_json(schema_path)
    validator = Draft202012Validator(schema)

    for err in sorted(validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.path]):
        issues.append(
            ValidationIssue(
                severity="error",
                code="schema_validation_error",
                path=_json_path(list(err.path)),
                message=err.message,
            )
        )

    tile = cfg.get("tile") if isinstance(cfg.get("tile"), dict) else {}
    shape = _as_int_list(tile.get("shape"))

    # Window vs tile shape (hard errors). Bounds against the tile grid need
    # the image size and are checked when the looper is built.
    for key, code, min_value in (
        ("corner", "tile_corner_invalid", 0),
        ("count", "tile_count_invalid", 1),
    ):
        arr = _as_int_list(tile.get(key))
        if arr is None:
            continue
        if shape is not None and len(arr) != len(shape):
            issues.append(
                ValidationIssue(
                    severity="error",
                    code=f"tile_{key}_dim_mismatch",
                    path=f"$.tile.{key}",
                    message=f"tile.{key} must have {len(shape)} entries like tile.shape, got {len(arr)}",
                )
            )
        if any(v < min_value for v in arr):
            issues.append(
                ValidationIssue(
                    severity="error",
                    code=code,
                    path=f"$.tile.{key}",
                    message=f"tile.{key} entries must be >= {min_value}",
                )
            )

    quantize = cfg.get("quantize")
    if isinstance(quantize, dict):
        scale = quantize.get("scale")
        if isinstance(scale, (int, float)) and not isinstance(scale, bool) and 0 < scale < _SMALL_SCALE:
            issues.append(
                ValidationIssue(
                    severity="warning",
                    code="quantize_scale_small",
                    path="$.quantize.scale",
                    message=f"quantize.scale={scale} is very small; quantized values may overflow int32",
                )
            )

    return _result(issues)

"""
Event emission for the tile-dither runner.

JSON lines on an optional event stream plus a mirror into the log.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from .utils import json_dumps_canonical

logger = logging.getLogger(__name__)


def emit(event: dict, log_fp=None) -> None:
    """Write event as JSON line to log_fp (if any) and log it at DEBUG."""
    line = json_dumps_canonical(event).decode("utf-8")
    logger.debug(line)
    if log_fp is not None:
        log_fp.write(line + "\n")
        log_fp.flush()


def _event(kind: str, run_id: str, phase_name: str, extra: dict[str, Any] | None) -> dict[str, Any]:
    ev: dict[str, Any] = {
        "type": kind,
        "run_id": run_id,
        "phase_name": phase_name,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    if extra:
        ev.update(extra)
    return ev


def phase_start(run_id: str, log_fp, phase_name: str, extra: dict[str, Any] | None = None) -> None:
    emit(_event("phase_start", run_id, phase_name, extra), log_fp)


def phase_end(
    run_id: str,
    log_fp,
    phase_name: str,
    status: str,
    extra: dict[str, Any] | None = None,
) -> None:
    ev = _event("phase_end", run_id, phase_name, extra)
    ev["status"] = status
    emit(ev, log_fp)


def phase_progress(
    run_id: str,
    log_fp,
    phase_name: str,
    current: int,
    total: int,
    extra: dict[str, Any] | None = None
) -> None:
    ev = _event("phase_progress", run_id, phase_name, extra)
    ev["current"] = current
    ev["total"] = total
    emit(ev, log_fp)

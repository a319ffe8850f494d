"""
Random number sequence for subtractive dithering.

Implements the generator described in the FITS tiled image compression
convention, appendix A. The reference formulae use one-based arrays; here
everything is zero-based and the values already span [-0.5, 0.5), so the
reference's subtraction of 0.5 is not needed by callers.

Typical use: ``compute_offset(tile_index)`` at the start of every tile, then
``next()`` once per pixel of the tile.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

NVAL = 10000
MULT = 500

LCG_MULTIPLIER = 16807.0
LCG_MODULUS = 2147483647.0
EXPECTED_FINAL_SEED = 1043618065.0


class DitherTableError(RuntimeError):
    """The dither table did not reproduce the reference sequence."""


class DitherTable:
    """
    The fixed sequence of NVAL random values, built once on first access.

    The table is read-only after the build and may be shared by any number of
    generators; the build itself is guarded so concurrent first use is safe.
    """

    def __init__(self):
        self.nval = NVAL
        self._values: Optional[np.ndarray] = None
        self._final_seed: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._values is not None

    @property
    def final_seed(self) -> float:
        self.build()
        return self._final_seed

    @property
    def values(self) -> np.ndarray:
        self.build()
        return self._values

    def build(self) -> None:
        if self._values is not None:
            return
        with self._lock:
            if self._values is not None:
                return

            values = np.empty(self.nval, dtype=np.float64)
            a = LCG_MULTIPLIER
            m = LCG_MODULUS
            seed = 1.0
            # Double precision floor/subtract, not integer modulo. The final
            # seed check below depends on it.
            for ii in range(self.nval):
                temp = a * seed
                seed = temp - m * math.floor(temp / m)
                values[ii] = seed / m - 0.5

            if seed != EXPECTED_FINAL_SEED:
                raise DitherTableError(
                    f"Final seed has unexpected value: {seed!r} != {EXPECTED_FINAL_SEED!r}"
                )

            values.setflags(write=False)
            self._final_seed = seed
            self._values = values
            logger.debug(f"Dither table built: {self.nval} values, final seed {seed:.0f}")


_shared_table = DitherTable()


def get_dither_table() -> DitherTable:
    """Process-wide dither table."""
    return _shared_table


@dataclass
class DitherCursor:
    last_start: int = -1
    next_index: int = -1


class QuantizeRandoms:
    """
    Cursor over the dither table.

    Not safe for concurrent use: give each worker its own instance (they all
    share the same table) or serialize the compute_offset/next sequence of a
    whole tile.
    """

    def __init__(self, table: Optional[DitherTable] = None):
        self.table = table if table is not None else get_dither_table()
        self.cursor = DitherCursor()

    @property
    def last_start(self) -> int:
        return self.cursor.last_start

    @property
    def next_index(self) -> int:
        return self.cursor.next_index

    def compute_offset(self, tile_index: int) -> None:
        """
        Reseek to a quasi-random location in the first MULT entries of the
        table, keyed by the tile index (first tile 0, next tile 1, ...).
        """
        values = self.table.values
        nval = self.table.nval
        n = int(tile_index)
        while n < 0:
            n += nval
        while n >= nval:
            n -= nval
        self.cursor.last_start = n
        self.cursor.next_index = int(MULT * (values[n] + 0.5))

    def _advance_if_exhausted(self) -> None:
        if self.cursor.last_start < 0:
            self.compute_offset(0)
        if self.cursor.next_index >= self.table.nval:
            self.compute_offset((self.cursor.last_start + 1) % self.table.nval)

    def next(self) -> float:
        """
        Next number in the fixed sequence. May be called any number of times
        between calls to compute_offset(); before the first one it behaves as
        if compute_offset(0) had been called.
        """
        self._advance_if_exhausted()
        curr = self.cursor.next_index
        self.cursor.next_index += 1
        return float(self.table.values[curr])

    def next_values(self, count: int) -> np.ndarray:
        """Draw ``count`` values at once, identical to ``count`` calls of next()."""
        count = int(count)
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")

        out = np.empty(count, dtype=np.float64)
        values = self.table.values
        pos = 0
        while pos < count:
            self._advance_if_exhausted()
            start = self.cursor.next_index
            chunk = min(count - pos, self.table.nval - start)
            out[pos:pos + chunk] = values[start:start + chunk]
            self.cursor.next_index += chunk
            pos += chunk
        return out

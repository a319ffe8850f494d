"""
Tile decomposition for tiled image quantization.

Takes the image and tile sizes (FITS axis order, axis 0 varies fastest) and
produces the tile descriptors of the grid one at a time. The last tile along
an axis is truncated at the image boundary.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple


class TileGridError(ValueError):
    """Invalid image/tile geometry or tile window."""


@dataclass(frozen=True)
class TileDescriptor:
    corner: Tuple[int, ...]
    size: Tuple[int, ...]
    index: int

    @property
    def npix(self) -> int:
        n = 1
        for s in self.size:
            n *= s
        return n


def _as_int_tuple(values: Sequence[int], name: str) -> Tuple[int, ...]:
    try:
        return tuple(int(v) for v in values)
    except (TypeError, ValueError) as e:
        raise TileGridError(f"{name} must be a sequence of integers: {e}") from e


class TileLooper:
    """
    Loop over the tiles of an N-dimensional image.

    Args:
        image_size: Dimensions of the image
        tile_size: Dimensions of a single tile. The last tile in each
            dimension may be truncated.
        tiles_corner: Indices (in tile space) of the first tile wanted.
            Defaults to [0, 0, ...]
        tiles_count: Number of tiles wanted in each dimension. Defaults to
            the total number of tiles available in that dimension.

    The looper holds no cursor; every ``iter()`` call starts an independent
    session yielding the same sequence.
    """

    def __init__(
        self,
        image_size: Sequence[int],
        tile_size: Sequence[int],
        tiles_corner: Optional[Sequence[int]] = None,
        tiles_count: Optional[Sequence[int]] = None,
    ):
        if image_size is None or tile_size is None:
            raise TileGridError("image_size and tile_size are required")

        image_size = _as_int_tuple(image_size, "image_size")
        tile_size = _as_int_tuple(tile_size, "tile_size")

        if len(image_size) != len(tile_size):
            raise TileGridError("Image and tiles must have same dimensionality")
        if not image_size:
            raise TileGridError("Image must have at least one dimension")

        dim = len(image_size)
        n_tiles = []
        for i in range(dim):
            if image_size[i] <= 0 or tile_size[i] <= 0:
                raise TileGridError("Negative or 0 dimension specified")
            n_tiles.append((image_size[i] + tile_size[i] - 1) // tile_size[i])

        if tiles_corner is None:
            corner = (0,) * dim
        else:
            corner = _as_int_tuple(tiles_corner, "tiles_corner")
            if len(corner) != dim:
                raise TileGridError("Tile corner must have same dimensionality as the image")
            for i in range(dim):
                if corner[i] < 0 or corner[i] >= n_tiles[i]:
                    raise TileGridError("Tile corner outside tile array")

        if tiles_count is None:
            count = tuple(n_tiles[i] - corner[i] for i in range(dim))
        else:
            count = _as_int_tuple(tiles_count, "tiles_count")
            if len(count) != dim:
                raise TileGridError("Tile count must have same dimensionality as the image")
            for i in range(dim):
                if count[i] <= 0:
                    raise TileGridError("Tile count must be positive")
                if corner[i] + count[i] > n_tiles[i]:
                    raise TileGridError("Tile range extends outside tile array")

        self._image_size = image_size
        self._tile_size = tile_size
        self._n_tiles = tuple(n_tiles)
        self._tiles_corner = corner
        self._tiles_count = count

    @property
    def dim(self) -> int:
        return len(self._image_size)

    @property
    def image_size(self) -> Tuple[int, ...]:
        return self._image_size

    @property
    def tile_size(self) -> Tuple[int, ...]:
        return self._tile_size

    @property
    def n_tiles(self) -> Tuple[int, ...]:
        return self._n_tiles

    @property
    def tiles_corner(self) -> Tuple[int, ...]:
        return self._tiles_corner

    @property
    def tiles_count(self) -> Tuple[int, ...]:
        return self._tiles_count

    @property
    def total_tiles(self) -> int:
        """Number of tiles in the full grid, ignoring any window."""
        total = 1
        for n in self._n_tiles:
            total *= n
        return total

    @property
    def window_tiles(self) -> int:
        total = 1
        for n in self._tiles_count:
            total *= n
        return total

    def __len__(self) -> int:
        return self.window_tiles

    def __iter__(self) -> Iterator[TileDescriptor]:
        tile_indices = list(self._tiles_corner)
        while True:
            yield self._describe(tile_indices)
            if not self._advance(tile_indices):
                return

    def _advance(self, tile_indices: list) -> bool:
        """Odometer step, axis 0 first. False once every axis has overflowed."""
        for i in range(self.dim):
            candidate = tile_indices[i] + 1
            if candidate < self._tiles_corner[i] + self._tiles_count[i]:
                tile_indices[i] = candidate
                return True
            tile_indices[i] = self._tiles_corner[i]
        return False

    def _describe(self, tile_indices: Sequence[int]) -> TileDescriptor:
        corner = []
        size = []
        for i in range(self.dim):
            offset = tile_indices[i] * self._tile_size[i]
            corner.append(offset)
            size.append(min(self._image_size[i] - offset, self._tile_size[i]))

        # FITS indexing: the first axis changes fastest.
        index = 0
        for i in range(self.dim - 1, -1, -1):
            index = index * self._n_tiles[i] + tile_indices[i]

        return TileDescriptor(corner=tuple(corner), size=tuple(size), index=index)

    def __repr__(self) -> str:
        return (
            f"TileLooper(image_size={list(self._image_size)}, tile_size={list(self._tile_size)}, "
            f"tiles_corner={list(self._tiles_corner)}, tiles_count={list(self._tiles_count)})"
        )

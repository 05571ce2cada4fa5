"""H3 helpers that map coordinates to cells and cells to search disks."""

from __future__ import annotations

import math
from numbers import Real
from typing import FrozenSet

import h3

from .errors import InvalidCell, InvalidCoordinate, InvalidRadius, InvalidResolution

MIN_RESOLUTION = 0
MAX_RESOLUTION = 15
SQRT_3 = math.sqrt(3.0)


def validate_coordinate(latitude: object, longitude: object) -> None:
    """Raise InvalidCoordinate unless both values are finite and in range."""

    for label, value, limit in (("latitude", latitude, 90.0), ("longitude", longitude, 180.0)):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidCoordinate(f"{label} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise InvalidCoordinate(f"{label} must be finite, got {value!r}")
        if not -limit <= value <= limit:
            raise InvalidCoordinate(f"{label} {value} outside [-{limit:g}, {limit:g}]")


def validate_resolution(resolution: object) -> int:
    if isinstance(resolution, bool) or not isinstance(resolution, int):
        raise InvalidResolution(f"Resolution must be an integer, got {resolution!r}")
    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise InvalidResolution(
            f"Resolution {resolution} outside [{MIN_RESOLUTION}, {MAX_RESOLUTION}]"
        )
    return resolution


def locate(latitude: float, longitude: float, resolution: int) -> str:
    """Return the H3 cell containing the point at the given resolution."""

    validate_coordinate(latitude, longitude)
    validate_resolution(resolution)
    return h3.latlng_to_cell(float(latitude), float(longitude), resolution)


def neighborhood(cell_id: str, k: int) -> FrozenSet[str]:
    """All cells within ``k`` grid steps of ``cell_id``, the cell itself included.

    Near pentagons the disk is not a perfect hexagon and holds fewer than
    ``1 + 3k(k+1)`` cells; it is still a valid set.
    """

    if isinstance(k, bool) or not isinstance(k, int):
        raise InvalidRadius(f"Ring radius must be an integer, got {k!r}")
    if k < 0:
        raise InvalidRadius(f"Ring radius must be >= 0, got {k}")
    if not isinstance(cell_id, str) or not h3.is_valid_cell(cell_id):
        raise InvalidCell(f"Not a valid H3 cell: {cell_id!r}")
    return frozenset(h3.grid_disk(cell_id, k))


def expected_disk_size(k: int) -> int:
    return 1 + 3 * k * (k + 1)


def approximate_radius_km(resolution: int, k: int) -> float:
    """Rough inner reach of a k-ring: k centre-to-centre hops of an average hexagon."""

    validate_resolution(resolution)
    edge_km = h3.average_hexagon_edge_length(resolution, unit="km")
    return k * edge_km * SQRT_3


def ring_for_radius(radius_km: float, resolution: int) -> int:
    """Smallest k whose disk reaches ``radius_km`` at ``resolution``."""

    if radius_km < 0 or not math.isfinite(radius_km):
        raise InvalidRadius(f"Radius must be a finite non-negative distance, got {radius_km!r}")
    validate_resolution(resolution)
    hop_km = h3.average_hexagon_edge_length(resolution, unit="km") * SQRT_3
    return int(math.ceil(radius_km / hop_km))


class CellIndexer:
    """Binds the coupled (resolution, k) pair shared by writers and readers."""

    def __init__(self, resolution: int = 8, k: int = 5) -> None:
        self.resolution = validate_resolution(resolution)
        if isinstance(k, bool) or not isinstance(k, int) or k < 0:
            raise InvalidRadius(f"Ring radius must be a non-negative integer, got {k!r}")
        self.k = k

    def locate(self, latitude: float, longitude: float) -> str:
        return locate(latitude, longitude, self.resolution)

    def neighborhood(self, cell_id: str) -> FrozenSet[str]:
        return neighborhood(cell_id, self.k)

    def search_cells(self, latitude: float, longitude: float) -> FrozenSet[str]:
        return self.neighborhood(self.locate(latitude, longitude))

    @property
    def approximate_radius_km(self) -> float:
        return approximate_radius_km(self.resolution, self.k)

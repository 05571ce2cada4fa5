"""Dataclasses shared between the ingestion and query layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from .geo import locate


@dataclass(frozen=True)
class UserProfile:
    """A point-of-interest before it has been assigned a cell."""

    name: str
    email: str
    latitude: float
    longitude: float
    identifier: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    """A stored user. ``cell_id`` is always ``locate(latitude, longitude, R)``.

    Build new records with ``from_profile``; ``from_row`` only rehydrates rows
    that were written through it. Do not pass a ``cell_id`` of your own.
    """

    identifier: str
    name: str
    email: str
    latitude: float
    longitude: float
    cell_id: str

    @classmethod
    def from_profile(cls, profile: UserProfile, resolution: int, identifier: str) -> "UserRecord":
        """Build a record whose cell id is derived from its coordinates.

        Raises ``InvalidCoordinate`` when the profile cannot be mapped.
        """

        cell_id = locate(profile.latitude, profile.longitude, resolution)
        return cls(
            identifier=profile.identifier or identifier,
            name=profile.name,
            email=profile.email,
            latitude=float(profile.latitude),
            longitude=float(profile.longitude),
            cell_id=cell_id,
        )

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "UserRecord":
        identifier, name, email, latitude, longitude, cell_id = row
        return cls(
            identifier=identifier,
            name=name,
            email=email,
            latitude=float(latitude),
            longitude=float(longitude),
            cell_id=cell_id,
        )

    def as_row(self) -> Tuple[str, str, str, float, float, str]:
        return (self.identifier, self.name, self.email, self.latitude, self.longitude, self.cell_id)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.identifier,
            "name": self.name,
            "email": self.email,
            "lat": self.latitude,
            "long": self.longitude,
            "h3_id": self.cell_id,
        }


@dataclass(frozen=True)
class NearbyResult:
    users: Tuple[UserRecord, ...]

    @property
    def total(self) -> int:
        return len(self.users)

    def to_json(self) -> Dict[str, Any]:
        return {"users": [user.to_json() for user in self.users], "total": self.total}


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per progress interval boundary crossed by the insert counter."""

    milestone: int
    inserted: int
    total: int

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.milestone / self.total * 100


@dataclass(frozen=True)
class IngestionReport:
    requested: int
    inserted: int
    dropped: int
    skipped: int
    workers: int
    duration_seconds: float
    index_created: bool

    @property
    def rate(self) -> float:
        """Confirmed inserts per second."""

        if self.duration_seconds <= 0:
            return 0.0
        return self.inserted / self.duration_seconds

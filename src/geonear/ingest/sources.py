"""Profile sources for synthetic bulk loads and caller-supplied batches."""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

from geonear.common.config import BoundsConfig
from geonear.common.models import UserProfile

FIRST_NAMES = (
    "Ada", "Amir", "Beatriz", "Chen", "Dara", "Elif", "Farah", "Giulia", "Hana", "Ivan",
    "Jonas", "Kemal", "Lena", "Mateo", "Nia", "Oskar", "Priya", "Quinn", "Rahul", "Sofia",
    "Tariq", "Uma", "Viktor", "Wen", "Ximena", "Yusuf", "Zara",
)
LAST_NAMES = (
    "Abara", "Berg", "Costa", "Dubois", "Eriksen", "Fischer", "Garcia", "Haddad", "Ito",
    "Jensen", "Kowalski", "Lopez", "Moreau", "Nakamura", "Okafor", "Petrov", "Rossi",
    "Silva", "Tanaka", "Usman", "Varga", "Weber", "Yilmaz", "Zhang",
)
EMAIL_DOMAINS = ("example.com", "example.org", "example.net", "mail.test")


@dataclass(frozen=True)
class SamplePools:
    """Pre-generated names and emails, read-only once built."""

    names: Tuple[str, ...]
    emails: Tuple[str, ...]

    @classmethod
    def generate(cls, size: int, seed: int = 0) -> "SamplePools":
        rng = random.Random(seed)
        names = []
        emails = []
        for idx in range(size):
            first = rng.choice(FIRST_NAMES)
            last = rng.choice(LAST_NAMES)
            names.append(f"{first} {last}")
            emails.append(f"{first.lower()}.{last.lower()}{idx}@{rng.choice(EMAIL_DOMAINS)}")
        return cls(names=tuple(names), emails=tuple(emails))


class SyntheticProfileSource:
    """Samples profiles uniformly inside a bounding box."""

    def __init__(self, bounds: BoundsConfig, pools: SamplePools) -> None:
        if not pools.names or not pools.emails:
            raise ValueError("Sample pools must not be empty.")
        self.bounds = bounds
        self.pools = pools

    def stream(self, rng: random.Random, count: int) -> Iterator[UserProfile]:
        bounds = self.bounds
        lat_span = bounds.max_lat - bounds.min_lat
        lng_span = bounds.max_lng - bounds.min_lng
        names = self.pools.names
        emails = self.pools.emails
        for _ in range(count):
            yield UserProfile(
                name=names[rng.randrange(len(names))],
                email=emails[rng.randrange(len(emails))],
                latitude=bounds.min_lat + rng.random() * lat_span,
                longitude=bounds.min_lng + rng.random() * lng_span,
            )


class StaticProfileSource:
    """Replays a caller-supplied slice of profiles."""

    def __init__(self, profiles: Sequence[UserProfile]) -> None:
        self.profiles = profiles

    def stream(self, rng: random.Random, count: int) -> Iterator[UserProfile]:
        return iter(self.profiles[:count])


def random_identifier(rng: random.Random) -> str:
    """UUID4 string drawn from the worker's own generator."""

    return str(uuid.UUID(int=rng.getrandbits(128), version=4))

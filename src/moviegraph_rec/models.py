from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import DEFAULT_RUNTIME_MAX, DEFAULT_RUNTIME_MIN
from .errors import InvalidInput


class NodeLabel(Enum):
    MOVIE = "Movie"
    GENRE = "Genre"
    DIRECTOR = "Director"
    ACTOR = "Actor"
    USER = "User"

    @property
    def key_property(self) -> str:
        """Property that identifies a node of this label."""
        return _KEY_PROPERTIES[self]


_KEY_PROPERTIES = {
    NodeLabel.MOVIE: "title",
    NodeLabel.GENRE: "name",
    NodeLabel.DIRECTOR: "name",
    NodeLabel.ACTOR: "name",
    NodeLabel.USER: "userId",
}


class Direction(Enum):
    OUT = "out"
    IN = "in"


class Endpoint(Enum):
    SOURCE = "source"
    TARGET = "target"


class Reducer(Enum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"


class Relation(Enum):
    RATED = "RATED"
    HAS_GENRE = "HAS_GENRE"
    DIRECTED_BY = "DIRECTED_BY"
    ACTED_IN = "ACTED_IN"

    @property
    def source(self) -> NodeLabel:
        return _RELATION_ENDS[self][0]

    @property
    def target(self) -> NodeLabel:
        return _RELATION_ENDS[self][1]

    def direction_from(self, label: NodeLabel) -> Direction:
        """Direction to walk when starting from a node of ``label``."""
        if label == self.source:
            return Direction.OUT
        if label == self.target:
            return Direction.IN
        raise InvalidInput(f"{label.value} nodes are not connected by {self.value}")

    def far_label(self, direction: Direction) -> NodeLabel:
        return self.target if direction == Direction.OUT else self.source


_RELATION_ENDS = {
    Relation.RATED: (NodeLabel.USER, NodeLabel.MOVIE),
    Relation.HAS_GENRE: (NodeLabel.MOVIE, NodeLabel.GENRE),
    Relation.DIRECTED_BY: (NodeLabel.MOVIE, NodeLabel.DIRECTOR),
    Relation.ACTED_IN: (NodeLabel.ACTOR, NodeLabel.MOVIE),
}


@dataclass(frozen=True)
class NodeRecord:
    label: NodeLabel
    key: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def get(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)


@dataclass(frozen=True)
class EdgeFilter:
    """Inclusive bounds on the ``rating`` attribute of an edge."""

    min_rating: float | None = None
    max_rating: float | None = None

    def matches(self, rating: float | None) -> bool:
        if self.min_rating is None and self.max_rating is None:
            return True
        if rating is None:
            return False
        if self.min_rating is not None and rating < self.min_rating:
            return False
        if self.max_rating is not None and rating > self.max_rating:
            return False
        return True


@dataclass(frozen=True)
class RuntimeRange:
    min: int = DEFAULT_RUNTIME_MIN
    max: int = DEFAULT_RUNTIME_MAX

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < 0:
            raise InvalidInput(f"runtime bounds must be non-negative, got [{self.min}, {self.max}]")
        if self.min > self.max:
            raise InvalidInput(f"runtime range min ({self.min}) exceeds max ({self.max})")

    def contains(self, runtime: int | None) -> bool:
        return runtime is not None and self.min <= runtime <= self.max


@dataclass
class AttributeCriteria:
    """Filters for the attribute-weighted strategy. Empty sets do not score."""

    genres: set[str] = field(default_factory=set)
    directors: set[str] = field(default_factory=set)
    actors: set[str] = field(default_factory=set)
    runtime: RuntimeRange | None = None
    languages: set[str] = field(default_factory=set)
    release_decades: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.genres = set(self.genres or ())
        self.directors = set(self.directors or ())
        self.actors = set(self.actors or ())
        self.languages = set(self.languages or ())
        decades = set()
        for decade in self.release_decades or ():
            if isinstance(decade, bool) or not isinstance(decade, int):
                raise InvalidInput(f"release decade must be an integer, got {decade!r}")
            if decade % 10 != 0:
                raise InvalidInput(f"release decade must be a multiple of 10, got {decade}")
            decades.add(decade)
        self.release_decades = decades

    def runtime_or(self, default: RuntimeRange) -> RuntimeRange:
        return self.runtime if self.runtime is not None else default

    def to_dict(self) -> dict[str, Any]:
        runtime = self.runtime_or(RuntimeRange())
        return {
            "genres": sorted(self.genres),
            "directors": sorted(self.directors),
            "actors": sorted(self.actors),
            "runtime": {"min": runtime.min, "max": runtime.max},
            "languages": sorted(self.languages),
            "releaseDecades": sorted(self.release_decades),
        }


@dataclass
class RankedMovie:
    title: str
    year: int | None
    runtime: int | None
    language: str | None
    release_date: str | None
    score: float
    genres: list[str] = field(default_factory=list)
    directors: list[str] | None = None
    actors: list[str] | None = None
    voters: int | None = None
    breakdown: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_node(cls, node: NodeRecord, score: float, **extra: Any) -> "RankedMovie":
        return cls(
            title=node.key,
            year=node.get("year"),
            runtime=node.get("runtime"),
            language=node.get("original_language"),
            release_date=node.get("release_date"),
            score=score,
            **extra,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "year": self.year,
            "runtime": self.runtime,
            "language": self.language,
            "releaseDate": self.release_date,
            "genres": self.genres,
            "score": self.score,
        }
        if self.directors is not None:
            data["directors"] = self.directors
        if self.actors is not None:
            data["actors"] = self.actors
        if self.voters is not None:
            data["voters"] = self.voters
        if self.breakdown:
            data["breakdown"] = self.breakdown
        return data

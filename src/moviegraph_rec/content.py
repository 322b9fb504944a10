from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from .aggregator import RelationshipAggregator
from .engine_config import EngineConfig
from .models import NodeLabel, NodeRecord, RankedMovie, Relation
from .ranking import Candidate, by_score, rank
from .utils import gather_all

logger = logging.getLogger(__name__)

# Breakdown name -> relation linking a movie to the shared attribute
SHARED_RELATIONS = (
    ("genres", Relation.HAS_GENRE),
    ("directors", Relation.DIRECTED_BY),
    ("actors", Relation.ACTED_IN),
)


@dataclass
class SeedOverlap:
    """Everything one seed contributes: per-relation shared counts and the candidates seen."""

    seed: NodeRecord | None
    shared: dict[str, Counter] = field(default_factory=dict)
    candidates: dict[str, NodeRecord] = field(default_factory=dict)


class ContentStrategy:
    """
    Score movies by the genres, directors and actors they share with the seeds.

    A seed counts toward a candidate only when their runtimes are within the
    proximity window; runtime itself never adds to the score.
    """

    def __init__(self, aggregator: RelationshipAggregator, config: EngineConfig):
        self.aggregator = aggregator
        self.config = config

    async def _shared_with(self, value_label: NodeLabel, value: str, relation: Relation) -> list[NodeRecord]:
        records = await self.aggregator.neighbor_records(value_label, value, relation)
        return [movie for movie, _ in records]

    async def seed_overlap(self, title: str, seeds: set[str]) -> SeedOverlap:
        lookups = [self.aggregator.movie(title)]
        lookups += [self.aggregator.neighbors(NodeLabel.MOVIE, title, rel) for _, rel in SHARED_RELATIONS]
        seed, *values = await gather_all(*lookups)
        overlap = SeedOverlap(seed=seed)
        if seed is None:
            logger.warning(f"Seed title '{title}' not found; it contributes nothing")
            return overlap

        for (name, relation), attribute_values in zip(SHARED_RELATIONS, values):
            value_label = relation.far_label(relation.direction_from(NodeLabel.MOVIE))
            keys = sorted(attribute_values)
            movie_lists = await gather_all(*(
                self._shared_with(value_label, value, relation) for value in keys
            ))
            counts: Counter = Counter()
            for movies in movie_lists:
                for movie in movies:
                    if movie.key in seeds:
                        continue
                    counts[movie.key] += 1
                    overlap.candidates.setdefault(movie.key, movie)
            overlap.shared[name] = counts
        return overlap

    def _near(self, seed: NodeRecord, candidate: NodeRecord) -> bool:
        """Whether a candidate runs close enough to one seed; unknown runtimes always pass."""
        if not self.config.use_runtime_filter:
            return True
        seed_runtime, runtime = seed.get("runtime"), candidate.get("runtime")
        if seed_runtime is None or runtime is None:
            return True
        return abs(seed_runtime - runtime) < self.config.runtime_proximity

    async def recommend(self, seed_titles: Iterable[str], amount: int) -> list[RankedMovie]:
        seeds = set(seed_titles)
        if not seeds or amount <= 0:
            return []

        ordered_seeds = sorted(seeds)
        overlaps = await gather_all(*(self.seed_overlap(title, seeds) for title in ordered_seeds))
        known_seeds = [o.seed for o in overlaps if o.seed is not None]

        candidates: dict[str, Candidate] = {}
        for overlap in overlaps:
            for name, counts in overlap.shared.items():
                for title, count in counts.items():
                    node = overlap.candidates[title]
                    if not self._near(overlap.seed, node):
                        continue
                    candidate = candidates.setdefault(title, Candidate(node))
                    candidate.breakdown[name] = candidate.breakdown.get(name, 0) + count
                    candidate.score += count

        considered = [c for c in candidates.values() if c.score > 0]
        logger.debug(f"{len(considered)} candidates within runtime range of {len(known_seeds)} seeds")

        top = rank(considered, amount, key=by_score)
        people = self.config.describe_people
        descriptions = await self.aggregator.describe_many([c.title for c in top], people=people)

        results = []
        for c in top:
            description = descriptions[c.title]
            results.append(RankedMovie.from_node(
                c.node,
                score=c.score,
                genres=description.genres,
                directors=description.directors if people else None,
                actors=description.actors if people else None,
                breakdown={name: c.breakdown.get(name, 0) for name, _ in SHARED_RELATIONS},
            ))
        return results

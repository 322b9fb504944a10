from __future__ import annotations

import logging
from collections import Counter

from .aggregator import RelationshipAggregator
from .engine_config import EngineConfig
from .models import AttributeCriteria, NodeLabel, NodeRecord, RankedMovie, Relation, RuntimeRange
from .ranking import Candidate, by_score, rank
from .utils import gather_all

logger = logging.getLogger(__name__)


def decade_of(year) -> int | None:
    if year is None:
        return None
    return (int(year) // 10) * 10


class AttributeStrategy:
    """
    Unweighted sum of six components per movie:

    genre, director and actor scores count distinct matching names; runtime,
    language and decade are 0/1. Runtime is always evaluated against the
    criteria range (the default range included); language and decade only
    score when the caller supplied values.
    """

    def __init__(self, aggregator: RelationshipAggregator, config: EngineConfig):
        self.aggregator = aggregator
        self.store = aggregator.store
        self.default_runtime = RuntimeRange(config.default_runtime_min, config.default_runtime_max)

    async def _matches(self, label: NodeLabel, names: set[str], relation: Relation) -> Counter:
        """Number of distinct ``names`` each movie is linked to."""
        ordered = sorted(names)
        movie_lists = await gather_all(*(
            self.aggregator.neighbor_records(label, name, relation) for name in ordered
        ))
        counts: Counter = Counter()
        for records in movie_lists:
            for movie in {node.key for node, _ in records}:
                counts[movie] += 1
        return counts

    def _score(
        self,
        movie: NodeRecord,
        criteria: AttributeCriteria,
        runtime: RuntimeRange,
        matches: dict[str, Counter],
    ) -> Candidate:
        breakdown = {name: counts.get(movie.key, 0) for name, counts in matches.items()}
        breakdown["runtime"] = int(runtime.contains(movie.get("runtime")))
        breakdown["language"] = int(
            bool(criteria.languages) and movie.get("original_language") in criteria.languages
        )
        breakdown["decade"] = int(
            bool(criteria.release_decades) and decade_of(movie.get("year")) in criteria.release_decades
        )
        return Candidate(movie, score=sum(breakdown.values()), breakdown=breakdown)

    async def recommend(self, criteria: AttributeCriteria, amount: int) -> list[RankedMovie]:
        if amount <= 0:
            return []

        movies, genre_hits, director_hits, actor_hits = await gather_all(
            self.store.find_nodes_by_label(NodeLabel.MOVIE),
            self._matches(NodeLabel.GENRE, criteria.genres, Relation.HAS_GENRE),
            self._matches(NodeLabel.DIRECTOR, criteria.directors, Relation.DIRECTED_BY),
            self._matches(NodeLabel.ACTOR, criteria.actors, Relation.ACTED_IN),
        )
        matches = {"genre": genre_hits, "director": director_hits, "actor": actor_hits}

        runtime = criteria.runtime_or(self.default_runtime)
        scored = [self._score(movie, criteria, runtime, matches) for movie in movies]
        logger.debug(f"Scored {len(scored)} movies against {criteria.to_dict()}")

        top = rank(scored, amount, key=by_score)
        descriptions = await self.aggregator.describe_many([c.title for c in top])
        return [
            RankedMovie.from_node(
                c.node,
                score=c.score,
                genres=descriptions[c.title].genres,
                directors=descriptions[c.title].directors,
                actors=descriptions[c.title].actors,
                breakdown=c.breakdown,
            )
            for c in top
        ]

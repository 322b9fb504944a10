from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from .aggregator import RelationshipAggregator
from .models import Direction, EdgeFilter, Endpoint, NodeLabel, RankedMovie, Reducer, Relation
from .ranking import Candidate, by_score_then_voters, rank
from .utils import gather_all

logger = logging.getLogger(__name__)


class CollaborativeStrategy:
    """
    Recommend what like-minded users rated highly.

    A user's weight is their overlap: how many of the liked titles they rated
    at or above the threshold. Each candidate scores the summed overlap of the
    users who also rated it highly.
    """

    def __init__(self, aggregator: RelationshipAggregator):
        self.aggregator = aggregator
        self.store = aggregator.store

    async def user_overlaps(self, liked: set[str], min_rating: float) -> dict[str, int]:
        rows = await self.store.aggregate(
            Relation.RATED,
            group_by=Endpoint.SOURCE,
            reducer=Reducer.COUNT,
            edge_filter=EdgeFilter(min_rating=min_rating),
            other_keys=liked,
        )
        return {user_id: int(count) for user_id, count in rows if count > 0}

    async def recommend(self, liked_titles: Iterable[str], amount: int, min_rating: float) -> list[RankedMovie]:
        liked = set(liked_titles)
        if not liked or amount <= 0:
            return []

        overlaps = await self.user_overlaps(liked, min_rating)
        if not overlaps:
            logger.info("No users rated the liked titles highly; nothing to recommend")
            return []

        users = sorted(overlaps)
        high_filter = EdgeFilter(min_rating=min_rating)
        ratings = await gather_all(*(
            self.aggregator.neighbor_records(NodeLabel.USER, user_id, Relation.RATED, Direction.OUT, high_filter)
            for user_id in users
        ))

        candidates: dict[str, Candidate] = {}
        voters: dict[str, set[str]] = defaultdict(set)
        for user_id, movies in zip(users, ratings):
            for movie, _edge in movies:
                if movie.key in liked:
                    continue
                candidate = candidates.setdefault(movie.key, Candidate(movie))
                candidate.score += overlaps[user_id]
                voters[movie.key].add(user_id)

        for title, candidate in candidates.items():
            candidate.voters = len(voters[title])

        logger.debug(f"{len(overlaps)} similar users produced {len(candidates)} candidates")
        top = rank(candidates.values(), amount, key=by_score_then_voters)
        descriptions = await self.aggregator.describe_many([c.title for c in top], people=False)

        return [
            RankedMovie.from_node(
                c.node,
                score=c.score,
                genres=descriptions[c.title].genres,
                voters=c.voters,
                breakdown={"voters": c.voters},
            )
            for c in top
        ]

"""
Read-only summaries over the rating graph: popularity, per-user taste and
per-director habits.
"""
from __future__ import annotations

import logging
from collections import Counter

from .aggregator import RelationshipAggregator
from .config import (
    MOST_LIKED_GENRE_MIN_RATING,
    SIMILAR_USERS_LIMIT,
    SIMILAR_USERS_MAX_DIFF,
    TOP_IN_GENRE_LIMIT,
    USER_TOP_LIMIT,
)
from .graph_store import GraphStore
from .models import Direction, EdgeFilter, Endpoint, NodeLabel, Reducer, Relation
from .utils import gather_all

logger = logging.getLogger(__name__)


def _most_common(counts: Counter) -> str | None:
    if not counts:
        return None
    return min(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0]


class GraphInsights:
    def __init__(self, store: GraphStore):
        self.store = store
        self.aggregator = RelationshipAggregator(store)

    async def average_ratings(self) -> list[tuple[str, float]]:
        """(title, average rating) for every rated movie."""
        return await self.store.aggregate(Relation.RATED, Endpoint.TARGET, Reducer.AVG)

    async def most_popular_movie(self) -> str | None:
        averages = await self.average_ratings()
        if not averages:
            return None
        return min(averages, key=lambda pair: (-pair[1], pair[0]))[0]

    async def least_popular_movie(self) -> str | None:
        averages = await self.average_ratings()
        if not averages:
            return None
        return min(averages, key=lambda pair: (pair[1], pair[0]))[0]

    async def top_movies_in_genre(self, genre: str, limit: int = TOP_IN_GENRE_LIMIT) -> list[dict]:
        in_genre, averages = await gather_all(
            self.aggregator.neighbors(NodeLabel.GENRE, genre, Relation.HAS_GENRE),
            self.average_ratings(),
        )
        ranked = sorted(
            ((title, avg) for title, avg in averages if title in in_genre),
            key=lambda pair: (-pair[1], pair[0]),
        )
        return [{"title": title, "avgRating": avg} for title, avg in ranked[:max(limit, 0)]]

    async def _user_ratings(self, user_id: str, edge_filter: EdgeFilter | None = None) -> list[dict]:
        records = await self.aggregator.neighbor_records(
            NodeLabel.USER, user_id, Relation.RATED, Direction.OUT, edge_filter
        )
        return [{"title": movie.key, "rating": edge.get("rating")} for movie, edge in records]

    async def user_top_rated(self, user_id: str, limit: int = USER_TOP_LIMIT) -> list[dict]:
        ratings = await self._user_ratings(user_id)
        ratings.sort(key=lambda r: (-r["rating"], r["title"]))
        return ratings[:max(limit, 0)]

    async def user_lowest_rated(self, user_id: str, limit: int = USER_TOP_LIMIT) -> list[dict]:
        ratings = await self._user_ratings(user_id)
        ratings.sort(key=lambda r: (r["rating"], r["title"]))
        return ratings[:max(limit, 0)]

    async def most_liked_genre(self, user_id: str, min_rating: float = MOST_LIKED_GENRE_MIN_RATING) -> str | None:
        liked = await self._user_ratings(user_id, EdgeFilter(min_rating=min_rating))
        genre_sets = await gather_all(*(
            self.aggregator.neighbors(NodeLabel.MOVIE, r["title"], Relation.HAS_GENRE) for r in liked
        ))
        counts: Counter = Counter()
        for genres in genre_sets:
            counts.update(genres)
        return _most_common(counts)

    async def similar_users(
        self,
        user_id: str,
        max_difference: float = SIMILAR_USERS_MAX_DIFF,
        limit: int = SIMILAR_USERS_LIMIT,
    ) -> list[str]:
        """
        Users who rated at least one common movie within ``max_difference``
        of this user's rating, most agreements first.
        """
        own = await self._user_ratings(user_id)
        raters = await gather_all(*(
            self.aggregator.neighbor_records(NodeLabel.MOVIE, r["title"], Relation.RATED) for r in own
        ))
        agreements: Counter = Counter()
        for mine, others in zip(own, raters):
            for other, edge in others:
                if other.key == user_id:
                    continue
                if abs(edge.get("rating", 0) - mine["rating"]) <= max_difference:
                    agreements[other.key] += 1
        ranked = sorted(agreements.items(), key=lambda kv: (-kv[1], kv[0]))
        return [uid for uid, _ in ranked[:max(limit, 0)]]

    async def _director_movies(self, director: str) -> list[str]:
        return sorted(await self.aggregator.neighbors(NodeLabel.DIRECTOR, director, Relation.DIRECTED_BY))

    async def actors_for_director(self, director: str) -> list[str]:
        movies = await self._director_movies(director)
        casts = await gather_all(*(
            self.aggregator.neighbors(NodeLabel.MOVIE, title, Relation.ACTED_IN) for title in movies
        ))
        actors: set[str] = set()
        for cast in casts:
            actors.update(cast)
        return sorted(actors)

    async def most_frequent_genre_for_director(self, director: str) -> str | None:
        movies = await self._director_movies(director)
        genre_sets = await gather_all(*(
            self.aggregator.neighbors(NodeLabel.MOVIE, title, Relation.HAS_GENRE) for title in movies
        ))
        counts: Counter = Counter()
        for genres in genre_sets:
            counts.update(genres)
        return _most_common(counts)

    async def movie_details(self, title: str) -> dict | None:
        """Properties, relations and rating summary of one movie; None when it does not exist."""
        movie, description, raters = await gather_all(
            self.aggregator.movie(title),
            self.aggregator.describe(title),
            self.aggregator.neighbor_records(NodeLabel.MOVIE, title, Relation.RATED),
        )
        if movie is None:
            return None
        ratings = [edge["rating"] for _, edge in raters if edge.get("rating") is not None]
        return {
            **movie.properties,
            "genres": description.genres,
            "directors": description.directors,
            "actors": description.actors,
            "ratingCount": len(ratings),
            "avgRating": sum(ratings) / len(ratings) if ratings else None,
        }

    async def movies_in_genre(self, genre: str) -> list[str]:
        return sorted(await self.aggregator.neighbors(NodeLabel.GENRE, genre, Relation.HAS_GENRE))

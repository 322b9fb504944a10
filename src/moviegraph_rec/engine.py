"""
Public entry point for recommendations.

The engine owns no connection of its own: callers inject a GraphStore and
remain responsible for closing it. Every call re-reads the graph; nothing is
cached between requests.
"""
from __future__ import annotations

import logging
from typing import Iterable

from .aggregator import RelationshipAggregator
from .attributes import AttributeStrategy
from .collaborative import CollaborativeStrategy
from .config import DEFAULT_AMOUNT
from .content import ContentStrategy
from .engine_config import EngineConfig
from .errors import InvalidInput
from .graph_store import GraphStore
from .models import AttributeCriteria, RankedMovie
from .ranking import check_amount

logger = logging.getLogger(__name__)


def _title_set(titles: Iterable[str], name: str) -> set[str]:
    if isinstance(titles, str):
        raise InvalidInput(f"{name} must be a collection of titles, not a single string")
    result = set()
    for title in titles or ():
        if not isinstance(title, str) or not title:
            raise InvalidInput(f"{name} must contain non-empty strings, got {title!r}")
        result.add(title)
    return result


class RecommendationEngine:
    def __init__(self, store: GraphStore, config: EngineConfig | None = None):
        self.store = store
        self.config = config or EngineConfig()
        self.aggregator = RelationshipAggregator(store)
        self.collaborative = CollaborativeStrategy(self.aggregator)
        self.content = ContentStrategy(self.aggregator, self.config)
        self.attributes = AttributeStrategy(self.aggregator, self.config)

    async def recommend_by_user_similarity(
        self,
        liked_titles: Iterable[str],
        amount: int = DEFAULT_AMOUNT,
        min_rating: float | None = None,
    ) -> list[RankedMovie]:
        """Movies rated highly by users who also rated ``liked_titles`` highly."""
        amount = check_amount(amount)
        liked = _title_set(liked_titles, "liked_titles")
        threshold = self.config.min_rating if min_rating is None else min_rating
        if threshold <= 0:
            raise InvalidInput(f"min_rating must be positive, got {threshold}")

        logger.info(f"User-similarity recommendations for {len(liked)} liked titles (min rating {threshold})")
        return await self.collaborative.recommend(liked, amount, threshold)

    async def recommend_by_content(
        self, seed_titles: Iterable[str], amount: int = DEFAULT_AMOUNT
    ) -> list[RankedMovie]:
        """Movies sharing genres, directors and actors with ``seed_titles``."""
        amount = check_amount(amount)
        seeds = _title_set(seed_titles, "seed_titles")
        logger.info(f"Content-based recommendations for {len(seeds)} seed titles")
        return await self.content.recommend(seeds, amount)

    async def recommend_by_attributes(
        self, criteria: AttributeCriteria | None = None, amount: int = DEFAULT_AMOUNT
    ) -> list[RankedMovie]:
        """Movies ranked by how many requested attributes they match."""
        amount = check_amount(amount)
        criteria = criteria or AttributeCriteria()
        if not isinstance(criteria, AttributeCriteria):
            raise InvalidInput(f"criteria must be AttributeCriteria, got {type(criteria).__name__}")
        logger.info("Attribute recommendations")
        return await self.attributes.recommend(criteria, amount)

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .graph_store import GraphStore
from .models import Direction, EdgeFilter, NodeLabel, NodeRecord, Relation
from .utils import gather_all

logger = logging.getLogger(__name__)


@dataclass
class MovieDescription:
    """Display attributes of a movie gathered from its relations."""

    genres: list[str] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)
    actors: list[str] = field(default_factory=list)


class RelationshipAggregator:
    """
    Multiset view over a node's relations.

    Missing nodes and missing relations both produce empty results; only
    store failures raise.
    """

    def __init__(self, store: GraphStore):
        self.store = store

    async def neighbor_records(
        self,
        label: NodeLabel,
        key: str,
        relation: Relation,
        direction: Direction | None = None,
        edge_filter: EdgeFilter | None = None,
    ) -> list[tuple[NodeRecord, dict[str, Any]]]:
        direction = direction or relation.direction_from(label)
        return await self.store.traverse(label, key, relation, direction, edge_filter)

    async def neighbors(
        self,
        label: NodeLabel,
        key: str,
        relation: Relation,
        direction: Direction | None = None,
        edge_filter: EdgeFilter | None = None,
    ) -> Counter[str]:
        records = await self.neighbor_records(label, key, relation, direction, edge_filter)
        return Counter(node.key for node, _ in records)

    async def movie(self, title: str) -> NodeRecord | None:
        found = await self.store.find_nodes_by_label(NodeLabel.MOVIE, {"title": title})
        return found[0] if found else None

    async def describe(self, title: str, people: bool = True) -> MovieDescription:
        """Genres (and, with ``people``, directors and actors) of one movie, sorted."""
        relations = [Relation.HAS_GENRE]
        if people:
            relations += [Relation.DIRECTED_BY, Relation.ACTED_IN]
        results = await gather_all(*(self.neighbors(NodeLabel.MOVIE, title, rel) for rel in relations))
        description = MovieDescription(genres=sorted(results[0]))
        if people:
            description.directors = sorted(results[1])
            description.actors = sorted(results[2])
        return description

    async def describe_many(self, titles: list[str], people: bool = True) -> dict[str, MovieDescription]:
        descriptions = await gather_all(*(self.describe(title, people) for title in titles))
        return dict(zip(titles, descriptions))

from collections import Counter

import pytest

from moviegraph_rec.aggregator import RelationshipAggregator
from moviegraph_rec.models import EdgeFilter, NodeLabel, Relation


@pytest.mark.asyncio
async def test_neighbors_default_to_the_label_side(store):
    aggregator = RelationshipAggregator(store)

    assert await aggregator.neighbors(NodeLabel.MOVIE, "Inception", Relation.HAS_GENRE) == Counter(
        {"Sci-Fi": 1, "Thriller": 1}
    )
    # Movie sits on the target side of ACTED_IN and RATED
    assert set(await aggregator.neighbors(NodeLabel.MOVIE, "Inception", Relation.ACTED_IN)) == {
        "Leonardo DiCaprio",
        "Michael Caine",
    }
    raters = await aggregator.neighbors(
        NodeLabel.MOVIE, "Inception", Relation.RATED, edge_filter=EdgeFilter(min_rating=4)
    )
    assert set(raters) == {"A", "B"}


@pytest.mark.asyncio
async def test_missing_data_is_empty_not_an_error(store):
    aggregator = RelationshipAggregator(store)

    assert await aggregator.neighbors(NodeLabel.MOVIE, "Missing", Relation.DIRECTED_BY) == Counter()
    assert await aggregator.movie("Missing") is None

    description = await aggregator.describe("Missing")
    assert (description.genres, description.directors, description.actors) == ([], [], [])


@pytest.mark.asyncio
async def test_describe_many(store):
    aggregator = RelationshipAggregator(store)

    described = await aggregator.describe_many(["Dune", "Tenet"], people=False)

    assert described["Dune"].genres == ["Adventure", "Sci-Fi"]
    assert described["Tenet"].directors == []

    full = await aggregator.describe("Tenet")
    assert full.directors == ["Christopher Nolan"]
    assert full.genres == ["Action", "Sci-Fi", "Thriller"]

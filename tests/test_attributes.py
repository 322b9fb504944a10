import pytest

from moviegraph_rec.attributes import decade_of
from moviegraph_rec.engine import RecommendationEngine
from moviegraph_rec.engine_config import EngineConfig
from moviegraph_rec.models import AttributeCriteria, NodeLabel, RuntimeRange


def test_decade_of():
    assert decade_of(2021) == 2020
    assert decade_of(1990) == 1990
    assert decade_of(None) is None


@pytest.mark.asyncio
async def test_all_four_components_add_up(engine):
    criteria = AttributeCriteria(
        genres={"Sci-Fi"},
        runtime=RuntimeRange(120, 180),
        languages={"en"},
        release_decades={2020},
    )

    recs = await engine.recommend_by_attributes(criteria, 4)

    dune = recs[0]
    assert dune.title == "Dune"
    assert dune.score == 4
    assert dune.breakdown == {
        "genre": 1,
        "director": 0,
        "actor": 0,
        "runtime": 1,
        "language": 1,
        "decade": 1,
    }
    # Tenet ties with Dune and loses on title; Inception and Interstellar miss the decade
    assert [(r.title, r.score) for r in recs] == [
        ("Dune", 4),
        ("Tenet", 4),
        ("Inception", 3),
        ("Interstellar", 3),
    ]
    assert dune.directors == ["Denis Villeneuve"]
    assert dune.actors == ["Timothée Chalamet"]


@pytest.mark.asyncio
async def test_empty_criteria_score_runtime_only(engine):
    recs = await engine.recommend_by_attributes(AttributeCriteria(), 100)

    assert all(r.score == 1 for r in recs)
    assert [r.title for r in recs] == sorted(r.title for r in recs)
    assert len(recs) == 7


@pytest.mark.asyncio
async def test_unknown_runtime_scores_zero(store):
    await store.update_node(NodeLabel.MOVIE, "Arrival", {"runtime": None})

    recs = await RecommendationEngine(store).recommend_by_attributes(amount=100)

    arrival = next(r for r in recs if r.title == "Arrival")
    assert arrival.score == 0
    assert recs[-1].title == "Arrival"


@pytest.mark.asyncio
async def test_people_matches_count_distinct_names(engine):
    criteria = AttributeCriteria(
        directors={"Christopher Nolan"},
        actors={"Michael Caine", "Leonardo DiCaprio", "Nobody"},
        runtime=RuntimeRange(0, 10),
    )

    recs = await engine.recommend_by_attributes(criteria, 3)

    assert [(r.title, r.score) for r in recs] == [
        ("Inception", 3),
        ("Interstellar", 2),
        ("Tenet", 2),
    ]
    assert recs[0].breakdown["actor"] == 2


@pytest.mark.asyncio
async def test_default_runtime_comes_from_engine_config(store):
    engine = RecommendationEngine(store, EngineConfig(default_runtime_min=150, default_runtime_max=160))

    recs = await engine.recommend_by_attributes(AttributeCriteria(languages={"ja"}), 3)

    assert [(r.title, r.score) for r in recs] == [
        ("Dune", 1),
        ("Seven Samurai", 1),
        ("Tenet", 1),
    ]


@pytest.mark.asyncio
async def test_amount_larger_than_pool_returns_everything(engine):
    recs = await engine.recommend_by_attributes(AttributeCriteria(genres={"Romance"}), 50)

    assert recs[0].title == "The Notebook"
    assert recs[0].score == 2
    assert len(recs) == 7

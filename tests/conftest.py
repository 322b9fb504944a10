import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


SCENARIO = {
    "movies": [
        {"title": "Inception", "year": 2010, "runtime": 148, "original_language": "en",
         "release_date": "2010-07-16", "genres": ["Sci-Fi", "Thriller"],
         "directors": ["Christopher Nolan"], "actors": ["Leonardo DiCaprio", "Michael Caine"]},
        {"title": "Arrival", "year": 2016, "runtime": 116, "original_language": "en",
         "release_date": "2016-11-11", "genres": ["Sci-Fi", "Drama"],
         "directors": ["Denis Villeneuve"], "actors": ["Amy Adams"]},
        {"title": "Interstellar", "year": 2014, "runtime": 169, "original_language": "en",
         "release_date": "2014-11-07", "genres": ["Sci-Fi", "Adventure", "Drama"],
         "directors": ["Christopher Nolan"], "actors": ["Matthew McConaughey", "Michael Caine"]},
        {"title": "Dune", "year": 2021, "runtime": 155, "original_language": "en",
         "release_date": "2021-10-22", "genres": ["Sci-Fi", "Adventure"],
         "directors": ["Denis Villeneuve"], "actors": ["Timothée Chalamet"]},
        {"title": "Tenet", "year": 2020, "runtime": 150, "original_language": "en",
         "release_date": "2020-08-26", "genres": ["Sci-Fi", "Action", "Thriller"],
         "directors": ["Christopher Nolan"], "actors": ["John David Washington", "Michael Caine"]},
        {"title": "The Notebook", "year": 2004, "runtime": 118, "original_language": "en",
         "release_date": "2004-06-25", "genres": ["Romance"],
         "directors": ["Nick Cassavetes"], "actors": ["Ryan Gosling"]},
        {"title": "Seven Samurai", "year": 1954, "runtime": 207, "original_language": "ja",
         "release_date": "1954-04-26", "genres": ["Action", "Drama"],
         "directors": ["Akira Kurosawa"], "actors": ["Toshiro Mifune"]},
    ],
    "users": [
        {"userId": "A", "name": "Alice"},
        {"userId": "B", "name": "Bob"},
        {"userId": "C"},
    ],
    "ratings": [
        {"userId": "A", "title": "Inception", "rating": 5},
        {"userId": "A", "title": "Arrival", "rating": 4},
        {"userId": "A", "title": "Interstellar", "rating": 5},
        {"userId": "A", "title": "The Notebook", "rating": 2},
        {"userId": "B", "title": "Inception", "rating": 4},
        {"userId": "B", "title": "Arrival", "rating": 5},
        {"userId": "B", "title": "Interstellar", "rating": 4},
        {"userId": "B", "title": "Dune", "rating": 5},
        {"userId": "C", "title": "Inception", "rating": 3},
        {"userId": "C", "title": "The Notebook", "rating": 5},
        {"userId": "C", "title": "Tenet", "rating": 4},
        # D only appears in ratings
        {"userId": "D", "title": "Seven Samurai", "rating": 5},
        {"userId": "D", "title": "Arrival", "rating": 2},
    ],
}


@pytest.fixture
def scenario():
    """A fresh deep copy of the scenario snapshot."""
    import copy

    return copy.deepcopy(SCENARIO)


@pytest.fixture
def store(scenario):
    """In-memory graph holding the scenario snapshot."""
    from moviegraph_rec.dataset import Dataset, build_memory_store

    return build_memory_store(Dataset.from_dict(scenario))


@pytest.fixture
def engine(store):
    from moviegraph_rec.engine import RecommendationEngine

    return RecommendationEngine(store)


@pytest.fixture
def dataset_file(tmp_path, scenario):
    import json

    path = tmp_path / "movies.json"
    path.write_text(json.dumps(scenario))
    return path


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary recommendations directory to keep tests isolated.
    """
    monkeypatch.setenv("MOVIEGRAPH_RECOMMENDATIONS_DIR", str(tmp_path / "recommendations"))
    import moviegraph_rec.config as config

    importlib.reload(config)
    return config

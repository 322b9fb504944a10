"""
JSON graph snapshots: loading, building an in-memory store, and seeding any
GraphStore in batches.

Snapshot shape::

    {
      "movies": [{"title", "year", "runtime", "original_language",
                  "release_date", "genres": [], "directors": [], "actors": []}],
      "users": [{"userId", "name"}],
      "ratings": [{"userId", "title", "rating"}]
    }
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from tqdm import tqdm

from .config import IMPORT_CHUNK_SIZE
from .errors import InvalidInput
from .graph_store import GraphStore, InMemoryGraphStore
from .models import NodeLabel, Relation

logger = logging.getLogger(__name__)

MOVIE_FIELDS = ("year", "runtime", "original_language", "release_date")


@dataclass
class Dataset:
    movies: list[dict[str, Any]] = field(default_factory=list)
    users: list[dict[str, Any]] = field(default_factory=list)
    ratings: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Dataset":
        if not isinstance(data, dict):
            raise InvalidInput("Dataset must be a JSON object")
        return cls(
            movies=list(data.get("movies", [])),
            users=list(data.get("users", [])),
            ratings=list(data.get("ratings", [])),
        )

    def movie_rows(self) -> list[dict[str, Any]]:
        rows = []
        for movie in self.movies:
            title = movie.get("title")
            if not title:
                raise InvalidInput(f"Movie without a title: {movie!r}")
            row = {"title": title}
            # "language" is accepted as an alias of original_language
            if "language" in movie and "original_language" not in movie:
                movie = {**movie, "original_language": movie["language"]}
            row.update({k: movie[k] for k in MOVIE_FIELDS if movie.get(k) is not None})
            rows.append(row)
        return rows

    def user_rows(self) -> list[dict[str, Any]]:
        users = {str(u["userId"]): u for u in self.users if u.get("userId") is not None}
        for rating in self.ratings:
            users.setdefault(str(rating["userId"]), {"userId": rating["userId"]})
        rows = []
        for user_id in sorted(users):
            row = {"userId": user_id}
            if users[user_id].get("name"):
                row["name"] = users[user_id]["name"]
            rows.append(row)
        return rows

    def edge_rows(self) -> dict[Relation, list[dict[str, Any]]]:
        edges: dict[Relation, list[dict[str, Any]]] = {rel: [] for rel in Relation}
        for movie in self.movies:
            title = movie["title"]
            edges[Relation.HAS_GENRE] += [{"source": title, "target": g} for g in movie.get("genres", [])]
            edges[Relation.DIRECTED_BY] += [{"source": title, "target": d} for d in movie.get("directors", [])]
            edges[Relation.ACTED_IN] += [{"source": a, "target": title} for a in movie.get("actors", [])]
        for rating in self.ratings:
            edges[Relation.RATED].append({
                "source": str(rating["userId"]),
                "target": rating["title"],
                "rating": rating.get("rating"),
            })
        return edges


def load_dataset(path: Path) -> Dataset:
    with open(path, 'r') as f:
        data = json.load(f)
    dataset = Dataset.from_dict(data)
    logger.info(
        f"Loaded {len(dataset.movies)} movies, {len(dataset.users)} users, "
        f"{len(dataset.ratings)} ratings from {path}"
    )
    return dataset


def _batched(items: list, size: int) -> Iterator[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


async def seed_store(
    dataset: Dataset,
    store: GraphStore,
    batch_size: int = IMPORT_CHUNK_SIZE,
    progress: bool = True,
) -> dict[str, int]:
    """
    Write a snapshot into ``store``: nodes first, then edges.

    Returns the number of rows written per node label / relation.
    """
    node_batches = [
        (NodeLabel.MOVIE, dataset.movie_rows()),
        (NodeLabel.USER, dataset.user_rows()),
    ]
    edge_batches = list(dataset.edge_rows().items())
    total = sum(len(rows) for _, rows in node_batches + edge_batches)

    written: dict[str, int] = {}
    with tqdm(total=total, desc="Seeding", unit="row", disable=not progress) as bar:
        for label, rows in node_batches:
            for chunk in _batched(rows, batch_size):
                written[label.value] = written.get(label.value, 0) + await store.upsert_nodes(label, chunk)
                bar.update(len(chunk))
        for relation, rows in edge_batches:
            for chunk in _batched(rows, batch_size):
                written[relation.value] = written.get(relation.value, 0) + await store.upsert_edges(relation, chunk)
                bar.update(len(chunk))

    logger.info(f"Seeded store: {written}")
    return written


def build_memory_store(dataset: Dataset) -> InMemoryGraphStore:
    """Synchronous in-memory equivalent of seed_store."""
    store = InMemoryGraphStore()
    for row in dataset.movie_rows():
        props = dict(row)
        store.add_node(NodeLabel.MOVIE, props.pop("title"), props)
    for row in dataset.user_rows():
        props = dict(row)
        store.add_node(NodeLabel.USER, props.pop("userId"), props)
    for relation, rows in dataset.edge_rows().items():
        for row in rows:
            store.add_edge(relation, row["source"], row["target"], row.get("rating"))
    return store


def dataset_from_store(store: InMemoryGraphStore) -> Dataset:
    """Snapshot an in-memory graph back into the JSON dataset shape."""
    related: dict[str, dict[str, list[str]]] = {}

    def _attach(title: str, field_name: str, name: str) -> None:
        related.setdefault(title, {}).setdefault(field_name, []).append(name)

    for title, genre, _ in store.edges(Relation.HAS_GENRE):
        _attach(title, "genres", genre)
    for title, director, _ in store.edges(Relation.DIRECTED_BY):
        _attach(title, "directors", director)
    for actor, title, _ in store.edges(Relation.ACTED_IN):
        _attach(title, "actors", actor)

    movies = []
    for title, props in store.nodes(NodeLabel.MOVIE):
        links = related.get(title, {})
        movies.append({
            "title": title,
            **props,
            "genres": links.get("genres", []),
            "directors": links.get("directors", []),
            "actors": links.get("actors", []),
        })
    users = [{"userId": user_id, **props} for user_id, props in store.nodes(NodeLabel.USER)]
    ratings = [
        {"userId": user_id, "title": title, "rating": rating}
        for user_id, title, rating in store.edges(Relation.RATED)
    ]
    return Dataset(movies=movies, users=users, ratings=ratings)


def save_dataset(dataset: Dataset, path: Path) -> Path:
    """Write ``dataset`` as JSON, replacing ``path`` only once the write succeeded."""
    path = Path(path)
    payload = {"movies": dataset.movies, "users": dataset.users, "ratings": dataset.ratings}
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2))
    tmp_path.replace(path)
    logger.info(
        f"Saved {len(dataset.movies)} movies, {len(dataset.users)} users, "
        f"{len(dataset.ratings)} ratings to {path}"
    )
    return path

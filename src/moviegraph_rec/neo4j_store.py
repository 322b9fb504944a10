"""
Graph store backed by a Neo4j server through the official async driver.

Labels, relation types and key properties come from enums; every value is
sent as a query parameter.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import (
    ClientError,
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

from . import config
from .catalog import validate_node_properties, validate_rating, validate_updates
from .errors import ConfigurationError, GraphQueryError, InvalidInput, UpstreamUnavailable
from .graph_store import GraphStore
from .models import Direction, EdgeFilter, Endpoint, NodeLabel, NodeRecord, Reducer, Relation
from .utils import async_retry_with_backoff

logger = logging.getLogger(__name__)

_PROPERTY_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_REDUCER_EXPRESSIONS = {
    Reducer.COUNT: "count(r)",
    Reducer.SUM: "sum(r.rating)",
    Reducer.AVG: "avg(r.rating)",
}

# Failures worth another attempt: lost connections and transient server states
RETRYABLE_ERRORS = (ServiceUnavailable, SessionExpired, TransientError)


@dataclass(frozen=True)
class Neo4jSettings:
    uri: str
    user: str
    password: str
    database: str = "neo4j"

    @classmethod
    def from_env(cls) -> "Neo4jSettings":
        values = {
            "NEO4J_URI": config.NEO4J_URI,
            "NEO4J_USER": config.NEO4J_USER,
            "NEO4J_PASSWORD": config.NEO4J_PASSWORD,
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")
        return cls(
            uri=config.NEO4J_URI,
            user=config.NEO4J_USER,
            password=config.NEO4J_PASSWORD,
            database=config.NEO4J_DATABASE or "neo4j",
        )


def _property_name(name: str) -> str:
    if not _PROPERTY_NAME.match(name):
        raise InvalidInput(f"Invalid property name: {name!r}")
    return name


def _rating_clause(edge_filter: EdgeFilter | None, params: dict[str, Any]) -> list[str]:
    clauses = []
    if edge_filter is None:
        return clauses
    if edge_filter.min_rating is not None:
        clauses.append("r.rating >= $min_rating")
        params["min_rating"] = edge_filter.min_rating
    if edge_filter.max_rating is not None:
        clauses.append("r.rating <= $max_rating")
        params["max_rating"] = edge_filter.max_rating
    return clauses


def build_find_query(label: NodeLabel, filter: dict[str, Any] | None) -> tuple[str, dict[str, Any]]:
    params: dict[str, Any] = {}
    clauses = []
    for i, (name, value) in enumerate((filter or {}).items()):
        param = f"p{i}"
        op = "IN" if isinstance(value, (list, tuple, set, frozenset)) else "="
        clauses.append(f"n.{_property_name(name)} {op} ${param}")
        params[param] = sorted(value) if isinstance(value, (set, frozenset)) else value
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    key = label.key_property
    statement = f"MATCH (n:{label.value}){where} RETURN properties(n) AS props ORDER BY n.{key}"
    return statement, params


def build_traverse_query(
    label: NodeLabel,
    key: str,
    relation: Relation,
    direction: Direction,
    edge_filter: EdgeFilter | None,
) -> tuple[str, dict[str, Any]]:
    expected = relation.source if direction == Direction.OUT else relation.target
    if label != expected:
        raise InvalidInput(f"cannot traverse {relation.value} {direction.value}bound from a {label.value} node")
    far = relation.far_label(direction)
    arrow = f"-[r:{relation.value}]->" if direction == Direction.OUT else f"<-[r:{relation.value}]-"
    params: dict[str, Any] = {"key": key}
    clauses = _rating_clause(edge_filter, params)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    statement = (
        f"MATCH (a:{label.value} {{{label.key_property}: $key}}){arrow}(b:{far.value}){where} "
        f"RETURN properties(b) AS props, properties(r) AS edge ORDER BY b.{far.key_property}"
    )
    return statement, params


def build_aggregate_query(
    relation: Relation,
    group_by: Endpoint,
    reducer: Reducer,
    edge_filter: EdgeFilter | None,
    other_keys: Iterable[str] | None,
) -> tuple[str, dict[str, Any]]:
    if reducer != Reducer.COUNT and relation != Relation.RATED:
        raise InvalidInput(f"{reducer.value} needs a rating; {relation.value} edges have none")
    group_var, other_var = ("s", "t") if group_by == Endpoint.SOURCE else ("t", "s")
    group_label = relation.source if group_by == Endpoint.SOURCE else relation.target
    other_label = relation.target if group_by == Endpoint.SOURCE else relation.source

    params: dict[str, Any] = {}
    clauses = _rating_clause(edge_filter, params)
    if other_keys is not None:
        clauses.append(f"{other_var}.{other_label.key_property} IN $other_keys")
        params["other_keys"] = sorted(set(other_keys))
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    statement = (
        f"MATCH (s:{relation.source.value})-[r:{relation.value}]->(t:{relation.target.value}){where} "
        f"RETURN {group_var}.{group_label.key_property} AS key, {_REDUCER_EXPRESSIONS[reducer]} AS value "
        f"ORDER BY key"
    )
    return statement, params


class Neo4jGraphStore(GraphStore):
    """Async Neo4j adapter with bounded concurrency and retries on connection loss."""

    def __init__(
        self,
        settings: Neo4jSettings,
        max_concurrent: int = config.DEFAULT_MAX_CONCURRENT,
        driver: AsyncDriver | None = None,
        max_retries: int = config.NEO4J_MAX_RETRIES,
        retry_delay: float = config.NEO4J_RETRY_DELAY,
    ):
        self.settings = settings
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.driver = driver
        self._owns_driver = driver is None
        self._run_with_retry = async_retry_with_backoff(
            max_retries=max_retries,
            initial_delay=retry_delay,
            exceptions=RETRYABLE_ERRORS,
        )(self._run_once)

    async def __aenter__(self):
        if self.driver is None:
            self.driver = AsyncGraphDatabase.driver(
                self.settings.uri,
                auth=(self.settings.user, self.settings.password),
                connection_timeout=config.NEO4J_CONNECTION_TIMEOUT,
            )
        return self

    async def close(self) -> None:
        if self.driver is not None and self._owns_driver:
            await self.driver.close()
            self.driver = None

    async def _run_once(self, statement: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        async with self.driver.session(database=self.settings.database) as session:
            result = await session.run(statement, params)
            return await result.data()

    async def _run(self, statement: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Run one auto-commit query and return its records as dicts."""
        if self.driver is None:
            raise RuntimeError("Neo4jGraphStore must be used as an async context manager")

        async with self.semaphore:
            logger.debug(f"Neo4j: {statement}")
            try:
                return await self._run_with_retry(statement, params)
            except ClientError as exc:
                code = getattr(exc, "code", None) or type(exc).__name__
                raise GraphQueryError(f"{code}: {getattr(exc, 'message', None) or exc}") from exc
            except (Neo4jError, DriverError, OSError) as exc:
                raise UpstreamUnavailable(f"Neo4j request failed: {type(exc).__name__}: {exc}") from exc

    # Reads ------------------------------------------------------------
    async def find_nodes_by_label(
        self, label: NodeLabel, filter: dict[str, Any] | None = None
    ) -> list[NodeRecord]:
        rows = await self._run(*build_find_query(label, filter))
        return [_to_record(label, row["props"]) for row in rows]

    async def traverse(
        self,
        label: NodeLabel,
        key: str,
        relation: Relation,
        direction: Direction,
        edge_filter: EdgeFilter | None = None,
    ) -> list[tuple[NodeRecord, dict[str, Any]]]:
        rows = await self._run(*build_traverse_query(label, key, relation, direction, edge_filter))
        far = relation.far_label(direction)
        return [(_to_record(far, row["props"]), row.get("edge") or {}) for row in rows]

    async def aggregate(
        self,
        relation: Relation,
        group_by: Endpoint,
        reducer: Reducer,
        edge_filter: EdgeFilter | None = None,
        other_keys: Iterable[str] | None = None,
    ) -> list[tuple[str, float]]:
        rows = await self._run(*build_aggregate_query(relation, group_by, reducer, edge_filter, other_keys))
        return [(row["key"], float(row["value"])) for row in rows if row.get("value") is not None]

    # Writes -----------------------------------------------------------
    async def upsert_nodes(self, label: NodeLabel, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        key = label.key_property
        batch = []
        for row in rows:
            clean = validate_node_properties(label, row)
            batch.append({"key": clean.pop(key), "props": clean})
        statement = (
            f"UNWIND $rows AS row MERGE (n:{label.value} {{{key}: row.key}}) SET n += row.props"
        )
        await self._run(statement, {"rows": batch})
        return len(batch)

    async def upsert_edges(self, relation: Relation, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        batch = [
            {"source": row["source"], "target": row["target"], "rating": validate_rating(relation, row.get("rating"))}
            for row in rows
        ]
        src, dst = relation.source, relation.target
        statement = (
            f"UNWIND $rows AS row "
            f"MERGE (a:{src.value} {{{src.key_property}: row.source}}) "
            f"MERGE (b:{dst.value} {{{dst.key_property}: row.target}}) "
            f"MERGE (a)-[r:{relation.value}]->(b)"
        )
        if relation == Relation.RATED:
            statement += " SET r.rating = row.rating"
        await self._run(statement, {"rows": batch})
        return len(batch)

    async def update_node(self, label: NodeLabel, key: str, updates: dict[str, Any]) -> bool:
        clean = validate_updates(label, updates)
        rows = await self._run(
            f"MATCH (n:{label.value} {{{label.key_property}: $key}}) SET n += $updates RETURN count(n) AS matched",
            {"key": key, "updates": clean},
        )
        return bool(rows and rows[0].get("matched"))

    async def delete_node(self, label: NodeLabel, key: str) -> bool:
        rows = await self._run(
            f"MATCH (n:{label.value} {{{label.key_property}: $key}}) DETACH DELETE n RETURN count(*) AS deleted",
            {"key": key},
        )
        return bool(rows and rows[0].get("deleted"))


def _to_record(label: NodeLabel, props: dict[str, Any]) -> NodeRecord:
    props = props or {}
    return NodeRecord(label, props.get(label.key_property), props)

import pytest
from neo4j.exceptions import ClientError, ServiceUnavailable, TransientError

from moviegraph_rec import config, neo4j_store
from moviegraph_rec.errors import ConfigurationError, GraphQueryError, InvalidInput, UpstreamUnavailable
from moviegraph_rec.models import Direction, EdgeFilter, Endpoint, NodeLabel, Reducer, Relation
from moviegraph_rec.neo4j_store import Neo4jGraphStore, Neo4jSettings

SETTINGS = Neo4jSettings(uri="neo4j://neo4j.test:7687", user="neo4j", password="secret")


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    async def data(self):
        return self.rows


class FakeSession:
    def __init__(self, driver, database):
        self.driver = driver
        self.database = database

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def run(self, statement, params):
        self.driver.calls.append((self.database, statement, params))
        outcome = self.driver.handler(statement, params)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResult(outcome)


class FakeDriver:
    """Stands in for neo4j.AsyncDriver; handler returns rows or an exception."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.closed = False

    def session(self, database=None):
        return FakeSession(self, database)

    async def close(self):
        self.closed = True


def _store(handler, **kwargs):
    driver = FakeDriver(handler)
    return Neo4jGraphStore(SETTINGS, driver=driver, retry_delay=0.0, **kwargs), driver


def test_settings_from_env_reports_missing_values(monkeypatch):
    monkeypatch.setattr(config, "NEO4J_URI", "bolt://ignored")
    monkeypatch.setattr(config, "NEO4J_USER", None)
    monkeypatch.setattr(config, "NEO4J_PASSWORD", "")

    with pytest.raises(ConfigurationError) as exc:
        Neo4jSettings.from_env()

    assert str(exc.value) == "Missing required environment variables: NEO4J_USER, NEO4J_PASSWORD"


def test_settings_from_env(monkeypatch):
    monkeypatch.setattr(config, "NEO4J_URI", "bolt://db:7687")
    monkeypatch.setattr(config, "NEO4J_USER", "neo4j")
    monkeypatch.setattr(config, "NEO4J_PASSWORD", "pw")
    monkeypatch.setattr(config, "NEO4J_DATABASE", "movies")

    settings = Neo4jSettings.from_env()

    assert settings == Neo4jSettings("bolt://db:7687", "neo4j", "pw", "movies")


def test_query_builders_parameterize_values():
    statement, params = neo4j_store.build_traverse_query(
        NodeLabel.USER, "A", Relation.RATED, Direction.OUT, EdgeFilter(min_rating=4)
    )
    assert statement.startswith("MATCH (a:User {userId: $key})-[r:RATED]->(b:Movie) WHERE r.rating >= $min_rating")
    assert params == {"key": "A", "min_rating": 4}

    statement, params = neo4j_store.build_aggregate_query(
        Relation.RATED, Endpoint.SOURCE, Reducer.COUNT, None, ["Inception", "Arrival", "Arrival"]
    )
    assert "t.title IN $other_keys" in statement
    assert "RETURN s.userId AS key, count(r) AS value" in statement
    assert params == {"other_keys": ["Arrival", "Inception"]}

    statement, params = neo4j_store.build_find_query(NodeLabel.MOVIE, {"original_language": {"en", "ja"}})
    assert "n.original_language IN $p0" in statement
    assert params == {"p0": ["en", "ja"]}


def test_query_builders_reject_unsafe_input():
    with pytest.raises(InvalidInput):
        neo4j_store.build_find_query(NodeLabel.MOVIE, {"title} DETACH DELETE n //": "x"})
    with pytest.raises(InvalidInput):
        neo4j_store.build_aggregate_query(Relation.ACTED_IN, Endpoint.TARGET, Reducer.AVG, None, None)
    with pytest.raises(InvalidInput):
        neo4j_store.build_traverse_query(NodeLabel.GENRE, "Drama", Relation.RATED, Direction.OUT, None)


@pytest.mark.asyncio
async def test_traverse_runs_statement_and_parses_rows():
    def handler(statement, params):
        return [{"props": {"title": "Interstellar", "year": 2014}, "edge": {"rating": 5.0}}]

    store, driver = _store(handler)
    async with store:
        rows = await store.traverse(NodeLabel.USER, "A", Relation.RATED, Direction.OUT)

    [(database, statement, params)] = driver.calls
    assert database == "neo4j"
    assert "-[r:RATED]->(b:Movie)" in statement
    assert params == {"key": "A"}
    [(movie, edge)] = rows
    assert movie.label == NodeLabel.MOVIE
    assert movie.key == "Interstellar"
    assert movie.get("year") == 2014
    assert edge == {"rating": 5.0}
    # Injected drivers belong to the caller
    assert not driver.closed


@pytest.mark.asyncio
async def test_aggregate_and_find_nodes():
    def handler(statement, params):
        if "avg(r.rating)" in statement:
            return [{"key": "Dune", "value": 5}, {"key": "Tenet", "value": None}]
        return [{"props": {"name": "Drama"}}, {"props": {"name": "Sci-Fi"}}]

    store, _ = _store(handler)
    async with store:
        averages = await store.aggregate(Relation.RATED, Endpoint.TARGET, Reducer.AVG)
        genres = await store.find_nodes_by_label(NodeLabel.GENRE)

    assert averages == [("Dune", 5.0)]
    assert [g.key for g in genres] == ["Drama", "Sci-Fi"]


@pytest.mark.asyncio
async def test_writes_validate_and_merge():
    def handler(statement, params):
        if "matched" in statement:
            return [{"matched": 0}]
        if "deleted" in statement:
            return [{"deleted": 1}]
        return []

    store, driver = _store(handler)
    async with store:
        written = await store.upsert_edges(Relation.RATED, [{"source": "A", "target": "Dune", "rating": 4}])
        await store.upsert_nodes(NodeLabel.MOVIE, [{"title": "Dune", "runtime": 155}])
        updated = await store.update_node(NodeLabel.MOVIE, "Missing", {"runtime": 90})
        with pytest.raises(InvalidInput):
            await store.update_node(NodeLabel.MOVIE, "Dune", {"title": "Other"})
        deleted = await store.delete_node(NodeLabel.MOVIE, "Dune")

    assert written == 1
    assert updated is False
    assert deleted is True
    statements = [call[1] for call in driver.calls]
    assert "SET r.rating = row.rating" in statements[0]
    assert driver.calls[0][2]["rows"] == [{"source": "A", "target": "Dune", "rating": 4.0}]
    assert driver.calls[1][2]["rows"] == [{"key": "Dune", "props": {"runtime": 155}}]
    assert "DETACH DELETE n" in statements[-1]
    # Rejected update never reached the server
    assert len(driver.calls) == 4


@pytest.mark.asyncio
async def test_client_errors_map_to_graph_query_error():
    store, driver = _store(lambda statement, params: ClientError("Invalid input 'X'"))
    async with store:
        with pytest.raises(GraphQueryError):
            await store.find_nodes_by_label(NodeLabel.MOVIE)
    # Client errors are not retried
    assert len(driver.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ServiceUnavailable("connection refused"), TransientError("database unavailable")])
async def test_unavailable_errors_retry_then_map_to_upstream_unavailable(error):
    store, driver = _store(lambda statement, params: error, max_retries=2)
    async with store:
        with pytest.raises(UpstreamUnavailable):
            await store.find_nodes_by_label(NodeLabel.MOVIE)
    assert len(driver.calls) == 2


@pytest.mark.asyncio
async def test_connection_loss_is_retried_until_success():
    attempts = {"count": 0}

    def flaky(statement, params):
        attempts["count"] += 1
        if attempts["count"] < 3:
            return ServiceUnavailable("connection refused")
        return [{"props": {"title": "Dune"}}]

    store, _ = _store(flaky, max_retries=3)
    async with store:
        movies = await store.find_nodes_by_label(NodeLabel.MOVIE)

    assert [m.key for m in movies] == ["Dune"]
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_store_requires_context_manager_without_driver():
    store = Neo4jGraphStore(SETTINGS)

    with pytest.raises(RuntimeError):
        await store.find_nodes_by_label(NodeLabel.MOVIE)


@pytest.mark.asyncio
async def test_owned_driver_is_created_and_closed(monkeypatch):
    created = {}

    def fake_driver(uri, auth=None, **kwargs):
        created.update(uri=uri, auth=auth, **kwargs)
        created["driver"] = FakeDriver(lambda statement, params: [])
        return created["driver"]

    monkeypatch.setattr(neo4j_store.AsyncGraphDatabase, "driver", fake_driver)

    async with Neo4jGraphStore(SETTINGS) as store:
        assert await store.find_nodes_by_label(NodeLabel.USER) == []

    assert created["uri"] == "neo4j://neo4j.test:7687"
    assert created["auth"] == ("neo4j", "secret")
    assert created["connection_timeout"] == config.NEO4J_CONNECTION_TIMEOUT
    assert created["driver"].closed
    assert store.driver is None

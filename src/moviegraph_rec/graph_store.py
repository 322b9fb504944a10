from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator

import numpy as np
from scipy import sparse

from .catalog import validate_node_properties, validate_rating, validate_updates
from .errors import InvalidInput
from .models import Direction, EdgeFilter, Endpoint, NodeLabel, NodeRecord, Reducer, Relation

logger = logging.getLogger(__name__)


class GraphStore(ABC):
    """
    Query contract the recommender depends on.

    Implementations answer exact-key lookups only; missing nodes produce
    empty results rather than errors. Transport failures surface as
    UpstreamUnavailable.
    """

    async def __aenter__(self) -> "GraphStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self) -> None:
        return None

    # Reads ------------------------------------------------------------
    @abstractmethod
    async def find_nodes_by_label(
        self, label: NodeLabel, filter: dict[str, Any] | None = None
    ) -> list[NodeRecord]:
        """Nodes of ``label`` whose properties equal (or, for collections, are in) ``filter``."""

    @abstractmethod
    async def traverse(
        self,
        label: NodeLabel,
        key: str,
        relation: Relation,
        direction: Direction,
        edge_filter: EdgeFilter | None = None,
    ) -> list[tuple[NodeRecord, dict[str, Any]]]:
        """Neighbors of one node across ``relation`` with their edge attributes."""

    @abstractmethod
    async def aggregate(
        self,
        relation: Relation,
        group_by: Endpoint,
        reducer: Reducer,
        edge_filter: EdgeFilter | None = None,
        other_keys: Iterable[str] | None = None,
    ) -> list[tuple[str, float]]:
        """
        Reduce matching edges per node on the ``group_by`` end.

        ``other_keys`` restricts the opposite end of each edge. COUNT counts
        edges; SUM and AVG reduce the rating attribute.
        """

    # Writes -----------------------------------------------------------
    @abstractmethod
    async def upsert_nodes(self, label: NodeLabel, rows: list[dict[str, Any]]) -> int:
        """Create or update nodes; each row carries the key property plus allow-listed fields."""

    @abstractmethod
    async def upsert_edges(self, relation: Relation, rows: list[dict[str, Any]]) -> int:
        """Create or replace edges from rows of ``{"source", "target", "rating"?}``."""

    @abstractmethod
    async def update_node(self, label: NodeLabel, key: str, updates: dict[str, Any]) -> bool:
        """Apply allow-listed updates; False when the node does not exist."""

    @abstractmethod
    async def delete_node(self, label: NodeLabel, key: str) -> bool:
        """Delete a node and all its edges; False when the node does not exist."""


class InMemoryGraphStore(GraphStore):
    """
    Graph held in process, one sparse adjacency matrix per relation.

    Rows are source nodes, columns target nodes. RATED cells hold the rating;
    other relations hold 1.0. Matrices are rebuilt lazily after mutation.
    """

    def __init__(self):
        self.node_to_idx: dict[tuple[NodeLabel, str], int] = {}
        self.idx_to_node: list[tuple[NodeLabel, str] | None] = []
        self.node_properties: dict[int, dict[str, Any]] = {}
        self._by_label: dict[NodeLabel, dict[str, int]] = {label: {} for label in NodeLabel}
        self._edges: dict[Relation, dict[tuple[int, int], float]] = {rel: {} for rel in Relation}
        self._adjacency: dict[Relation, tuple[sparse.csr_matrix, sparse.csc_matrix]] = {}

    # Node helpers -----------------------------------------------------
    def add_node(self, label: NodeLabel, key: str, properties: dict[str, Any] | None = None) -> int:
        clean = validate_node_properties(label, {label.key_property: key, **(properties or {})})
        existing = self.node_to_idx.get((label, key))
        if existing is not None:
            self.node_properties[existing].update(clean)
            return existing

        idx = len(self.idx_to_node)
        self.node_to_idx[(label, key)] = idx
        self.idx_to_node.append((label, key))
        self.node_properties[idx] = clean
        self._by_label[label][key] = idx
        self._adjacency.clear()
        return idx

    def get_idx(self, label: NodeLabel, key: str) -> int | None:
        return self.node_to_idx.get((label, key))

    def set_properties(self, label: NodeLabel, key: str, updates: dict[str, Any]) -> bool:
        clean = validate_updates(label, updates)
        idx = self.get_idx(label, key)
        if idx is None:
            return False
        props = self.node_properties[idx]
        for name, value in clean.items():
            if value is None:
                props.pop(name, None)
            else:
                props[name] = value
        return True

    def remove_node(self, label: NodeLabel, key: str) -> bool:
        idx = self.node_to_idx.pop((label, key), None)
        if idx is None:
            return False
        self.idx_to_node[idx] = None
        self.node_properties.pop(idx, None)
        self._by_label[label].pop(key, None)
        for edges in self._edges.values():
            for pair in [p for p in edges if idx in p]:
                del edges[pair]
        self._adjacency.clear()
        return True

    def _record(self, idx: int) -> NodeRecord:
        label, key = self.idx_to_node[idx]
        return NodeRecord(label, key, dict(self.node_properties[idx]))

    # Edge helpers -----------------------------------------------------
    def add_edge(self, relation: Relation, source: str, target: str, rating: float | None = None) -> None:
        """Add or replace an edge, creating bare endpoint nodes when missing."""
        value = validate_rating(relation, rating)
        src_idx = self.add_node(relation.source, source)
        dst_idx = self.add_node(relation.target, target)
        self._edges[relation][(src_idx, dst_idx)] = value if value is not None else 1.0
        self._adjacency.pop(relation, None)

    def _matrices(self, relation: Relation) -> tuple[sparse.csr_matrix, sparse.csc_matrix]:
        cached = self._adjacency.get(relation)
        if cached is not None:
            return cached

        num_nodes = len(self.idx_to_node)
        edges = self._edges[relation]
        rows = np.fromiter((s for s, _ in edges), dtype=np.int64, count=len(edges))
        cols = np.fromiter((d for _, d in edges), dtype=np.int64, count=len(edges))
        data = np.fromiter(edges.values(), dtype=np.float64, count=len(edges))
        csr = sparse.csr_matrix((data, (rows, cols)), shape=(num_nodes, num_nodes))
        matrices = (csr, csr.tocsc())
        self._adjacency[relation] = matrices
        return matrices

    def _edge_mask(self, relation: Relation, data: np.ndarray, edge_filter: EdgeFilter | None) -> np.ndarray:
        mask = np.ones(data.shape[0], dtype=bool)
        if edge_filter is None or (edge_filter.min_rating is None and edge_filter.max_rating is None):
            return mask
        if relation != Relation.RATED:
            # Attribute-less edges never satisfy a rating bound
            return np.zeros(data.shape[0], dtype=bool)
        if edge_filter.min_rating is not None:
            mask &= data >= edge_filter.min_rating
        if edge_filter.max_rating is not None:
            mask &= data <= edge_filter.max_rating
        return mask

    # Reads ------------------------------------------------------------
    async def find_nodes_by_label(
        self, label: NodeLabel, filter: dict[str, Any] | None = None
    ) -> list[NodeRecord]:
        records = []
        for key in sorted(self._by_label[label]):
            idx = self._by_label[label][key]
            props = self.node_properties[idx]
            if filter and not all(_property_matches(props.get(k), v) for k, v in filter.items()):
                continue
            records.append(self._record(idx))
        return records

    async def traverse(
        self,
        label: NodeLabel,
        key: str,
        relation: Relation,
        direction: Direction,
        edge_filter: EdgeFilter | None = None,
    ) -> list[tuple[NodeRecord, dict[str, Any]]]:
        expected = relation.source if direction == Direction.OUT else relation.target
        if label != expected:
            raise InvalidInput(
                f"cannot traverse {relation.value} {direction.value}bound from a {label.value} node"
            )
        idx = self.get_idx(label, key)
        if idx is None:
            return []

        csr, csc = self._matrices(relation)
        matrix = csr if direction == Direction.OUT else csc
        start, end = matrix.indptr[idx], matrix.indptr[idx + 1]
        neighbors = matrix.indices[start:end]
        values = matrix.data[start:end]
        mask = self._edge_mask(relation, values, edge_filter)

        results = []
        for other, value in zip(neighbors[mask], values[mask]):
            attrs = {"rating": float(value)} if relation == Relation.RATED else {}
            results.append((self._record(int(other)), attrs))
        results.sort(key=lambda pair: pair[0].key)
        return results

    async def aggregate(
        self,
        relation: Relation,
        group_by: Endpoint,
        reducer: Reducer,
        edge_filter: EdgeFilter | None = None,
        other_keys: Iterable[str] | None = None,
    ) -> list[tuple[str, float]]:
        if reducer != Reducer.COUNT and relation != Relation.RATED:
            raise InvalidInput(f"{reducer.value} needs a rating; {relation.value} edges have none")

        coo = self._matrices(relation)[0].tocoo()
        mask = self._edge_mask(relation, coo.data, edge_filter)

        group_idx = coo.row if group_by == Endpoint.SOURCE else coo.col
        other_idx = coo.col if group_by == Endpoint.SOURCE else coo.row
        if other_keys is not None:
            other_label = relation.target if group_by == Endpoint.SOURCE else relation.source
            allowed = [self._by_label[other_label][k] for k in set(other_keys) if k in self._by_label[other_label]]
            mask &= np.isin(other_idx, np.asarray(allowed, dtype=np.int64))

        num_nodes = len(self.idx_to_node)
        groups = group_idx[mask]
        counts = np.bincount(groups, minlength=num_nodes)
        if reducer == Reducer.COUNT:
            values = counts.astype(np.float64)
        else:
            sums = np.bincount(groups, weights=coo.data[mask], minlength=num_nodes)
            if reducer == Reducer.SUM:
                values = sums
            else:
                values = np.divide(sums, counts, out=np.zeros(num_nodes), where=counts > 0)

        results = [
            (self.idx_to_node[idx][1], float(values[idx]))
            for idx in np.flatnonzero(counts)
        ]
        results.sort(key=lambda pair: pair[0])
        return results

    # Writes -----------------------------------------------------------
    async def upsert_nodes(self, label: NodeLabel, rows: list[dict[str, Any]]) -> int:
        for row in rows:
            props = dict(row)
            key = props.pop(label.key_property, None)
            if not isinstance(key, str) or not key:
                raise InvalidInput(f"{label.value} row is missing '{label.key_property}'")
            self.add_node(label, key, props)
        return len(rows)

    async def upsert_edges(self, relation: Relation, rows: list[dict[str, Any]]) -> int:
        for row in rows:
            self.add_edge(relation, row["source"], row["target"], row.get("rating"))
        return len(rows)

    async def update_node(self, label: NodeLabel, key: str, updates: dict[str, Any]) -> bool:
        return self.set_properties(label, key, updates)

    async def delete_node(self, label: NodeLabel, key: str) -> bool:
        return self.remove_node(label, key)

    def nodes(self, label: NodeLabel) -> Iterator[tuple[str, dict[str, Any]]]:
        """(key, properties) for every node of ``label``, sorted by key."""
        for key in sorted(self._by_label[label]):
            props = dict(self.node_properties[self._by_label[label][key]])
            props.pop(label.key_property, None)
            yield key, props

    def edges(self, relation: Relation) -> Iterator[tuple[str, str, float | None]]:
        """(source key, target key, rating) in insertion order; rating is None off RATED."""
        for (src, dst), value in self._edges[relation].items():
            rating = value if relation == Relation.RATED else None
            yield self.idx_to_node[src][1], self.idx_to_node[dst][1], rating

    def stats(self) -> dict:
        """Node and edge counts per label/relation."""
        return {
            'nodes': {label.value: len(keys) for label, keys in self._by_label.items()},
            'edges': {rel.value: len(edges) for rel, edges in self._edges.items()},
        }


def _property_matches(actual: Any, wanted: Any) -> bool:
    if isinstance(wanted, (list, tuple, set, frozenset)):
        return actual in wanted
    return actual == wanted

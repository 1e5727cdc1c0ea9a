# Copyright 2021-present Kensho Technologies, LLC.
from collections import deque
from typing import AbstractSet, Deque, Dict, Iterable, Iterator, List, NamedTuple, Sequence, Tuple

from .keys import ForeignKey, KeyRegistry


class ShortestPaths(NamedTuple):
    """Breadth-first search result: hop distances and predecessors on a shortest path."""

    # Node name -> number of edges on a shortest path from the source. Unreachable nodes are
    # absent. The source itself has distance 0.
    distances: Dict[str, int]

    # Node name -> previous node on the shortest path from the source.
    # The source is its own predecessor.
    predecessors: Dict[str, str]


class DepthFirstSearchResult(NamedTuple):
    """Depth-first search result over the nodes reachable from the source."""

    order: List[str]  # Nodes in the order they were first visited, starting with the source.
    predecessors: Dict[str, str]  # Node name -> its parent in the DFS tree; excludes the source.
    depths: Dict[str, int]  # Node name -> its depth in the DFS tree; the source has depth 0.


class RelationGraph(object):
    """A graph with one node per table and one edge per foreign key, pointing child -> parent.

    The graph is stored as an arena: an ordered list of node names, an index from names to
    positions, and per-node adjacency lists referencing the foreign key edges. Adjacency lists
    follow the order in which the foreign keys were added, which makes every traversal below
    deterministic. In an undirected graph, every edge is traversable in both directions.
    """

    def __init__(
        self, node_names: Sequence[str], edges: Sequence[ForeignKey], directed: bool
    ) -> None:
        """Create a new RelationGraph.

        Args:
            node_names: names of the tables, in table order. Must be unique.
            edges: foreign keys whose child and parent tables are both in node_names
            directed: whether edges may only be traversed from child to parent

        Returns:
            fully-constructed RelationGraph object
        """
        self._node_names = tuple(node_names)
        self._node_index = {name: index for index, name in enumerate(self._node_names)}
        if len(self._node_index) != len(self._node_names):
            raise AssertionError(f"Duplicate node names found: {node_names}")

        self._edges = tuple(edges)
        self._directed = directed

        self._adjacency: List[List[Tuple[int, int]]] = [[] for _ in self._node_names]
        for edge_index, edge in enumerate(self._edges):
            child_index = self._node_index[edge.child_table]
            parent_index = self._node_index[edge.parent_table]
            self._adjacency[child_index].append((parent_index, edge_index))
            if not directed:
                self._adjacency[parent_index].append((child_index, edge_index))

    @property
    def node_names(self) -> Tuple[str, ...]:
        """Return the names of all nodes, in table order."""
        return self._node_names

    @property
    def edges(self) -> Tuple[ForeignKey, ...]:
        """Return all edges of the graph."""
        return self._edges

    @property
    def node_count(self) -> int:
        return len(self._node_names)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def __contains__(self, node_name: object) -> bool:
        """Return True if the graph has a node with the given name."""
        return node_name in self._node_index

    def neighbors(self, node_name: str) -> List[str]:
        """Return the nodes reachable from the node over a single edge, in edge order."""
        return [
            self._node_names[neighbor_index]
            for neighbor_index, _ in self._adjacency[self._node_index[node_name]]
        ]

    def is_tree(self) -> bool:
        """Return True if the graph has exactly one edge fewer than it has nodes.

        For a connected graph, this is equivalent to the graph being a tree.
        """
        return self.edge_count == self.node_count - 1

    def induced_subgraph(self, node_names: Iterable[str]) -> "RelationGraph":
        """Return the graph over the given nodes and all edges between them."""
        selected: AbstractSet[str] = frozenset(node_names)
        for node_name in selected:
            if node_name not in self._node_index:
                raise AssertionError(f"Node {node_name} is not part of the graph {self}.")

        return RelationGraph(
            [node_name for node_name in self._node_names if node_name in selected],
            [
                edge
                for edge in self._edges
                if edge.child_table in selected and edge.parent_table in selected
            ],
            self._directed,
        )

    def shortest_paths(self, source: str) -> ShortestPaths:
        """Run a breadth-first search from the source; the first edge reaching a node wins."""
        distances = {source: 0}
        predecessors = {source: source}
        queue: Deque[str] = deque([source])
        while queue:
            node_name = queue.popleft()
            for neighbor in self.neighbors(node_name):
                if neighbor not in distances:
                    distances[neighbor] = distances[node_name] + 1
                    predecessors[neighbor] = node_name
                    queue.append(neighbor)
        return ShortestPaths(distances=distances, predecessors=predecessors)

    def reachable_from(self, source: str) -> List[str]:
        """Return all nodes reachable from the source in breadth-first order, except itself."""
        distances = self.shortest_paths(source).distances
        return [node_name for node_name in distances if node_name != source]

    def depth_first_search(self, source: str) -> DepthFirstSearchResult:
        """Visit all nodes reachable from the source depth-first, following edge order."""
        order = [source]
        predecessors: Dict[str, str] = {}
        depths = {source: 0}

        stack: List[Tuple[str, Iterator[str]]] = [(source, iter(self.neighbors(source)))]
        while stack:
            node_name, remaining_neighbors = stack[-1]
            for neighbor in remaining_neighbors:
                if neighbor not in depths:
                    order.append(neighbor)
                    predecessors[neighbor] = node_name
                    depths[neighbor] = depths[node_name] + 1
                    stack.append((neighbor, iter(self.neighbors(neighbor))))
                    break
            else:
                stack.pop()

        return DepthFirstSearchResult(order=order, predecessors=predecessors, depths=depths)

    def __repr__(self) -> str:
        return "RelationGraph(node_names={}, edges={}, directed={})".format(
            self._node_names, self._edges, self._directed
        )


def build_graph(
    key_registry: KeyRegistry, table_names: Iterable[str], directed: bool = False
) -> RelationGraph:
    """Build the relation graph over the given tables from the foreign keys between them.

    Args:
        key_registry: KeyRegistry holding the foreign keys
        table_names: names of the tables to use as nodes, in table order. Foreign keys
                     touching any other table are left out.
        directed: if True, edges are only traversable from child table to parent table

    Returns:
        RelationGraph object
    """
    table_names = list(table_names)
    node_set = frozenset(table_names)
    edges = [
        foreign_key
        for foreign_key in key_registry.foreign_keys
        if foreign_key.child_table in node_set and foreign_key.parent_table in node_set
    ]
    return RelationGraph(table_names, edges, directed)

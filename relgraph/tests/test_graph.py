# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ..graph import build_graph
from ..keys import ForeignKey, KeyRegistry


def _get_key_registry(*edges: ForeignKey) -> KeyRegistry:
    primary_keys = {edge.parent_table: "id" for edge in edges}
    return KeyRegistry(primary_keys=primary_keys, foreign_keys=edges)


# orders -> customers -> regions, orders -> products
SHOP_EDGES = (
    ForeignKey("orders", "customer_id", "customers"),
    ForeignKey("orders", "product_id", "products"),
    ForeignKey("customers", "region_id", "regions"),
)
SHOP_TABLES = ["orders", "customers", "products", "regions"]


class RelationGraphTests(unittest.TestCase):
    def test_build_graph_nodes_and_edges(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=True)
        self.assertEqual(tuple(SHOP_TABLES), graph.node_names)
        self.assertEqual(SHOP_EDGES, graph.edges)
        self.assertTrue(graph.is_tree())

    def test_build_graph_drops_edges_to_other_tables(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), ["orders", "customers"])
        self.assertEqual(("orders", "customers"), graph.node_names)
        self.assertEqual((SHOP_EDGES[0],), graph.edges)
        self.assertNotIn("regions", graph)

    def test_directed_neighbors(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=True)
        self.assertEqual(["customers", "products"], graph.neighbors("orders"))
        self.assertEqual(["regions"], graph.neighbors("customers"))
        self.assertEqual([], graph.neighbors("regions"))

    def test_undirected_neighbors(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=False)
        self.assertEqual(["orders", "regions"], graph.neighbors("customers"))
        self.assertEqual(["customers"], graph.neighbors("regions"))

    def test_shortest_paths(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=False)
        shortest_paths = graph.shortest_paths("regions")
        self.assertEqual(
            {"regions": 0, "customers": 1, "orders": 2, "products": 3}, shortest_paths.distances
        )
        self.assertEqual(
            {
                "regions": "regions",
                "customers": "regions",
                "orders": "customers",
                "products": "orders",
            },
            shortest_paths.predecessors,
        )

    def test_shortest_paths_ignore_other_components(self) -> None:
        registry = _get_key_registry(ForeignKey("orders", "customer_id", "customers"))
        graph = build_graph(registry, ["orders", "customers", "unrelated"])
        self.assertNotIn("unrelated", graph.shortest_paths("orders").distances)

    def test_shortest_paths_first_edge_wins(self) -> None:
        # Both b and c are one hop away from a and from d: d is reached through b,
        # since the edge to b was added first.
        registry = _get_key_registry(
            ForeignKey("a", "b_id", "b"),
            ForeignKey("a", "c_id", "c"),
            ForeignKey("b", "d_id", "d"),
            ForeignKey("c", "d_id", "d"),
        )
        graph = build_graph(registry, ["a", "b", "c", "d"])
        self.assertEqual("b", graph.shortest_paths("a").predecessors["d"])
        self.assertFalse(graph.is_tree())

    def test_reachable_from_follows_edge_direction(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=True)
        self.assertEqual(["customers", "products", "regions"], graph.reachable_from("orders"))
        self.assertEqual(["regions"], graph.reachable_from("customers"))
        self.assertEqual([], graph.reachable_from("products"))

    def test_depth_first_search(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=True)
        result = graph.depth_first_search("orders")
        self.assertEqual(["orders", "customers", "regions", "products"], result.order)
        self.assertEqual(
            {"customers": "orders", "regions": "customers", "products": "orders"},
            result.predecessors,
        )
        self.assertEqual(
            {"orders": 0, "customers": 1, "regions": 2, "products": 1}, result.depths
        )

    def test_induced_subgraph(self) -> None:
        graph = build_graph(_get_key_registry(*SHOP_EDGES), SHOP_TABLES, directed=True)
        subgraph = graph.induced_subgraph(["regions", "orders", "customers"])
        self.assertEqual(("orders", "customers", "regions"), subgraph.node_names)
        self.assertEqual((SHOP_EDGES[0], SHOP_EDGES[2]), subgraph.edges)
        # Edges of the subgraph still only lead from child to parent.
        self.assertEqual(["regions"], subgraph.neighbors("customers"))

        with self.assertRaises(AssertionError):
            graph.induced_subgraph(["orders", "missing"])

    def test_two_edges_between_a_pair_are_not_a_tree(self) -> None:
        registry = _get_key_registry(
            ForeignKey("orders", "customer_id", "customers"),
            ForeignKey("orders", "billing_customer_id", "customers"),
        )
        graph = build_graph(registry, ["orders", "customers"])
        self.assertFalse(graph.is_tree())
        self.assertEqual(2, len(graph.neighbors("customers")))
        self.assertEqual(2, graph.edge_count)

    def test_duplicate_node_names(self) -> None:
        with self.assertRaises(AssertionError):
            build_graph(KeyRegistry(), ["orders", "orders"])

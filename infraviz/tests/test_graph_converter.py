import unittest

from infraviz.graph_converter import build_graph_from_events, build_raw_edges, convert_events, dedupe_edges, ConversionContext
from infraviz.schemas import GraphEdge, PreviewEvent


def urn(type_, name):
    return f"urn:pulumi:dev::proj::{type_}::{name}"


STACK = PreviewEvent(urn=urn("pulumi:pulumi:Stack", "proj-dev"), type="pulumi:pulumi:Stack")
PROVIDER = PreviewEvent(urn=urn("pulumi:providers:aws", "default_6_0_0"), type="pulumi:providers:aws")
VPC = PreviewEvent(urn=urn("aws:ec2/vpc:Vpc", "main-vpc"), type="aws:ec2/vpc:Vpc", parent=STACK.urn)
SUBNET = PreviewEvent(
    urn=urn("aws:ec2/subnet:Subnet", "app-subnet"),
    type="aws:ec2/subnet:Subnet",
    parent=VPC.urn,
    dependencies=[VPC.urn, VPC.urn],
)
INSTANCE = PreviewEvent(
    urn=urn("aws:ec2/instance:Instance", "web"),
    type="aws:ec2/instance:Instance",
    dependencies=[SUBNET.urn, SUBNET.urn, "urn:pulumi:dev::proj::aws:iam/role:Role::missing"],
)
MYSTERY = PreviewEvent(urn=urn("aws:unknownsvc/x:X", "mystery"), type="aws:unknownsvc/x:X", op="")


class TestGraphBuilder(unittest.TestCase):
    def setUp(self):
        self.events = [STACK, PROVIDER, VPC, SUBNET, INSTANCE, MYSTERY]

    def test_nodes_are_dense_and_ordered(self):
        nodes, _ = build_graph_from_events(self.events)
        self.assertEqual([n.id for n in nodes], ["node-0", "node-1", "node-2", "node-3"])
        self.assertEqual([n.data.label for n in nodes], ["main-vpc", "app-subnet", "web", "mystery"])

    def test_meta_resources_never_become_nodes(self):
        nodes, _ = build_graph_from_events(self.events)
        types = {n.data.resource_type for n in nodes}
        self.assertNotIn("pulumi:pulumi:Stack", types)
        self.assertNotIn("pulumi:providers:aws", types)

    def test_node_data(self):
        nodes, _ = build_graph_from_events(self.events)
        vpc, mystery = nodes[0], nodes[3]
        self.assertEqual(vpc.data.short_type, "VPC")
        self.assertEqual(vpc.data.provider, "aws")
        self.assertEqual(vpc.type, "resourceNode")
        self.assertEqual(mystery.data.short_type, "X")
        self.assertEqual(mystery.data.op, "create")

    def test_edges(self):
        _, edges = build_graph_from_events(self.events)
        self.assertEqual(
            [(e.id, e.source, e.target, e.animated) for e in edges],
            [
                ("e-node-0-node-1", "node-0", "node-1", None),
                ("e-dep-node-1-node-2", "node-1", "node-2", True),
            ],
        )

    def test_dangling_parent_is_skipped(self):
        # VPC's parent is the filtered stack resource
        _, edges = build_graph_from_events([STACK, VPC])
        self.assertEqual(edges, [])

    def test_dependency_repeating_parent_is_not_emitted(self):
        raw = build_raw_edges(ConversionContext([VPC, SUBNET]))
        self.assertEqual([e.id for e in raw], ["e-node-0-node-1"])

    def test_edge_endpoints_exist_and_pairs_are_unique(self):
        nodes, edges = build_graph_from_events(self.events)
        ids = {n.id for n in nodes}
        pairs = [(e.source, e.target) for e in edges]
        self.assertEqual(len(pairs), len(set(pairs)))
        self.assertEqual(len({e.id for e in edges}), len(edges))
        for source, target in pairs:
            self.assertIn(source, ids)
            self.assertIn(target, ids)

    def test_each_run_starts_at_node_zero(self):
        build_graph_from_events(self.events)
        nodes, _ = build_graph_from_events([MYSTERY])
        self.assertEqual(nodes[0].id, "node-0")

    def test_repeated_urn_keeps_ids_dense(self):
        queue = PreviewEvent(urn=urn("aws:sqs/queue:Queue", "q"), type="aws:sqs/queue:Queue", dependencies=[MYSTERY.urn])
        nodes, edges = build_graph_from_events([MYSTERY, MYSTERY, queue])
        self.assertEqual([n.id for n in nodes], ["node-0", "node-1", "node-2"])
        # references resolve to the first node carrying the urn
        self.assertEqual([(e.source, e.target) for e in edges], [("node-0", "node-2")])


class TestEdgeDedup(unittest.TestCase):
    def test_first_seen_wins(self):
        parent = GraphEdge(id="e-node-0-node-1", source="node-0", target="node-1")
        dep = GraphEdge(id="e-dep-node-0-node-1", source="node-0", target="node-1", animated=True)
        reverse = GraphEdge(id="e-dep-node-1-node-0", source="node-1", target="node-0", animated=True)
        self.assertEqual(dedupe_edges([parent, dep, reverse]), [parent, reverse])
        self.assertEqual(dedupe_edges([dep, parent]), [dep])

    def test_direction_matters(self):
        a = GraphEdge(id="e-dep-node-0-node-1", source="node-0", target="node-1")
        b = GraphEdge(id="e-dep-node-1-node-0", source="node-1", target="node-0")
        self.assertEqual(len(dedupe_edges([a, b])), 2)


class TestConvertEvents(unittest.TestCase):
    def test_cost_annotation(self):
        instance = PreviewEvent(urn=urn("aws:ec2/instance:Instance", "web"), type="aws:ec2/instance:Instance")
        graph = convert_events([instance, MYSTERY])
        self.assertEqual(graph.total_cost, 35)
        self.assertEqual(graph.nodes[0].data.estimated_cost, 30)
        self.assertIsNone(graph.nodes[1].data.estimated_cost)

    def test_empty_event_list(self):
        graph = convert_events([])
        self.assertEqual(graph.nodes, [])
        self.assertEqual(graph.edges, [])
        self.assertEqual(graph.total_cost, 0)

    def test_payload_uses_camel_case_keys(self):
        graph = convert_events([MYSTERY])
        data = graph.nodes[0].model_dump(by_alias=True)["data"]
        self.assertIn("shortType", data)
        self.assertIn("estimatedCost", data)
        self.assertIn("resourceType", data)


if __name__ == '__main__':
    unittest.main()

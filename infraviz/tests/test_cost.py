import unittest

from infraviz.cost import CostEstimator, estimate_monthly_cost, total_estimated_cost
from infraviz.schemas import GraphNode, NodeData


def make_node(node_id, resource_type):
    return GraphNode(id=node_id, data=NodeData(
        label=node_id, short_type="x", provider="aws", op="create", resource_type=resource_type,
    ))


class TestCostEstimator(unittest.TestCase):
    def test_known_and_unknown_types(self):
        self.assertEqual(estimate_monthly_cost("aws:ec2/instance:Instance"), 30)
        self.assertEqual(estimate_monthly_cost("aws:ec2/vpc:Vpc"), 0)
        self.assertIsNone(estimate_monthly_cost("aws:unknownsvc/x:X"))

    def test_aggregate_charges_default_for_unknown(self):
        total = total_estimated_cost(["aws:ec2/instance:Instance", "aws:unknownsvc/x:X"])
        self.assertEqual(total, 35)

    def test_aggregate_of_nothing_is_zero(self):
        self.assertEqual(total_estimated_cost([]), 0)

    def test_report_lists_unpriced_types_once(self):
        estimator = CostEstimator()
        nodes = [
            make_node("node-0", "aws:ec2/instance:Instance"),
            make_node("node-1", "aws:unknownsvc/x:X"),
            make_node("node-2", "aws:unknownsvc/x:X"),
        ]
        report = estimator.estimate_costs(nodes)
        self.assertEqual(report.total_monthly_cost, 40)
        self.assertEqual(report.breakdown, {"node-0": 30, "node-1": None, "node-2": None})
        self.assertEqual(report.unpriced_types, ["aws:unknownsvc/x:X"])

    def test_annotate_does_not_mutate_input(self):
        estimator = CostEstimator(table={"custom:a/b:B": 12})
        nodes = [make_node("node-0", "custom:a/b:B")]
        annotated = estimator.annotate(nodes)
        self.assertEqual(annotated[0].data.estimated_cost, 12)
        self.assertIsNone(nodes[0].data.estimated_cost)


if __name__ == '__main__':
    unittest.main()

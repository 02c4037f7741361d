"""
Static monthly cost estimates per Pulumi resource type.

Per-node costs are shown only for known types. The aggregate charges a
default estimate for unknown types, so it can exceed the sum of the
displayed node costs.
"""
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from infraviz.schemas import GraphNode

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_COST = 5.0

COST_TABLE: Dict[str, float] = {
    "aws:ec2/instance:Instance": 30,
    "aws:ec2/vpc:Vpc": 0,
    "aws:ec2/subnet:Subnet": 0,
    "aws:ec2/securityGroup:SecurityGroup": 0,
    "aws:ec2/internetGateway:InternetGateway": 0,
    "aws:ec2/routeTable:RouteTable": 0,
    "aws:ec2/routeTableAssociation:RouteTableAssociation": 0,
    "aws:ec2/eip:Eip": 4,
    "aws:ec2/natGateway:NatGateway": 45,
    "aws:s3/bucket:Bucket": 3,
    "aws:s3/bucketV2:BucketV2": 3,
    "aws:rds/instance:Instance": 25,
    "aws:rds/cluster:Cluster": 50,
    "aws:rds/subnetGroup:SubnetGroup": 0,
    "aws:elasticache/cluster:Cluster": 20,
    "aws:elasticache/replicationGroup:ReplicationGroup": 40,
    "aws:elasticache/subnetGroup:SubnetGroup": 0,
    "aws:lambda/function:Function": 2,
    "aws:apigateway/restApi:RestApi": 5,
    "aws:apigatewayv2/api:Api": 5,
    "aws:ecs/cluster:Cluster": 0,
    "aws:ecs/service:Service": 30,
    "aws:ecs/taskDefinition:TaskDefinition": 0,
    "aws:ecr/repository:Repository": 2,
    "aws:cloudfront/distribution:Distribution": 10,
    "aws:route53/zone:Zone": 1,
    "aws:route53/record:Record": 0,
    "aws:iam/role:Role": 0,
    "aws:iam/policy:Policy": 0,
    "aws:iam/rolePolicyAttachment:RolePolicyAttachment": 0,
    "aws:lb/loadBalancer:LoadBalancer": 20,
    "aws:lb/targetGroup:TargetGroup": 0,
    "aws:lb/listener:Listener": 0,
    "aws:alb/loadBalancer:LoadBalancer": 20,
    "aws:alb/targetGroup:TargetGroup": 0,
    "aws:alb/listener:Listener": 0,
    "aws:sns/topic:Topic": 1,
    "aws:sqs/queue:Queue": 1,
    "aws:dynamodb/table:Table": 5,
    "aws:ses/emailIdentity:EmailIdentity": 0,
    "aws:cognito/userPool:UserPool": 5,
}


class CostReport(BaseModel):
    total_monthly_cost: float
    currency: str = "USD"
    breakdown: Dict[str, Optional[float]] = Field(default_factory=dict, description="Map of node id to its known monthly cost")
    unpriced_types: List[str] = Field(default_factory=list, description="Resource types charged at the default estimate")


class CostEstimator:
    def __init__(self, table: Optional[Dict[str, float]] = None, default_cost: float = DEFAULT_MONTHLY_COST):
        self.table = dict(COST_TABLE if table is None else table)
        self.default_cost = default_cost

    def node_cost(self, resource_type: str) -> Optional[float]:
        cost = self.table.get(resource_type)
        return float(cost) if cost is not None else None

    def total(self, resource_types: Iterable[str]) -> float:
        return float(sum(self.table.get(t, self.default_cost) for t in resource_types))

    def annotate(self, nodes: List[GraphNode]) -> List[GraphNode]:
        """Returns copies of the nodes with estimatedCost filled from the table."""
        annotated = []
        for node in nodes:
            data = node.data.model_copy(update={"estimated_cost": self.node_cost(node.data.resource_type)})
            annotated.append(node.model_copy(update={"data": data}))
        return annotated

    def estimate_costs(self, nodes: List[GraphNode]) -> CostReport:
        breakdown = {}
        unpriced = []
        for node in nodes:
            cost = self.node_cost(node.data.resource_type)
            breakdown[node.id] = cost
            if cost is None and node.data.resource_type not in unpriced:
                unpriced.append(node.data.resource_type)

        if unpriced:
            logger.info("Charging default estimate for %d unpriced type(s): %s", len(unpriced), ", ".join(unpriced))

        return CostReport(
            total_monthly_cost=self.total(n.data.resource_type for n in nodes),
            breakdown=breakdown,
            unpriced_types=unpriced,
        )


default_estimator = CostEstimator()


def estimate_monthly_cost(resource_type: str) -> Optional[float]:
    """Known monthly USD cost for a type, or None when there is no estimate."""
    return default_estimator.node_cost(resource_type)


def total_estimated_cost(resource_types: Iterable[str]) -> float:
    """Conservative aggregate: unknown types count as DEFAULT_MONTHLY_COST."""
    return default_estimator.total(resource_types)

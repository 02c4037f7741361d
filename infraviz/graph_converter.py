"""
Pulumi preview events -> React Flow style nodes and edges.

Pipeline: filter -> build nodes and raw edges -> dedupe -> layout -> cost.
Every run gets its own ConversionContext, so node ids always restart at
node-0.
"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from infraviz.cost import CostEstimator, default_estimator
from infraviz.layout import LayeredLayout
from infraviz.schemas import GraphEdge, GraphNode, NodeData, Position, PreviewEvent
from infraviz.urn import filter_events, parse_urn

logger = logging.getLogger(__name__)

DISPLAY_NAMES: Dict[str, str] = {
    "aws:s3/bucket:Bucket": "S3 Bucket",
    "aws:s3/bucketV2:BucketV2": "S3 Bucket",
    "aws:ec2/instance:Instance": "EC2 Instance",
    "aws:ec2/vpc:Vpc": "VPC",
    "aws:ec2/subnet:Subnet": "Subnet",
    "aws:ec2/securityGroup:SecurityGroup": "Security Group",
    "aws:ec2/internetGateway:InternetGateway": "Internet Gateway",
    "aws:ec2/routeTable:RouteTable": "Route Table",
    "aws:ec2/routeTableAssociation:RouteTableAssociation": "Route Table Assoc.",
    "aws:ec2/eip:Eip": "Elastic IP",
    "aws:ec2/natGateway:NatGateway": "NAT Gateway",
    "aws:rds/instance:Instance": "RDS Instance",
    "aws:rds/cluster:Cluster": "RDS Cluster",
    "aws:rds/subnetGroup:SubnetGroup": "DB Subnet Group",
    "aws:elasticache/cluster:Cluster": "ElastiCache Cluster",
    "aws:elasticache/replicationGroup:ReplicationGroup": "Redis Cluster",
    "aws:elasticache/subnetGroup:SubnetGroup": "Cache Subnet Group",
    "aws:lambda/function:Function": "Lambda Function",
    "aws:apigateway/restApi:RestApi": "API Gateway",
    "aws:apigatewayv2/api:Api": "HTTP API",
    "aws:ecs/cluster:Cluster": "ECS Cluster",
    "aws:ecs/service:Service": "ECS Service",
    "aws:ecs/taskDefinition:TaskDefinition": "Task Definition",
    "aws:ecr/repository:Repository": "ECR Repo",
    "aws:cloudfront/distribution:Distribution": "CloudFront CDN",
    "aws:route53/zone:Zone": "Route53 Zone",
    "aws:route53/record:Record": "DNS Record",
    "aws:iam/role:Role": "IAM Role",
    "aws:iam/policy:Policy": "IAM Policy",
    "aws:iam/rolePolicyAttachment:RolePolicyAttachment": "Policy Attach",
    "aws:lb/loadBalancer:LoadBalancer": "Load Balancer",
    "aws:lb/targetGroup:TargetGroup": "Target Group",
    "aws:lb/listener:Listener": "LB Listener",
    "aws:alb/loadBalancer:LoadBalancer": "ALB",
    "aws:sns/topic:Topic": "SNS Topic",
    "aws:sqs/queue:Queue": "SQS Queue",
    "aws:dynamodb/table:Table": "DynamoDB Table",
    "aws:cognito/userPool:UserPool": "Cognito User Pool",
}


def short_type_for(resource_type: str) -> str:
    if resource_type in DISPLAY_NAMES:
        return DISPLAY_NAMES[resource_type]
    return resource_type.split(":")[-1] or resource_type


class ConvertedGraph(BaseModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    total_cost: float = 0.0


class ConversionContext:
    """Per-run state: positional node ids and the urn -> node id map.

    Node ids follow filtered-event position. When a urn repeats, references
    to it resolve to its first node.
    """

    def __init__(self, events: List[PreviewEvent]):
        self.events = filter_events(events)
        self.ids: List[str] = [f"node-{i}" for i in range(len(self.events))]
        self.urn_to_id: Dict[str, str] = {}
        for node_id, event in zip(self.ids, self.events):
            self.urn_to_id.setdefault(event.urn, node_id)

    def node_id(self, urn: Optional[str]) -> Optional[str]:
        if not urn:
            return None
        return self.urn_to_id.get(urn)


def build_nodes(ctx: ConversionContext) -> List[GraphNode]:
    nodes = []
    for node_id, event in zip(ctx.ids, ctx.events):
        parsed = parse_urn(event.urn)
        nodes.append(GraphNode(
            id=node_id,
            data=NodeData(
                label=parsed.name,
                short_type=short_type_for(parsed.resource_type),
                provider=parsed.provider,
                op=event.op or "create",
                estimated_cost=None,
                resource_type=parsed.resource_type,
            ),
        ))
    return nodes


def build_raw_edges(ctx: ConversionContext) -> List[GraphEdge]:
    """Parent edges, then dependency edges, event by event.

    A dependency that repeats the event's own parent relation is skipped, as
    is a dependency edge whose id is already present. References outside the
    filtered event set are ignored.
    """
    raw_edges: List[GraphEdge] = []
    seen_ids = set()

    for target_id, event in zip(ctx.ids, ctx.events):
        parent_id = ctx.node_id(event.parent)

        if parent_id:
            edge = GraphEdge(id=f"e-{parent_id}-{target_id}", source=parent_id, target=target_id)
            raw_edges.append(edge)
            seen_ids.add(edge.id)

        for dep in event.dependencies:
            source_id = ctx.node_id(dep)
            if not source_id or source_id == parent_id:
                continue
            edge_id = f"e-dep-{source_id}-{target_id}"
            if edge_id in seen_ids:
                continue
            raw_edges.append(GraphEdge(id=edge_id, source=source_id, target=target_id, animated=True))
            seen_ids.add(edge_id)

    return raw_edges


def dedupe_edges(raw_edges: List[GraphEdge]) -> List[GraphEdge]:
    """Keeps the first edge for each directed (source, target) pair.

    Input order is construction order, so a parent edge beats a dependency
    edge and earlier events beat later ones.
    """
    seen = set()
    edges = []
    for edge in raw_edges:
        key = f"{edge.source}-{edge.target}"
        if key in seen:
            continue
        seen.add(key)
        edges.append(edge)
    return edges


def apply_layout(nodes: List[GraphNode], edges: List[GraphEdge], layout: Optional[LayeredLayout] = None) -> List[GraphNode]:
    layout = layout or LayeredLayout()
    centers = layout.compute([n.id for n in nodes], [(e.source, e.target) for e in edges])
    positioned = []
    for node in nodes:
        x, y = layout.top_left(centers.get(node.id))
        positioned.append(node.model_copy(update={"position": Position(x=x, y=y)}))
    return positioned


def build_graph_from_events(events: List[PreviewEvent], layout: Optional[LayeredLayout] = None):
    """Nodes and deduplicated edges, positioned but without cost data."""
    ctx = ConversionContext(events)
    nodes = build_nodes(ctx)
    edges = dedupe_edges(build_raw_edges(ctx))
    nodes = apply_layout(nodes, edges, layout)
    logger.debug("Built graph: %d nodes, %d edges from %d events", len(nodes), len(edges), len(events))
    return nodes, edges


def convert_events(
    events: List[PreviewEvent],
    estimator: Optional[CostEstimator] = None,
    layout: Optional[LayeredLayout] = None,
) -> ConvertedGraph:
    estimator = estimator or default_estimator
    nodes, edges = build_graph_from_events(events, layout)
    nodes = estimator.annotate(nodes)
    total = estimator.total(n.data.resource_type for n in nodes)
    return ConvertedGraph(nodes=nodes, edges=edges, total_cost=total)

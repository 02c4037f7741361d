from datetime import datetime, timezone
from typing import List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field

DeployStatus = Literal["idle", "deploying", "deployed", "failed"]


class PreviewEvent(BaseModel):
    """One resource's planned change as reported by `pulumi preview`."""
    urn: str = Field(..., description="Pulumi URN, unique within an event set")
    type: str = Field(..., description="Pulumi type token (e.g., 'aws:s3/bucket:Bucket')")
    op: str = Field(default="create", description="Planned operation (create, update, delete, same, ...)")
    parent: Optional[str] = Field(default=None, description="URN of the parent resource")
    dependencies: List[str] = Field(default_factory=list, description="URNs this resource depends on")


class ParsedUrn(BaseModel):
    provider: str
    resource_type: str
    name: str


class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class NodeData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    label: str
    short_type: str = Field(..., alias="shortType")
    provider: str
    op: str
    estimated_cost: Optional[float] = Field(default=None, alias="estimatedCost", ge=0)
    resource_type: str = Field(..., alias="resourceType")


class GraphNode(BaseModel):
    id: str = Field(..., description="Sequential id ('node-0', 'node-1', ...) in filtered event order")
    position: Position = Field(default_factory=Position)
    data: NodeData
    type: str = "resourceNode"


class GraphEdge(BaseModel):
    id: str = Field(..., description="Encodes the ordered pair and the edge kind")
    source: str
    target: str
    animated: Optional[bool] = None


class StackRecord(BaseModel):
    """Everything persisted for one stack. Owned by the StackStore."""
    model_config = ConfigDict(populate_by_name=True)

    stack_id: str = Field(..., alias="stackId")
    code: str = Field(..., description="Pulumi TypeScript program")
    work_dir: str = Field(..., alias="workDir")
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    deploy_status: DeployStatus = Field(default="idle", alias="deployStatus")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="createdAt")


class GraphPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nodes: List[GraphNode]
    edges: List[GraphEdge]
    stack_id: str = Field(..., alias="stackId")
    total_estimated_cost: float = Field(..., alias="totalEstimatedCost")
    description: str
    subprocess_supported: bool = Field(default=False, alias="subprocessSupported")
    summary: str = Field(default="", description="Human readable one-line outcome")


class ErrorResult(BaseModel):
    error: str
    message: str


class DeployResult(BaseModel):
    status: Literal["deployed", "failed"]
    message: str
    logs: List[str] = Field(default_factory=list)


"""
Canvas data models for Living Canvas.

This module defines the nodes, edges and graph of one canvas document. Field
aliases follow the on-disk canvas JSON format, and unknown keys are kept so
host-specific decorations survive a read/write cycle.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_serializer

Number = Union[int, float]


class NodeKind(str, Enum):
    """Node types Living Canvas creates. Other canvas types (group, link) are kept as plain strings."""
    CONTENT = "text"
    REFERENCE = "file"


class NodeStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class CanvasModel(BaseModel):
    """
    Base for canvas JSON objects.

    Declared optional fields that are None are left out when dumping; unknown
    keys are dumped exactly as they were read, null values included.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @model_serializer(mode="wrap")
    def serialize_without_empty_fields(self, handler) -> Dict[str, Any]:
        data = handler(self)
        extras = self.model_extra or {}
        return {key: value for key, value in data.items() if value is not None or key in extras}


class ExecutionState(CanvasModel):
    """
    Block association and run state carried by a block node.
    """

    block_id: str = Field(..., alias="blockType", description="Id of the referenced BlockDefinition")
    status: NodeStatus = Field(NodeStatus.IDLE)
    config: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = Field(None, description="Description of the last failure")


class CanvasNode(CanvasModel):
    """
    A node on the canvas: plain content, a file reference, or a block instance.
    """

    id: str
    kind: Union[NodeKind, str] = Field(NodeKind.CONTENT, alias="type", union_mode="left_to_right")
    text: Optional[str] = None
    x: Number = 0
    y: Number = 0
    width: Number = 250
    height: Number = 60
    execution: Optional[ExecutionState] = Field(None, alias="livingCanvas")

    @property
    def is_block(self) -> bool:
        return self.execution is not None


class CanvasEdge(CanvasModel):
    """
    A directed edge; the node at ``from_node`` feeds the node at ``to_node``.
    """

    id: str
    from_node: str = Field(..., alias="fromNode")
    to_node: str = Field(..., alias="toNode")
    from_side: Optional[str] = Field(None, alias="fromSide")
    to_side: Optional[str] = Field(None, alias="toSide")
    color: Optional[str] = None
    label: Optional[str] = None


class CanvasGraph(CanvasModel):
    """
    All nodes and edges of one canvas document.

    Node and edge lists keep insertion order; edge order doubles as the
    order in which upstream inputs are concatenated.
    """

    nodes: List[CanvasNode] = Field(default_factory=list)
    edges: List[CanvasEdge] = Field(default_factory=list)

    def node_ids(self) -> set:
        return {node.id for node in self.nodes}

    def edge_ids(self) -> set:
        return {edge.id for edge in self.edges}

    def integrity_problems(self) -> List[str]:
        """Describe duplicate ids and dangling edges, if any."""
        problems = []
        node_ids = self.node_ids()
        if len(node_ids) != len(self.nodes):
            problems.append("duplicate node ids")
        if len(self.edge_ids()) != len(self.edges):
            problems.append("duplicate edge ids")
        for edge in self.edges:
            if edge.from_node not in node_ids or edge.to_node not in node_ids:
                problems.append(f"edge {edge.id} references a missing node")
        return problems

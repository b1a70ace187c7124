"""Data models for Living Canvas."""

from .blocks import BlockCategory, BlockDefinition, SettingSpec, SettingType
from .canvas import CanvasEdge, CanvasGraph, CanvasNode, ExecutionState, NodeKind, NodeStatus

__all__ = [
    "BlockCategory",
    "BlockDefinition",
    "SettingSpec",
    "SettingType",
    "CanvasEdge",
    "CanvasGraph",
    "CanvasNode",
    "ExecutionState",
    "NodeKind",
    "NodeStatus"
]

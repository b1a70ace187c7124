"""
Living Canvas: a block graph engine for AI-assisted canvases.

Runs configurable transformation blocks on canvas nodes and writes their
output back to the canvas as new, connected nodes.
"""

__version__ = "0.1.0"
__author__ = "Living Canvas Project"

# Import main components
from .database import DatabaseManager
from .models import BlockDefinition, CanvasEdge, CanvasGraph, CanvasNode, NodeStatus
from .blocks import BlockRegistry, SandboxedRuntime
from .canvas import CanvasStore
from .execution import ExecutionOrchestrator, RunOutcome, provider_from_settings
from .settings import SettingsStore

__all__ = [
    "DatabaseManager",
    "BlockDefinition",
    "CanvasEdge",
    "CanvasGraph",
    "CanvasNode",
    "NodeStatus",
    "BlockRegistry",
    "SandboxedRuntime",
    "CanvasStore",
    "ExecutionOrchestrator",
    "RunOutcome",
    "provider_from_settings",
    "SettingsStore"
]

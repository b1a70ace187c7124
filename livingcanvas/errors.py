"""
Error taxonomy for Living Canvas.

Discovery errors are collected as diagnostics and never stop a scan. Lookup
errors are raised before any mutation. Run errors (no input, block logic,
provider) end with the node in the ``error`` state.
"""

from typing import Optional


class LivingCanvasError(Exception):
    """Base class for all Living Canvas errors."""


class DiscoveryError(LivingCanvasError):
    """A block directory could not be loaded (bad manifest, missing logic)."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class GraphIntegrityError(LivingCanvasError):
    """A mutation would leave an edge pointing at a missing node."""


class NotABlock(LivingCanvasError):
    def __init__(self, node_id: str, message: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message or f"Node '{node_id}' is not a Living Canvas block")


class NodeNotFound(NotABlock):
    """The node id is not in the graph. Also a NotABlock, since it cannot be run."""

    def __init__(self, node_id: str):
        super().__init__(node_id, f"Node '{node_id}' not found")


class BlockNotFound(LivingCanvasError, KeyError):
    def __init__(self, block_id: str):
        self.block_id = block_id
        super().__init__(f"Block type '{block_id}' not found")

    def __str__(self) -> str:
        return self.args[0]


class RunInProgress(LivingCanvasError):
    """A run was requested for a node that is already processing."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' is already processing")


class NoInputText(LivingCanvasError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__("No input text found. Connect text nodes to this block.")


class ExecutionError(LivingCanvasError):
    """Block logic raised, timed out, broke sandbox policy or returned a non-string."""

    def __init__(self, block_id: str, cause: str):
        self.block_id = block_id
        self.cause = cause
        super().__init__(f"Block '{block_id}' failed: {cause}")


class ProviderError(LivingCanvasError):
    """The completion provider rejected or failed the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        if status_code is not None:
            super().__init__(f"{status_code} {message}")
        else:
            super().__init__(message)


class PersistError(LivingCanvasError):
    """The canvas document could not be written; memory may be ahead of disk."""

    def __init__(self, document_ref: str):
        self.document_ref = str(document_ref)
        super().__init__(f"Failed to write canvas document: {self.document_ref}")

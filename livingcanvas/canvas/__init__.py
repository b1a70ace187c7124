"""Canvas document storage and graph operations."""

from .store import CanvasStore, DocumentRef

__all__ = ["CanvasStore", "DocumentRef"]

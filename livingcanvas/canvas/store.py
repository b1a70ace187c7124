"""
Canvas graph store for Living Canvas.

This module is the only place that reads or writes a canvas document on disk.
It also provides the graph queries and mutations used by the orchestrator.
Mutations work on the in-memory CanvasGraph only; callers decide when to
call write() so several mutations can share one durable write.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..config import config
from ..errors import GraphIntegrityError
from ..models import CanvasEdge, CanvasGraph, CanvasNode

logger = logging.getLogger(__name__)

DocumentRef = Union[str, Path]


class CanvasStore:
    """
    Reads, writes and edits canvas graphs while keeping their invariants.
    """

    def __init__(self, node_gap: Optional[int] = None):
        """
        Initialize the canvas store.

        Args:
            node_gap: Horizontal gap between a reference node and a new node
                (defaults to config value)
        """
        self.node_gap = node_gap if node_gap is not None else config.node_gap

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def read(self, document_ref: DocumentRef) -> Optional[CanvasGraph]:
        """
        Load a canvas document.

        Args:
            document_ref: Path of the canvas document

        Returns:
            The graph, or None when the document is missing or malformed.
            An empty document reads as an empty graph.
        """
        path = Path(document_ref)
        try:
            content = path.read_text(encoding='utf-8')
        except FileNotFoundError:
            logger.warning(f"Canvas document not found: {path}")
            return None
        except OSError as e:
            logger.error(f"Failed to read canvas document {path}: {e}")
            return None

        if not content.strip():
            return CanvasGraph()

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Canvas document {path} is not valid JSON: {e}")
            return None

        if not isinstance(data, dict) or not isinstance(data.get("nodes"), list) \
                or not isinstance(data.get("edges"), list):
            logger.warning(f"Invalid canvas data structure in {path} - nodes and edges must be arrays")
            return None

        try:
            graph = CanvasGraph.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Canvas document {path} failed validation: {e}")
            return None

        problems = graph.integrity_problems()
        if problems:
            logger.warning(f"Canvas document {path} has integrity problems: {', '.join(problems)}")
        return graph

    def serialize(self, graph: CanvasGraph) -> str:
        """Render a graph as deterministic canvas JSON."""
        data = graph.model_dump(mode="json", by_alias=True)
        return json.dumps(data, indent=2, ensure_ascii=False)

    def write(self, document_ref: DocumentRef, graph: CanvasGraph) -> bool:
        """
        Overwrite a canvas document with the full graph.

        The content goes to a temporary sibling file which then replaces the
        document, so readers never observe a partially written file.

        Args:
            document_ref: Path of the canvas document
            graph: The graph to persist

        Returns:
            True if the document was written, False otherwise
        """
        path = Path(document_ref)
        tmp_name = None
        try:
            content = self.serialize(graph)
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(tmp_name, path)
            tmp_name = None
            logger.debug(f"Canvas data written to {path} ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")
            return True
        except Exception as e:
            logger.error(f"Error writing canvas data to {path}: {e}")
            return False
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_node(self, graph: CanvasGraph, node_id: str) -> Optional[CanvasNode]:
        for node in graph.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, graph: CanvasGraph, edge_id: str) -> Optional[CanvasEdge]:
        for edge in graph.edges:
            if edge.id == edge_id:
                return edge
        return None

    def get_upstream_nodes(self, graph: CanvasGraph, node_id: str) -> List[CanvasNode]:
        """
        Get the nodes feeding into a node, in edge-creation order.

        A node connected by several edges is listed once.
        """
        return self._collect(graph, [edge.from_node for edge in graph.edges if edge.to_node == node_id])

    def get_downstream_nodes(self, graph: CanvasGraph, node_id: str) -> List[CanvasNode]:
        """Get the nodes a node feeds into, in edge-creation order."""
        return self._collect(graph, [edge.to_node for edge in graph.edges if edge.from_node == node_id])

    def get_source_text(self, graph: CanvasGraph, node_id: str) -> str:
        """
        Concatenate the text of all upstream nodes.

        Blank texts are skipped and the rest are joined by an empty line.
        """
        texts = [node.text or '' for node in self.get_upstream_nodes(graph, node_id)]
        return "\n\n".join(text for text in texts if text.strip())

    def get_block_nodes(self, graph: CanvasGraph) -> List[CanvasNode]:
        return [node for node in graph.nodes if node.is_block]

    def get_nodes_by_block(self, graph: CanvasGraph, block_id: str) -> List[CanvasNode]:
        return [node for node in self.get_block_nodes(graph) if node.execution.block_id == block_id]

    def compute_insertion_point(self, graph: CanvasGraph, reference_node_id: Optional[str] = None) -> Dict[str, float]:
        """
        Suggest a position for a new node.

        To the right of the reference node when one is given, otherwise to the
        right of the node furthest to the right. An empty canvas starts at the
        origin.

        Args:
            graph: The graph to place into
            reference_node_id: Optional node to place next to

        Returns:
            Dictionary with ``x`` and ``y``
        """
        reference = self.get_node(graph, reference_node_id) if reference_node_id else None
        if reference is None and graph.nodes:
            reference = max(graph.nodes, key=lambda node: node.x)
        if reference is None:
            return {"x": 0, "y": 0}
        return {"x": reference.x + reference.width + self.node_gap, "y": reference.y}

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def create_node(self, graph: CanvasGraph, node_data: Mapping[str, Any]) -> str:
        """
        Add a node to the graph.

        Args:
            graph: The graph to modify
            node_data: Node fields without an id (python or canvas key names)

        Returns:
            The id assigned to the new node
        """
        fields = {key: value for key, value in dict(node_data).items() if key != "id"}
        node_id = self._next_id("node", graph.node_ids())
        node = CanvasNode.model_validate({"id": node_id, **fields})
        graph.nodes.append(node)
        logger.debug(f"Created node {node_id}")
        return node_id

    def create_edge(self, graph: CanvasGraph, from_node_id: str, to_node_id: str, **attrs: Any) -> str:
        """
        Connect two existing nodes.

        Args:
            graph: The graph to modify
            from_node_id: Upstream node id
            to_node_id: Downstream node id
            **attrs: Optional visual attributes (from_side, to_side, color, label)

        Returns:
            The id assigned to the new edge

        Raises:
            GraphIntegrityError: If either endpoint is not in the graph
        """
        node_ids = graph.node_ids()
        missing = [node_id for node_id in (from_node_id, to_node_id) if node_id not in node_ids]
        if missing:
            raise GraphIntegrityError(f"Cannot create edge, missing node(s): {', '.join(missing)}")

        edge_id = self._next_id("edge", graph.edge_ids())
        edge = CanvasEdge.model_validate({
            **attrs,
            "id": edge_id,
            "fromNode": from_node_id,
            "toNode": to_node_id,
        })
        graph.edges.append(edge)
        logger.debug(f"Created edge {edge_id}: {from_node_id} -> {to_node_id}")
        return edge_id

    def update_node(self, graph: CanvasGraph, node_id: str, updates: Mapping[str, Any]) -> bool:
        """
        Merge fields into an existing node.

        Args:
            graph: The graph to modify
            node_id: Node to update
            updates: Fields to replace (python or canvas key names); the id
                cannot be changed

        Returns:
            True if the node was updated, False if it does not exist
        """
        for index, node in enumerate(graph.nodes):
            if node.id != node_id:
                continue
            merged = node.model_dump(by_alias=True)
            for key, value in updates.items():
                if key == "id":
                    continue
                merged[self._node_alias(key)] = value
            graph.nodes[index] = CanvasNode.model_validate(merged)
            return True
        logger.debug(f"Node {node_id} not found")
        return False

    def delete_node(self, graph: CanvasGraph, node_id: str) -> bool:
        """
        Remove a node and every edge touching it.

        Returns:
            True if the node existed
        """
        before = len(graph.nodes)
        graph.nodes[:] = [node for node in graph.nodes if node.id != node_id]
        if len(graph.nodes) == before:
            return False
        graph.edges[:] = [
            edge for edge in graph.edges
            if edge.from_node != node_id and edge.to_node != node_id
        ]
        logger.debug(f"Deleted node {node_id} and its edges")
        return True

    def delete_edge(self, graph: CanvasGraph, edge_id: str) -> bool:
        before = len(graph.edges)
        graph.edges[:] = [edge for edge in graph.edges if edge.id != edge_id]
        return len(graph.edges) != before

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _collect(self, graph: CanvasGraph, node_ids: List[str]) -> List[CanvasNode]:
        by_id = {node.id: node for node in graph.nodes}
        seen = set()
        nodes = []
        for node_id in node_ids:
            if node_id in seen or node_id not in by_id:
                continue
            seen.add(node_id)
            nodes.append(by_id[node_id])
        return nodes

    def _next_id(self, prefix: str, existing: set) -> str:
        # Counter scanned against existing ids, so uniqueness holds by construction.
        counter = len(existing) + 1
        candidate = f"{prefix}_{counter}"
        while candidate in existing:
            counter += 1
            candidate = f"{prefix}_{counter}"
        return candidate

    @staticmethod
    def _node_alias(key: str) -> str:
        field = CanvasNode.model_fields.get(key)
        if field is not None and field.alias:
            return field.alias
        return key

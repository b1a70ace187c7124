"""
Execution Orchestrator for Living Canvas.

This module drives a block node through its run: it resolves the upstream
input, invokes the sandboxed runtime, sends the resulting prompt to the
completion provider and writes the output node, the connecting edge and the
status transitions back through the canvas store.

State machine per block node::

    idle -> processing -> complete | error
    complete | error -> idle          (reset_block only)
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Set, Tuple

from ..blocks import BlockRegistry, Capabilities, SandboxedRuntime
from ..canvas import CanvasStore, DocumentRef
from ..config import config
from ..errors import (
    BlockNotFound,
    ExecutionError,
    LivingCanvasError,
    NoInputText,
    NodeNotFound,
    NotABlock,
    PersistError,
    ProviderError,
    RunInProgress,
)
from ..models import BlockDefinition, CanvasGraph, CanvasNode, NodeKind, NodeStatus
from .providers import CompletionProvider

logger = logging.getLogger(__name__)

CLARIFY_BLOCK_ID = "clarify"
CLARIFY_HEADER = "💡 AI Clarification"
CLARIFY_PROMPT_TEMPLATE = """The user has selected the following text and asked a question about it.

Selected text:
"{selected_text}"

Question: {question}

Please provide a helpful and accurate answer to their question."""


@dataclass
class RunOutcome:
    """
    Caller-visible result of one run_block call.

    ``error_kind`` is ``no_input``, ``execution`` or ``provider`` for a
    failed run and None on success.
    """
    node_id: str
    status: NodeStatus
    output_node_id: Optional[str] = None
    edge_id: Optional[str] = None
    text: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == NodeStatus.COMPLETE


@dataclass
class ClarifyResult:
    """The provider's answer and where it was placed on the canvas."""
    text: str
    node_id: str
    edge_id: Optional[str] = None


class ExecutionOrchestrator:
    """
    Runs block nodes and materializes their results on the canvas.
    """

    def __init__(self, registry: BlockRegistry, store: CanvasStore, runtime: SandboxedRuntime,
                 provider: Optional[CompletionProvider] = None, settings: Any = None,
                 run_log: Any = None):
        """
        Initialize the orchestrator.

        Args:
            registry: Block catalog used to resolve a node's block id
            store: Canvas store used for every graph mutation and write
            runtime: Sandbox that executes block logic
            provider: Completion provider bound into the ``complete`` capability
            settings: Optional SettingsStore; enables the ``save_prompt`` capability
            run_log: Optional connected DatabaseManager recording every run
        """
        self.registry = registry
        self.store = store
        self.runtime = runtime
        self.provider = provider
        self.settings = settings
        self.run_log = run_log

        self.output_width = config.get("canvas.output_width", 300)
        self.output_height = config.get("canvas.output_height", 200)
        self.block_width = config.get("canvas.block_width", 250)
        self.block_height = config.get("canvas.block_height", 60)

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._in_flight: Set[Tuple[str, str]] = set()

    # ------------------------------------------------------------------ #
    # Block runs
    # ------------------------------------------------------------------ #

    def run_block(self, graph: CanvasGraph, document_ref: DocumentRef, node_id: str) -> RunOutcome:
        """
        Run the block attached to a node.

        Args:
            graph: The in-memory graph of the document
            document_ref: Path of the canvas document
            node_id: Block node to run

        Returns:
            RunOutcome with status ``complete`` or ``error``

        Raises:
            NodeNotFound: The node is not in the graph
            NotABlock: The node has no block association
            BlockNotFound: The node's block id is not in the registry
            RunInProgress: The node is already processing
            PersistError: A status or output write failed
        """
        key = self._document_key(document_ref)
        started = time.time()

        with self._document_lock(key):
            node = self._require_block_node(graph, node_id)
            if node.execution.status == NodeStatus.PROCESSING or (key, node_id) in self._in_flight:
                raise RunInProgress(node_id)

            block = self.registry.get(node.execution.block_id)
            if block is None:
                raise BlockNotFound(node.execution.block_id)
            node_config = dict(node.execution.config)
            input_text = self.store.get_source_text(graph, node_id)

            previous = node.execution
            self._set_status(graph, node_id, NodeStatus.PROCESSING)
            try:
                self._persist(document_ref, graph)
            except PersistError:
                self.store.update_node(graph, node_id, {"execution": previous})
                raise
            logger.info(f"Running block {block.id} on node {node_id}")

            if not input_text.strip():
                error = NoInputText(node_id)
                return self._fail(graph, document_ref, node_id, block, "", "no_input", error, started)
            self._in_flight.add((key, node_id))

        try:
            prompt = None
            failure = None
            try:
                result = self.runtime.run(block, input_text, node_config, self._capabilities())
                if result.is_final:
                    output = result.text
                else:
                    prompt = result.text
                    output = self._complete("", prompt)
            except ProviderError as e:
                failure = ("provider", e)
            except ExecutionError as e:
                failure = ("execution", e)
            except Exception as e:
                failure = ("execution", ExecutionError(block.id, f"{type(e).__name__}: {e}"))

            # Other callers may have written the document while the lock was released
            with self._document_lock(key):
                self._refresh(graph, document_ref)
                if failure is not None:
                    error_kind, error = failure
                    return self._fail(graph, document_ref, node_id, block, input_text, error_kind, error,
                                      started, prompt=prompt)
                return self._succeed(graph, document_ref, node_id, block, input_text, prompt, output, started)
        finally:
            self._in_flight.discard((key, node_id))

    def reset_block(self, graph: CanvasGraph, document_ref: DocumentRef, node_id: str) -> None:
        """
        Move a block node back to ``idle`` and clear its error.

        A node left ``processing`` by a previous process can be reset here;
        a run still in flight in this process cannot.

        Raises:
            NodeNotFound: The node is not in the graph
            NotABlock: The node has no block association
            RunInProgress: A run for this node is in flight in this process
            PersistError: The write failed
        """
        key = self._document_key(document_ref)
        with self._document_lock(key):
            self._require_block_node(graph, node_id)
            if (key, node_id) in self._in_flight:
                raise RunInProgress(node_id)
            self._set_status(graph, node_id, NodeStatus.IDLE)
            self._persist(document_ref, graph)
        logger.info(f"Node {node_id} reset to idle")

    # ------------------------------------------------------------------ #
    # Block node editing
    # ------------------------------------------------------------------ #

    def insert_block(self, graph: CanvasGraph, document_ref: DocumentRef, block_id: str,
                     position: Optional[Mapping[str, float]] = None) -> str:
        """
        Add a new block instance to the canvas.

        Args:
            graph: The in-memory graph of the document
            document_ref: Path of the canvas document
            block_id: Registry id of the block
            position: Optional ``{"x", "y"}``; defaults to the insertion point

        Returns:
            Id of the new block node

        Raises:
            BlockNotFound: The block id is not in the registry
            PersistError: The write failed
        """
        block = self.registry.get(block_id)
        if block is None:
            raise BlockNotFound(block_id)

        key = self._document_key(document_ref)
        with self._document_lock(key):
            point = dict(position) if position else self.store.compute_insertion_point(graph)
            node_id = self.store.create_node(graph, {
                "kind": NodeKind.CONTENT,
                "text": f"📝 {block.name}",
                "x": point["x"],
                "y": point["y"],
                "width": self.block_width,
                "height": self.block_height,
                "execution": {
                    "blockType": block.id,
                    "status": NodeStatus.IDLE,
                    "config": block.default_config(),
                },
            })
            self._persist(document_ref, graph)

        logger.info(f"Inserted {block.name} block as node {node_id}")
        return node_id

    def configure_block(self, graph: CanvasGraph, document_ref: DocumentRef, node_id: str,
                        block_config: Mapping[str, Any]) -> None:
        """
        Replace a block node's configuration.

        Keys the block does not declare are stored but ignored when it runs.

        Raises:
            NodeNotFound: The node is not in the graph
            NotABlock: The node has no block association
            RunInProgress: The node is processing
            PersistError: The write failed
        """
        key = self._document_key(document_ref)
        with self._document_lock(key):
            node = self._require_block_node(graph, node_id)
            if node.execution.status == NodeStatus.PROCESSING or (key, node_id) in self._in_flight:
                raise RunInProgress(node_id)

            block = self.registry.get(node.execution.block_id)
            if block is not None:
                unknown = sorted(set(block_config) - set(block.setting_names))
                if unknown:
                    logger.debug(f"Block {block.id} does not declare settings: {', '.join(unknown)}")

            execution = node.execution.model_copy(update={"config": dict(block_config)})
            self.store.update_node(graph, node_id, {"execution": execution})
            self._persist(document_ref, graph)
        logger.info(f"Configuration updated for node {node_id}")

    # ------------------------------------------------------------------ #
    # Clarify
    # ------------------------------------------------------------------ #

    def clarify(self, graph: CanvasGraph, document_ref: DocumentRef, selected_text: str,
                question: str, source_node_id: Optional[str] = None) -> ClarifyResult:
        """
        Ask the provider a question about a piece of text and add the answer.

        The graph is only touched once the provider has answered, so a failure
        leaves it exactly as it was.

        Args:
            graph: The in-memory graph of the document
            document_ref: Path of the canvas document
            selected_text: The text the question is about
            question: The user's question
            source_node_id: Optional node the text came from; the answer is
                placed next to it and linked by an edge

        Returns:
            ClarifyResult with the answer and the new node id

        Raises:
            NodeNotFound: source_node_id is given but not in the graph
            ProviderError: The provider failed
            PersistError: The write failed
        """
        if source_node_id and self.store.get_node(graph, source_node_id) is None:
            raise NodeNotFound(source_node_id)

        prompt = CLARIFY_PROMPT_TEMPLATE.format(selected_text=selected_text, question=question)
        started = time.time()
        try:
            answer = self._complete("", prompt)
        except ProviderError as e:
            logger.error(f"Clarification failed: {e}")
            self._record(document_ref, CLARIFY_BLOCK_ID, selected_text, source_node_id, prompt,
                         success=False, error_kind="provider", error_message=str(e), started=started)
            raise

        key = self._document_key(document_ref)
        with self._document_lock(key):
            self._refresh(graph, document_ref)
            if source_node_id and self.store.get_node(graph, source_node_id) is None:
                raise NodeNotFound(source_node_id)
            point = self.store.compute_insertion_point(graph, source_node_id)
            answer_node_id = self.store.create_node(graph, {
                "kind": NodeKind.CONTENT,
                "text": f"{CLARIFY_HEADER}\n\n{answer}",
                "x": point["x"],
                "y": point["y"],
                "width": 350,
                "height": 250,
            })
            edge_id = None
            if source_node_id:
                edge_id = self.store.create_edge(graph, source_node_id, answer_node_id)
            self._persist(document_ref, graph)

        self._record(document_ref, CLARIFY_BLOCK_ID, selected_text, source_node_id, prompt,
                     response=answer, output_node_id=answer_node_id, started=started)
        logger.info(f"Clarification added as node {answer_node_id}")
        return ClarifyResult(text=answer, node_id=answer_node_id, edge_id=edge_id)

    # ------------------------------- Internal helpers -------------------------------- #

    def _succeed(self, graph: CanvasGraph, document_ref: DocumentRef, node_id: str,
                 block: BlockDefinition, input_text: str, prompt: Optional[str], output: str,
                 started: float) -> RunOutcome:
        if self.store.get_node(graph, node_id) is None:
            raise NodeNotFound(node_id)

        point = self.store.compute_insertion_point(graph, node_id)
        output_node_id = self.store.create_node(graph, {
            "kind": NodeKind.CONTENT,
            "text": output,
            "x": point["x"],
            "y": point["y"],
            "width": self.output_width,
            "height": self.output_height,
        })
        edge_id = self.store.create_edge(graph, node_id, output_node_id)
        self._set_status(graph, node_id, NodeStatus.COMPLETE)
        self._persist(document_ref, graph)

        logger.info(f"Block {block.id} on node {node_id} completed, output node {output_node_id}")
        self._record(document_ref, block.id, input_text, node_id, prompt, response=output,
                     output_node_id=output_node_id, started=started)
        return RunOutcome(node_id=node_id, status=NodeStatus.COMPLETE, output_node_id=output_node_id,
                          edge_id=edge_id, text=output)

    def _fail(self, graph: CanvasGraph, document_ref: DocumentRef, node_id: str,
              block: BlockDefinition, input_text: str, error_kind: str, error: LivingCanvasError,
              started: float, prompt: Optional[str] = None) -> RunOutcome:
        message = str(error)
        logger.error(f"Block {block.id} on node {node_id} failed ({error_kind}): {message}")

        if self.store.get_node(graph, node_id) is not None:
            self._set_status(graph, node_id, NodeStatus.ERROR, message)
            self._persist(document_ref, graph)

        self._record(document_ref, block.id, input_text, node_id, prompt, success=False,
                     error_kind=error_kind, error_message=message, started=started)
        return RunOutcome(node_id=node_id, status=NodeStatus.ERROR, error=message, error_kind=error_kind)

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        if self.provider is None:
            raise ProviderError("No completion provider configured")
        try:
            response = self.provider.complete(system_prompt, user_prompt)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e
        if not isinstance(response, str):
            raise ProviderError(f"Provider returned {type(response).__name__}, expected text")
        return response

    def _capabilities(self) -> Capabilities:
        save_prompt = self.settings.save_prompt if self.settings is not None else None
        return Capabilities(complete=self._complete, save_prompt=save_prompt)

    def _require_block_node(self, graph: CanvasGraph, node_id: str) -> CanvasNode:
        node = self.store.get_node(graph, node_id)
        if node is None:
            raise NodeNotFound(node_id)
        if not node.is_block:
            raise NotABlock(node_id)
        return node

    def _set_status(self, graph: CanvasGraph, node_id: str, status: NodeStatus,
                    error: Optional[str] = None) -> None:
        node = self.store.get_node(graph, node_id)
        execution = node.execution.model_copy(update={"status": status, "error": error})
        self.store.update_node(graph, node_id, {"execution": execution})
        logger.debug(f"Node {node_id} -> {status.value}")

    def _refresh(self, graph: CanvasGraph, document_ref: DocumentRef) -> None:
        """Replace the caller's graph contents with the document on disk, when it is readable."""
        if not Path(document_ref).exists():
            return
        current = self.store.read(document_ref)
        if current is None:
            return
        graph.nodes[:] = current.nodes
        graph.edges[:] = current.edges
        if graph.model_extra is not None:
            graph.model_extra.clear()
            graph.model_extra.update(current.model_extra or {})

    def _persist(self, document_ref: DocumentRef, graph: CanvasGraph) -> None:
        if not self.store.write(document_ref, graph):
            raise PersistError(document_ref)

    def _record(self, document_ref: DocumentRef, block_id: str, input_text: str,
                node_id: Optional[str], prompt: Optional[str], response: Optional[str] = None,
                success: bool = True, error_kind: Optional[str] = None,
                error_message: Optional[str] = None, output_node_id: Optional[str] = None,
                started: Optional[float] = None) -> None:
        if self.run_log is None:
            return
        elapsed = int((time.time() - started) * 1000) if started else None
        try:
            self.run_log.log_block_run(
                document_ref=str(document_ref),
                block_id=block_id,
                input_text=input_text,
                node_id=node_id,
                prompt=prompt,
                model_name=getattr(self.provider, "model", None),
                response=response,
                success=success,
                error_kind=error_kind,
                error_message=error_message,
                execution_time_ms=elapsed,
                output_node_id=output_node_id
            )
        except Exception as e:
            logger.warning(f"Failed to record run for {block_id}: {e}")

    def _document_key(self, document_ref: DocumentRef) -> str:
        return str(Path(document_ref).resolve())

    @contextmanager
    def _document_lock(self, key: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield

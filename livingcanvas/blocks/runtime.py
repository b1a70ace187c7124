"""
Sandboxed block runtime for Living Canvas.

Block logic comes from the block library and may be written by anyone, so it
is compiled with RestrictedPython and executed in a separate process against
a fresh, minimal globals dict on every call. The only host functionality it
can reach is the explicit set of capabilities passed in by the caller, served
to the child over a pipe. A block that overruns its time limit is terminated.
"""

import copy
import inspect
import logging
import marshal
import multiprocessing
import operator
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Optional, Set

from RestrictedPython import compile_restricted, limited_builtins, safe_builtins, utility_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from ..config import config
from ..errors import ExecutionError, ProviderError
from ..models import BlockDefinition

logger = logging.getLogger(__name__)
block_logger = logging.getLogger("livingcanvas.block")

CompleteFn = Callable[[str, str], str]

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
}


def _inplace_var(op: str, target: Any, value: Any) -> Any:
    handler = _INPLACE_OPERATORS.get(op)
    if handler is None:
        raise SyntaxError(f"operator {op} is not allowed in block logic")
    return handler(target, value)


def _sandbox_globals(module_name: str) -> Dict[str, Any]:
    builtins = dict(safe_builtins)
    builtins.update(limited_builtins)
    builtins.update(utility_builtins)
    return {
        "__builtins__": builtins,
        "__name__": module_name,
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplace_var,
        "_print_": PrintCollector,
        "_apply_": lambda func, *args, **kwargs: func(*args, **kwargs),
    }


def _child_capabilities(conn, block_id: str) -> SimpleNamespace:
    """Capability stubs living in the sandbox process; each call goes to the host."""

    def call(name: str, *args: str) -> Any:
        conn.send(("call", name, args))
        reply = conn.recv()
        if reply[0] == "ok":
            return reply[1]
        if reply[0] == "provider_error":
            raise ProviderError(reply[1], status_code=reply[2])
        raise ExecutionError(block_id, reply[1])

    def complete(system_prompt: Any, user_prompt: Any) -> str:
        return call("complete", str(system_prompt), str(user_prompt))

    def log(message: Any) -> None:
        conn.send(("log", str(message)))

    def save_prompt(name: Any, text: Any) -> None:
        call("save_prompt", str(name), str(text))

    return SimpleNamespace(complete=complete, log=log, save_prompt=save_prompt)


def _sandbox_main(conn, code_bytes: bytes, block_id: str, module_name: str,
                  input_text: str, block_config: Dict[str, Any]) -> None:
    """
    Entry point of the sandbox process.

    Reports exactly one terminal message: ``done``, ``failed`` or
    ``provider_error``.
    """
    try:
        code = marshal.loads(code_bytes)
        capabilities = _child_capabilities(conn, block_id)
        conn.send(("ready",))

        sandbox_globals = _sandbox_globals(module_name)
        exec(code, sandbox_globals)

        execute = sandbox_globals.get("execute")
        if not callable(execute):
            raise ExecutionError(block_id, "executor does not define execute()")

        try:
            arity = len(inspect.signature(execute).parameters)
        except (TypeError, ValueError):
            arity = 3
        if arity >= 3:
            result = execute(input_text, block_config, capabilities)
        else:
            result = execute(input_text, block_config)

        if not isinstance(result, str):
            raise ExecutionError(block_id, f"returned {type(result).__name__}, expected text")
        conn.send(("done", result))
    except ProviderError as e:
        conn.send(("provider_error", e.message, e.status_code))
    except ExecutionError as e:
        conn.send(("failed", e.cause))
    except Exception as e:
        conn.send(("failed", f"{type(e).__name__}: {e}"))
    finally:
        conn.close()


@dataclass
class TextResult:
    """
    What a block run produced.

    ``is_final`` is True when the block called the provider itself and
    ``text`` is already the answer; otherwise ``text`` is a prompt.
    """
    text: str
    is_final: bool = False
    provider_calls: int = 0


@dataclass
class Capabilities:
    """
    Host functions a block may use. Nothing else is reachable from block logic.
    """
    complete: CompleteFn
    save_prompt: Optional[Callable[[str, str], None]] = None


class SandboxedRuntime:
    """
    Runs a block's ``execute`` function under RestrictedPython in a child
    process with a time limit.

    The limit covers the block's own work. Time the host spends serving a
    ``complete`` or ``save_prompt`` call is not charged to the block.
    """

    def __init__(self, timeout: Optional[float] = None, max_source_bytes: Optional[int] = None,
                 max_output_chars: Optional[int] = None, start_method: Optional[str] = None):
        """
        Initialize the runtime.

        Args:
            timeout: Seconds one invocation may take (defaults to config value)
            max_source_bytes: Largest accepted executor.py
            max_output_chars: Longest accepted result string
            start_method: multiprocessing start method for sandbox processes
        """
        self.timeout = timeout if timeout is not None else config.runtime_timeout
        self.max_source_bytes = max_source_bytes or config.get("runtime.max_source_bytes", 65536)
        self.max_output_chars = max_output_chars or config.get("runtime.max_output_chars", 200000)
        self.startup_timeout = config.get("runtime.startup_timeout", 30.0)
        self._context = multiprocessing.get_context(
            start_method or config.get("runtime.start_method", "spawn")
        )
        self._processes: Set[Any] = set()
        self._processes_guard = threading.Lock()
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def shutdown(self) -> None:
        """Terminate any sandbox process still running and refuse further runs."""
        self._closed = True
        with self._processes_guard:
            processes = list(self._processes)
        for process in processes:
            self._stop(process)

    def run(self, block: BlockDefinition, input_text: str, config: Dict[str, Any],
            capabilities: Capabilities) -> TextResult:
        """
        Execute a block's transform logic.

        Args:
            block: The block whose executor.py should run
            input_text: Resolved upstream text
            config: The node's configuration; the block receives a copy
                restricted to its declared settings
            capabilities: Host functions the block may call

        Returns:
            TextResult holding either a prompt or a final answer

        Raises:
            ExecutionError: The logic could not be loaded, broke sandbox
                policy, raised, timed out or returned a non-string
            ProviderError: The logic called ``complete`` and the provider failed
            RuntimeError: The runtime has been shut down
        """
        if self._closed:
            raise RuntimeError("block runtime has been shut down")

        source = self._load_source(block)
        code = self._compile(block, source)
        block_config = copy.deepcopy(block.effective_config(config))

        parent_conn, child_conn = self._context.Pipe()
        process = self._context.Process(
            target=_sandbox_main,
            args=(child_conn, marshal.dumps(code), block.id,
                  f"block_{block.id.replace('/', '_').replace('-', '_')}",
                  input_text, block_config),
            name=f"block-{block.id}",
            daemon=True
        )
        with self._processes_guard:
            self._processes.add(process)
        try:
            process.start()
            child_conn.close()
            result, calls = self._supervise(block, process, parent_conn, capabilities)
        finally:
            parent_conn.close()
            self._stop(process)
            with self._processes_guard:
                self._processes.discard(process)

        if len(result) > self.max_output_chars:
            raise ExecutionError(block.id, f"returned {len(result)} characters, limit is {self.max_output_chars}")

        return TextResult(text=result, is_final=calls > 0, provider_calls=calls)

    # ------------------------------- Internal helpers -------------------------------- #

    def _load_source(self, block: BlockDefinition) -> str:
        path = Path(block.executor_path)
        try:
            if path.stat().st_size > self.max_source_bytes:
                raise ExecutionError(block.id, f"executor is larger than {self.max_source_bytes} bytes")
            return path.read_text(encoding='utf-8')
        except OSError as e:
            raise ExecutionError(block.id, f"failed to load executor: {e}") from e

    def _compile(self, block: BlockDefinition, source: str):
        try:
            return compile_restricted(source, filename=f"<block {block.id}>", mode="exec")
        except SyntaxError as e:
            raise ExecutionError(block.id, f"rejected by sandbox: {e}") from e

    def _supervise(self, block: BlockDefinition, process: Any, conn: Any,
                   capabilities: Capabilities):
        """
        Serve capability calls from the sandbox process until it reports a result.

        Returns:
            Tuple of the block's text and the number of ``complete`` calls
        """
        calls = 0
        deadline = None
        startup_deadline = time.monotonic() + self.startup_timeout

        while True:
            remaining = (deadline if deadline is not None else startup_deadline) - time.monotonic()
            if remaining <= 0 or not conn.poll(remaining):
                if deadline is None:
                    raise ExecutionError(block.id, f"sandbox did not start within {self.startup_timeout} seconds")
                logger.warning(f"Block {block.id} exceeded {self.timeout} seconds, terminating it")
                raise ExecutionError(block.id, f"timed out after {self.timeout} seconds")

            try:
                message = conn.recv()
            except EOFError:
                process.join(1.0)
                raise ExecutionError(block.id, f"sandbox exited unexpectedly (exit code {process.exitcode})")

            kind = message[0]
            if kind == "ready":
                deadline = time.monotonic() + self.timeout
            elif kind == "log":
                block_logger.info(f"[{block.id}] {message[1]}")
            elif kind == "call":
                name, args = message[1], message[2]
                if name == "complete":
                    calls += 1
                paused = time.monotonic()
                reply = self._serve_call(block, capabilities, name, args)
                try:
                    conn.send(reply)
                except OSError:
                    process.join(1.0)
                    raise ExecutionError(block.id, f"sandbox exited unexpectedly (exit code {process.exitcode})")
                if deadline is not None:
                    deadline += time.monotonic() - paused
            elif kind == "done":
                return message[1], calls
            elif kind == "provider_error":
                raise ProviderError(message[1], status_code=message[2])
            else:
                raise ExecutionError(block.id, message[1])

    def _serve_call(self, block: BlockDefinition, capabilities: Capabilities, name: str, args: tuple):
        try:
            if name == "complete":
                return ("ok", capabilities.complete(*args))
            if name == "save_prompt":
                if capabilities.save_prompt is None:
                    return ("failed", "saving prompts is not available")
                capabilities.save_prompt(*args)
                return ("ok", None)
            return ("failed", f"unknown capability {name}")
        except ProviderError as e:
            return ("provider_error", e.message, e.status_code)
        except ExecutionError as e:
            return ("failed", e.cause)
        except Exception as e:
            logger.error(f"Capability {name} failed for block {block.id}: {e}")
            return ("failed", f"{type(e).__name__}: {e}")

    def _stop(self, process: Any) -> None:
        if process.pid is None:
            return
        if process.is_alive():
            process.terminate()
            process.join(1.0)
            if process.is_alive():
                process.kill()
        process.join(1.0)

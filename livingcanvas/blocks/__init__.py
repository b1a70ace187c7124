"""Block catalog, built-in blocks and the sandboxed block runtime."""

from .builtin import BUILTIN_BLOCKS
from .registry import BlockRegistry
from .runtime import Capabilities, SandboxedRuntime, TextResult

__all__ = [
    "BUILTIN_BLOCKS",
    "BlockRegistry",
    "Capabilities",
    "SandboxedRuntime",
    "TextResult"
]

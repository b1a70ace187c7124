"""
Block Registry for Living Canvas.

This module discovers blocks in the block library directory, validates their
manifests and keeps an index of the loaded BlockDefinitions. The index is an
immutable snapshot: reload() builds a new one and swaps it in, so runs that
already hold a BlockDefinition are unaffected.
"""

import json
import logging
import threading
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from ..config import config
from ..errors import DiscoveryError
from ..models import BlockCategory, BlockDefinition
from .builtin import BUILTIN_BLOCKS

logger = logging.getLogger(__name__)

MANIFEST_FILENAMES = ("block.json", "block.yaml", "block.yml")
EXECUTOR_FILENAME = "executor.py"
REQUIRED_FIELDS = ("id", "name", "description", "author", "version")


class BlockRegistry:
    """
    Catalog of the blocks available to canvases.
    """

    def __init__(self, blocks_directory: Optional[Union[str, Path]] = None):
        """
        Initialize the block registry.

        Args:
            blocks_directory: Root of the block library (defaults to config value)
        """
        self.blocks_directory = Path(blocks_directory or config.blocks_directory)
        self._blocks: Mapping[str, BlockDefinition] = MappingProxyType({})
        self.diagnostics: List[DiscoveryError] = []
        self._scan_lock = threading.Lock()

    def initialize(self) -> "BlockRegistry":
        """Seed the built-in blocks on first run, then scan."""
        self.bootstrap()
        return self.scan()

    def bootstrap(self) -> bool:
        """
        Write the built-in blocks if the library directory does not exist yet.

        Returns:
            True if the built-in blocks were written, False if the library
            already existed and was left untouched
        """
        if self.blocks_directory.exists():
            return False

        logger.info(f"Blocks directory {self.blocks_directory} does not exist, creating with built-in blocks")
        for builtin in BUILTIN_BLOCKS:
            manifest = builtin["manifest"]
            block_dir = self.blocks_directory / manifest["id"]
            block_dir.mkdir(parents=True, exist_ok=True)
            with open(block_dir / "block.json", 'w', encoding='utf-8') as f:
                json.dump(manifest, f, indent=2)
            with open(block_dir / EXECUTOR_FILENAME, 'w', encoding='utf-8') as f:
                f.write(builtin["executor"].lstrip())
        return True

    def scan(self) -> "BlockRegistry":
        """
        Discover every block below the library directory and swap in the result.

        Problems with individual directories are recorded in ``diagnostics``
        and logged; they never abort the scan.

        Returns:
            This registry, for chaining
        """
        with self._scan_lock:
            blocks: Dict[str, BlockDefinition] = {}
            diagnostics: List[DiscoveryError] = []

            if not self.blocks_directory.is_dir():
                logger.warning(f"Blocks directory not found: {self.blocks_directory}")
            else:
                self._scan_directory(self.blocks_directory, blocks, diagnostics)

            self._blocks = MappingProxyType(blocks)
            self.diagnostics = diagnostics
            logger.info(f"Loaded {len(blocks)} blocks ({len(diagnostics)} diagnostics)")
            return self

    def reload(self) -> "BlockRegistry":
        """Discard the current catalog and scan again."""
        logger.info("Reloading blocks")
        return self.scan()

    def get(self, block_id: str) -> Optional[BlockDefinition]:
        """
        Get a block definition by id.

        Args:
            block_id: The hierarchical block id, e.g. "core/summarizer"

        Returns:
            The block definition, or None if not found
        """
        return self._blocks.get(block_id)

    def list(self, category: Optional[Union[str, BlockCategory]] = None) -> List[BlockDefinition]:
        """
        List loaded blocks, optionally filtered by category.

        The order carries no meaning; sort by id or name for display.
        """
        blocks = list(self._blocks.values())
        if category is None:
            return blocks
        category = BlockCategory(category)
        return [block for block in blocks if block.category == category]

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    # ------------------------------- Internal helpers -------------------------------- #

    def _scan_directory(self, directory: Path, blocks: Dict[str, BlockDefinition],
                        diagnostics: List[DiscoveryError]) -> None:
        manifest_path = self._find_manifest(directory)
        if manifest_path is not None:
            self._load_block(directory, manifest_path, blocks, diagnostics)
            return  # Don't scan subdirectories of a block

        subdirectories = sorted(
            child for child in directory.iterdir()
            if child.is_dir() and not child.name.startswith('.')
        )
        if not subdirectories:
            if directory == self.blocks_directory:
                return
            if directory.parent == self.blocks_directory and not any(directory.iterdir()):
                logger.debug(f"Category directory {directory} has no blocks yet")
                return
            self._diagnose(diagnostics, directory, "missing block manifest")
            return

        for subdirectory in subdirectories:
            self._scan_directory(subdirectory, blocks, diagnostics)

    def _load_block(self, directory: Path, manifest_path: Path, blocks: Dict[str, BlockDefinition],
                    diagnostics: List[DiscoveryError]) -> None:
        executor_path = directory / EXECUTOR_FILENAME
        if not executor_path.is_file():
            self._diagnose(diagnostics, directory, f"missing {EXECUTOR_FILENAME}")
            return

        try:
            manifest = self._read_manifest(manifest_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            self._diagnose(diagnostics, directory, f"unreadable manifest: {e}")
            return

        missing = [
            field for field in REQUIRED_FIELDS
            if not isinstance(manifest.get(field), str) or not manifest[field].strip()
        ]
        if missing:
            self._diagnose(diagnostics, directory, f"missing required field(s): {', '.join(missing)}")
            return

        try:
            definition = BlockDefinition(
                id=manifest["id"],
                name=manifest["name"],
                description=manifest["description"],
                author=manifest["author"],
                version=manifest["version"],
                category=manifest.get("category") or self._category_from_path(directory),
                settings=manifest.get("settings") or [],
                executor_path=str(executor_path)
            )
        except ValidationError as e:
            self._diagnose(diagnostics, directory, f"invalid manifest: {e}")
            return

        if definition.id in blocks:
            # Later directories override earlier ones with the same id.
            self._diagnose(
                diagnostics, directory,
                f"duplicate block id '{definition.id}' overrides {blocks[definition.id].executor_path}"
            )
        blocks[definition.id] = definition
        logger.debug(f"Loaded block: {definition.id} - {definition.name}")

    def _read_manifest(self, manifest_path: Path) -> Dict[str, Any]:
        with open(manifest_path, 'r', encoding='utf-8') as f:
            if manifest_path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError("manifest must be a mapping")
        return data

    def _find_manifest(self, directory: Path) -> Optional[Path]:
        for filename in MANIFEST_FILENAMES:
            candidate = directory / filename
            if candidate.is_file():
                return candidate
        return None

    def _category_from_path(self, directory: Path) -> BlockCategory:
        relative = directory.relative_to(self.blocks_directory)
        first = relative.parts[0] if relative.parts else ""
        if first in (BlockCategory.CORE.value, BlockCategory.COMMUNITY.value):
            return BlockCategory(first)
        return BlockCategory.COMMUNITY

    def _diagnose(self, diagnostics: List[DiscoveryError], directory: Path, reason: str) -> None:
        diagnostic = DiscoveryError(str(directory), reason)
        diagnostics.append(diagnostic)
        logger.warning(f"Block discovery problem at {diagnostic}")

"""
Unit tests for core Living Canvas components.

Tests non-AI components like configuration management, the error taxonomy
and the block and canvas data models.
"""

import os
import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from livingcanvas.config import ConfigManager
from livingcanvas.errors import (
    BlockNotFound,
    ExecutionError,
    LivingCanvasError,
    NodeNotFound,
    NotABlock,
    ProviderError,
)
from livingcanvas.models import (
    BlockCategory,
    BlockDefinition,
    CanvasGraph,
    CanvasNode,
    NodeKind,
    NodeStatus,
    SettingSpec,
    SettingType,
)


class TestConfigManager(unittest.TestCase):
    """Test configuration management functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "test_config.yaml"

    def tearDown(self):
        """Clean up test fixtures."""
        if self.config_path.exists():
            self.config_path.unlink()
        os.rmdir(self.temp_dir)

    def test_config_creation_with_defaults(self):
        """Test config manager falls back to defaults when file missing."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.ollama_host, "http://localhost:11434")
        self.assertEqual(config.model_name, "gemma3")
        self.assertEqual(config.provider_name, "ollama")
        self.assertEqual(config.blocks_directory, "blocks")
        self.assertEqual(config.runtime_timeout, 10.0)
        self.assertEqual(config.node_gap, 300)

    def test_config_loading_from_file(self):
        """Test loading configuration from YAML file."""
        test_config = """
ai:
  ollama_host: "http://test:11434"
  model: "test-model"
  timeout: 30.0

paths:
  blocks_dir: "test-blocks"

runtime:
  timeout: 2.5
"""
        with open(self.config_path, 'w') as f:
            f.write(test_config)

        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.ollama_host, "http://test:11434")
        self.assertEqual(config.model_name, "test-model")
        self.assertEqual(config.ai_timeout, 30.0)
        self.assertEqual(config.blocks_directory, "test-blocks")
        self.assertEqual(config.runtime_timeout, 2.5)
        # Keys absent from the file fall back to property defaults
        self.assertEqual(config.node_gap, 300)

    def test_dot_notation_access(self):
        """Test accessing config values with dot notation."""
        config = ConfigManager(str(self.config_path))  # Uses defaults

        self.assertEqual(config.get("ai.model"), "gemma3")
        self.assertEqual(config.get("canvas.output_width"), 300)
        self.assertEqual(config.get("nonexistent.key", "default"), "default")
        self.assertIn("max_source_bytes", config.get_section("runtime"))

    def test_config_reload(self):
        """Test configuration reloading."""
        with open(self.config_path, 'w') as f:
            f.write("ai:\n  model: 'model1'")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.model_name, "model1")

        with open(self.config_path, 'w') as f:
            f.write("ai:\n  model: 'model2'")

        config.reload()
        self.assertEqual(config.model_name, "model2")

    def test_invalid_yaml_falls_back_to_defaults(self):
        """Test a broken file is not fatal."""
        with open(self.config_path, 'w') as f:
            f.write("ai: [unclosed")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.model_name, "gemma3")


class TestErrors(unittest.TestCase):
    """Test the error taxonomy."""

    def test_all_errors_share_a_base(self):
        for error in (NodeNotFound("n"), NotABlock("n"), BlockNotFound("b"),
                      ExecutionError("b", "boom"), ProviderError("nope")):
            self.assertIsInstance(error, LivingCanvasError)

    def test_node_not_found_is_not_a_block(self):
        """A missing node cannot be run, so it is reported as NotABlock too."""
        error = NodeNotFound("node_9")
        self.assertIsInstance(error, NotABlock)
        self.assertEqual(error.node_id, "node_9")
        self.assertEqual(str(error), "Node 'node_9' not found")

    def test_block_not_found_message(self):
        error = BlockNotFound("core/missing")
        self.assertIsInstance(error, KeyError)
        self.assertEqual(str(error), "Block type 'core/missing' not found")

    def test_provider_error_keeps_status_code(self):
        error = ProviderError("Unauthorized", status_code=401)
        self.assertEqual(error.status_code, 401)
        self.assertEqual(error.message, "Unauthorized")
        self.assertIn("401", str(error))

    def test_execution_error_keeps_block_and_cause(self):
        error = ExecutionError("core/summarizer", "ZeroDivisionError: division by zero")
        self.assertEqual(error.block_id, "core/summarizer")
        self.assertIn("division by zero", str(error))


class TestBlockModels(unittest.TestCase):
    """Test block manifest validation."""

    def make_block(self, **overrides):
        fields = {
            "id": "core/echo",
            "name": "Echo",
            "description": "Echoes its input",
            "author": "Tests",
            "version": "1.0.0",
            "executor_path": "/tmp/executor.py",
        }
        fields.update(overrides)
        return BlockDefinition(**fields)

    def test_block_definition_defaults(self):
        block = self.make_block()

        self.assertEqual(block.category, BlockCategory.COMMUNITY)
        self.assertEqual(block.settings, ())
        self.assertEqual(block.default_config(), {})

    def test_required_fields_must_not_be_blank(self):
        with self.assertRaises(ValidationError):
            self.make_block(author="   ")

    def test_block_definition_is_immutable(self):
        block = self.make_block()
        with self.assertRaises(ValidationError):
            block.name = "Changed"

    def test_duplicate_setting_names_rejected(self):
        with self.assertRaises(ValidationError):
            self.make_block(settings=[
                {"name": "tone", "type": "text", "default": "a"},
                {"name": "tone", "type": "text", "default": "b"},
            ])

    def test_dropdown_requires_valid_default(self):
        with self.assertRaises(ValidationError):
            SettingSpec(name="tone", type=SettingType.ENUMERATED_CHOICE,
                        default="loud", options={"calm": "Calm"})
        with self.assertRaises(ValidationError):
            SettingSpec(name="tone", type=SettingType.ENUMERATED_CHOICE)

        spec = SettingSpec(name="tone", type="dropdown", default="calm", options={"calm": "Calm"})
        self.assertEqual(spec.type, SettingType.ENUMERATED_CHOICE)

    def test_default_must_match_type(self):
        with self.assertRaises(ValidationError):
            SettingSpec(name="count", type="number", default="five")
        with self.assertRaises(ValidationError):
            SettingSpec(name="count", type="number", default=True)
        with self.assertRaises(ValidationError):
            SettingSpec(name="flag", type="boolean", default="yes")

        self.assertEqual(SettingSpec(name="count", type="number", default=2.5).default, 2.5)

    def test_effective_config_drops_undeclared_keys(self):
        block = self.make_block(settings=[
            {"name": "tone", "type": "text", "default": "calm"},
            {"name": "length", "type": "number", "default": 100},
        ])

        effective = block.effective_config({"length": 50, "unknown": "ignored"})

        self.assertEqual(effective, {"tone": "calm", "length": 50})
        self.assertEqual(block.setting_names, ("tone", "length"))
        self.assertEqual(block.get_setting("length").default, 100)
        self.assertIsNone(block.get_setting("missing"))


class TestCanvasModels(unittest.TestCase):
    """Test canvas node, edge and graph models."""

    def test_node_reads_canvas_keys(self):
        node = CanvasNode.model_validate({
            "id": "n1",
            "type": "text",
            "text": "hello",
            "x": 10, "y": 20, "width": 250, "height": 60,
            "livingCanvas": {"blockType": "core/summarizer", "status": "idle", "config": {}},
            "color": "4"
        })

        self.assertEqual(node.kind, NodeKind.CONTENT)
        self.assertTrue(node.is_block)
        self.assertEqual(node.execution.block_id, "core/summarizer")
        self.assertEqual(node.execution.status, NodeStatus.IDLE)

        dumped = node.model_dump(mode="json", by_alias=True, exclude_none=True)
        self.assertEqual(dumped["color"], "4")
        self.assertEqual(dumped["livingCanvas"]["blockType"], "core/summarizer")
        self.assertEqual(dumped["type"], "text")

    def test_plain_node_is_not_a_block(self):
        node = CanvasNode(id="n1", kind=NodeKind.REFERENCE)
        self.assertFalse(node.is_block)

    def test_integrity_problems(self):
        graph = CanvasGraph.model_validate({
            "nodes": [{"id": "a"}, {"id": "a"}],
            "edges": [{"id": "e1", "fromNode": "a", "toNode": "missing"}]
        })

        problems = graph.integrity_problems()

        self.assertIn("duplicate node ids", problems)
        self.assertIn("edge e1 references a missing node", problems)


if __name__ == '__main__':
    unittest.main()

"""
Unit tests for the settings store and the DuckDB run history.
"""

import json
import shutil
import tempfile
import threading
import unittest
from pathlib import Path

from livingcanvas.database import DatabaseManager
from livingcanvas.settings import SettingsStore


class TestSettingsStore(unittest.TestCase):
    """Test the JSON key-value settings store."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.settings_path = Path(self.temp_dir) / "settings.json"

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_missing_file_is_empty(self):
        settings = SettingsStore(self.settings_path)

        self.assertEqual(settings.all(), {})
        self.assertEqual(settings.get("defaultModel", "gemma3"), "gemma3")

    def test_values_persist(self):
        settings = SettingsStore(self.settings_path)
        settings.set("defaultModel", "gpt-4o")
        settings.set("openaiApiKey", "sk-test")

        reloaded = SettingsStore(self.settings_path)

        self.assertEqual(reloaded.get("defaultModel"), "gpt-4o")
        self.assertEqual(json.loads(self.settings_path.read_text())["openaiApiKey"], "sk-test")

    def test_delete(self):
        settings = SettingsStore(self.settings_path)
        settings.set("debug", True)

        self.assertTrue(settings.delete("debug"))
        self.assertFalse(settings.delete("debug"))
        self.assertIsNone(SettingsStore(self.settings_path).get("debug"))

    def test_broken_file_is_empty(self):
        self.settings_path.write_text("{not json")

        with self.assertLogs("livingcanvas.settings", level="ERROR"):
            settings = SettingsStore(self.settings_path)

        self.assertEqual(settings.all(), {})

    def test_saved_prompts(self):
        settings = SettingsStore(self.settings_path)
        settings.save_prompt("eli5", "Explain like I'm five: {{input}}")
        settings.save_prompt("eli5", "Explain simply: {{input}}")
        settings.save_prompt("haiku", "Write a haiku about {{input}}")

        prompts = SettingsStore(self.settings_path).get_saved_prompts()

        self.assertEqual(prompts, {
            "eli5": "Explain simply: {{input}}",
            "haiku": "Write a haiku about {{input}}"
        })


class TestDatabaseManager(unittest.TestCase):
    """Test the run history ledger."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = str(Path(self.temp_dir) / "runs.db")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_requires_connection(self):
        db = DatabaseManager(self.db_path)

        with self.assertRaises(RuntimeError):
            db.initialize_database()

    def test_log_and_query_runs(self):
        with DatabaseManager(self.db_path) as db:
            db.initialize_database()
            first = db.log_block_run(
                document_ref="study.canvas",
                block_id="core/summarizer",
                input_text="Hello world",
                node_id="node_1",
                prompt="Summarize: Hello world",
                model_name="gemma3",
                response="A greeting.",
                execution_time_ms=120,
                output_node_id="node_3"
            )
            second = db.log_block_run(
                document_ref="study.canvas",
                block_id="core/grader",
                input_text="Essay",
                node_id="node_2",
                success=False,
                error_kind="provider",
                error_message="401 Unauthorized"
            )

            self.assertNotEqual(first, second)

            runs = db.get_block_runs()
            self.assertEqual([run["run_id"] for run in runs], [second, first])

            failed = db.get_block_runs(block_id="core/grader")
            self.assertEqual(len(failed), 1)
            self.assertFalse(failed[0]["success"])
            self.assertEqual(failed[0]["error_kind"], "provider")

            self.assertEqual(len(db.get_block_runs(success_only=True)), 1)
            self.assertEqual(len(db.get_block_runs(node_id="node_1", document_ref="study.canvas")), 1)
            self.assertEqual(len(db.get_block_runs(limit=1)), 1)

    def test_reproduce_block_run(self):
        with DatabaseManager(self.db_path) as db:
            db.initialize_database()
            run_id = db.log_block_run("study.canvas", "core/translator", "Hello",
                                      prompt="Translate to French: Hello", response="Bonjour")

            run = db.reproduce_block_run(run_id)

            self.assertEqual(run["prompt"], "Translate to French: Hello")
            self.assertEqual(run["response"], "Bonjour")
            self.assertIsNotNone(run["started_at"])
            self.assertIsNone(db.reproduce_block_run(run_id + 100))

    def test_runs_logged_from_several_threads(self):
        with DatabaseManager(self.db_path) as db:
            db.initialize_database()
            run_ids = []

            def log_runs(document):
                for index in range(10):
                    run_ids.append(db.log_block_run(document, "core/summarizer", f"text {index}"))

            workers = [threading.Thread(target=log_runs, args=(f"doc{n}.canvas",)) for n in range(4)]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join(10)

            self.assertEqual(len(set(run_ids)), 40)
            self.assertEqual(len(db.get_block_runs()), 40)

    def test_history_survives_reconnect(self):
        with DatabaseManager(self.db_path) as db:
            db.initialize_database()
            db.log_block_run("study.canvas", "core/quizzer", "Cells")

        with DatabaseManager(self.db_path) as db:
            db.initialize_database()
            self.assertEqual(len(db.get_block_runs()), 1)


if __name__ == '__main__':
    unittest.main()

import os
import random
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from filemaps.errors import ScanCancelled
from filemaps.map_store import MapStore
from filemaps.models import MapInfo, Resource
from filemaps.services.scanner import merge_scan, scan, scan_into_store

PATTERNS = ["*.log", "!important.log", "build/", "node_modules/"]


class DirectoryScannerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self._create_filesystem_fixture()

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _create_filesystem_fixture(self) -> None:
        (self.root / "src").mkdir(parents=True, exist_ok=True)
        (self.root / "build").mkdir(parents=True, exist_ok=True)
        (self.root / "node_modules" / "pkg").mkdir(parents=True, exist_ok=True)

        (self.root / "a.go").write_text("package a\n", encoding="utf-8")
        (self.root / "b.log").write_text("log\n", encoding="utf-8")
        (self.root / "src" / "main.go").write_text("package main\n", encoding="utf-8")
        (self.root / "src" / "debug.log").write_text("debug\n", encoding="utf-8")
        (self.root / "src" / "important.log").write_text("keep\n", encoding="utf-8")
        (self.root / "build" / "out.txt").write_text("artifact\n", encoding="utf-8")
        (self.root / "node_modules" / "pkg" / "index.js").write_text("module.exports={};\n", encoding="utf-8")

    def _relative(self, paths: list[str]) -> set[str]:
        return {os.path.relpath(path, self.root).replace(os.sep, "/") for path in paths}

    def test_scan_applies_patterns_and_prunes_directories(self) -> None:
        found = scan(self.root, self.root, PATTERNS)

        self.assertEqual(self._relative(found), {"a.go", "src/main.go", "src/important.log"})
        self.assertTrue(all(os.path.isabs(path) for path in found))

    def test_scan_without_patterns_returns_every_file(self) -> None:
        found = scan(self.root, self.root, [])

        self.assertEqual(len(found), 7)

    def test_paths_are_matched_relative_to_scan_base(self) -> None:
        found = scan(self.root / "src", self.root, ["src/main.go"])

        self.assertEqual(self._relative(found), {"src/debug.log", "src/important.log"})

    def test_unreadable_directory_is_skipped(self) -> None:
        real_scandir = os.scandir

        def flaky_scandir(path):
            if str(path).endswith("src"):
                raise PermissionError("permission denied")
            return real_scandir(path)

        with patch("filemaps.services.scanner.os.scandir", side_effect=flaky_scandir):
            with self.assertLogs("filemaps.scanner", level="ERROR") as logs:
                found = scan(self.root, self.root, PATTERNS)

        self.assertEqual(self._relative(found), {"a.go"})
        self.assertIn("permission denied", "\n".join(logs.output))

    def test_cancelled_scan_raises(self) -> None:
        cancel = threading.Event()
        cancel.set()

        with self.assertRaises(ScanCancelled):
            scan(self.root, self.root, PATTERNS, cancel=cancel)


class ScanMergeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        (self.root / "pkg").mkdir()
        (self.root / "pkg" / "one.py").write_text("1\n", encoding="utf-8")
        (self.root / "pkg" / "two.py").write_text("2\n", encoding="utf-8")
        (self.root / "notes.md").write_text("# notes\n", encoding="utf-8")
        (self.root / "trace.log").write_text("x\n", encoding="utf-8")
        self.store = MapStore.create(
            MapInfo(id=1, title="Scan", baseDir=str(self.root), fileName="scan.filemap")
        )

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_merge_is_idempotent(self) -> None:
        first = scan_into_store(self.store, ["*.log"], rng=random.Random(3))
        positions = {r.path: r.pos for r in self.store.resources()}

        second = scan_into_store(self.store, ["*.log"], rng=random.Random(4))

        self.assertEqual(first, [1, 2, 3])
        self.assertEqual(second, [])
        self.assertEqual({r.path: r.pos for r in self.store.resources()}, positions)
        self.assertEqual(set(positions), {"notes.md", "pkg/one.py", "pkg/two.py"})

    def test_known_paths_keep_their_position(self) -> None:
        existing = self.store.add_resource(Resource(path="notes.md"))

        added = merge_scan(self.store, [str(self.root / "notes.md"), str(self.root / "pkg" / "one.py")])

        self.assertEqual(len(added), 1)
        self.assertEqual(self.store.get_resource(existing).pos.x, 0.0)
        self.assertEqual(self.store.get_resource(added[0]).path, "pkg/one.py")

    def test_new_resources_are_scattered_within_spread(self) -> None:
        added = merge_scan(
            self.store,
            [str(self.root / "pkg" / "one.py"), str(self.root / "pkg" / "two.py")],
            spread=100.0,
            rng=random.Random(1),
        )

        for resource_id in added:
            pos = self.store.get_resource(resource_id).pos
            self.assertLessEqual(abs(pos.x), 50.0)
            self.assertLessEqual(abs(pos.y), 50.0)
            self.assertEqual(pos.z, 0.0)

    def test_last_scan_patterns_replace_stored_ones(self) -> None:
        scan_into_store(self.store, ["*.log"])
        scan_into_store(self.store, ["*.md"])

        self.assertEqual(self.store.exclude_patterns, ["*.md"])
        self.assertIsNotNone(self.store.get_resource_by_path("trace.log"))


if __name__ == "__main__":
    unittest.main()

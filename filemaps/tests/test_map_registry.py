import json
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from filemaps import codec
from filemaps.errors import DocumentUnreadable, MapNotFound, UnsupportedSchemaVersion
from filemaps.map_registry import MapRegistry
from filemaps.models import MapDocument, MapInfo, Resource


def _ts(day: int) -> datetime:
    return datetime(2026, 1, day, 12, 0, tzinfo=timezone.utc)


class MapRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.registry = MapRegistry(self.root / "config" / "maps.json")

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _info(self, title: str, file_name: str | None = None, **extra) -> MapInfo:
        return MapInfo(title=title, baseDir=str(self.root), fileName=file_name or f"{title.lower()}.filemap", **extra)

    def test_end_to_end_scenario(self) -> None:
        project_dir = self.root / "p"
        project_dir.mkdir()

        map_id, store = self.registry.add_map(MapInfo(title="Proj", baseDir=str(project_dir), fileName="p.filemap"))
        self.assertEqual(map_id, 1)
        self.assertEqual(store.add_resource(Resource(type="file", path="a.go")), 1)
        self.assertEqual(store.add_resource(Resource(type="file", path="b.go")), 2)
        self.assertTrue(store.delete_resource(1))
        store.flush()

        store.invalidate()
        store.ensure_loaded()

        resources = store.resources()
        self.assertEqual([(r.id, r.path) for r in resources], [(2, "b.go")])

    def test_ids_are_not_reused_after_delete(self) -> None:
        ids = [self.registry.add_map(self._info(f"M{i}"))[0] for i in range(3)]
        self.assertEqual(ids, [1, 2, 3])

        self.assertTrue(self.registry.delete_map(3))
        self.assertEqual(self.registry.add_map(self._info("M4"))[0], 4)

        self.assertTrue(self.registry.delete_map(2))
        self.assertEqual(self.registry.add_map(self._info("M5"))[0], 5)

    def test_get_store_caches_and_reports_missing(self) -> None:
        map_id, _ = self.registry.add_map(self._info("Cached"))
        self.registry.write()

        fresh = MapRegistry(self.registry.storage_path)
        fresh.read()
        store = fresh.get_store(map_id)

        self.assertIsNotNone(store)
        self.assertFalse(store.is_loaded)
        self.assertIs(fresh.get_store(map_id), store)
        self.assertIsNone(fresh.get_store(999))
        with self.assertRaises(MapNotFound) as ctx:
            fresh.require_store(999)
        self.assertEqual(ctx.exception.map_id, 999)

    def test_delete_map_keeps_document_file(self) -> None:
        map_id, store = self.registry.add_map(self._info("Doomed"))
        store.flush()

        self.assertTrue(self.registry.delete_map(map_id))
        self.assertFalse(self.registry.delete_map(map_id))
        self.assertIsNone(self.registry.get_store(map_id))
        self.assertTrue(store.file_path.exists())

    def test_list_maps_orders_by_last_opened(self) -> None:
        self.registry.add_map(self._info("Middle", lastOpened=_ts(2)))
        self.registry.add_map(self._info("Newest", lastOpened=_ts(3)))
        self.registry.add_map(self._info("Oldest", lastOpened=_ts(1)))

        self.assertEqual([m.title for m in self.registry.list_maps()], ["Oldest", "Middle", "Newest"])
        self.assertEqual(
            [m.title for m in self.registry.list_maps(descending=True)],
            ["Newest", "Middle", "Oldest"],
        )

    def test_import_map_reads_title_and_is_idempotent(self) -> None:
        document = MapDocument(titleCopy="Shared", resources=[Resource(id=7, path="main.go")])
        target = self.root / "shared.filemap"
        target.write_text(codec.encode_document(document), encoding="utf-8")

        map_id, store = self.registry.import_map(target)
        again_id, again_store = self.registry.import_map(str(target))

        self.assertEqual(map_id, 1)
        self.assertEqual(again_id, map_id)
        self.assertIs(again_store, store)
        self.assertEqual(store.title, "Shared")
        self.assertTrue(store.is_loaded)
        self.assertEqual(store.get_resource(7).path, "main.go")
        self.assertEqual(len(self.registry.list_maps()), 1)
        self.assertEqual(self.registry.get_info(map_id).fileName, "shared.filemap")

    def test_import_matches_map_added_with_trailing_slash(self) -> None:
        project_dir = self.root / "p"
        project_dir.mkdir()
        map_id, store = self.registry.add_map(
            MapInfo(title="Proj", baseDir=str(project_dir) + os.sep, fileName="p.filemap")
        )
        store.flush()

        imported_id, imported_store = self.registry.import_map(project_dir / "p.filemap")

        self.assertEqual(imported_id, map_id)
        self.assertIs(imported_store, store)
        self.assertEqual(len(self.registry.list_maps()), 1)
        self.assertEqual(self.registry.get_info(map_id).baseDir, str(project_dir))

    def test_import_unreadable_document_fails_without_entry(self) -> None:
        target = self.root / "broken.filemap"
        target.write_text("{broken", encoding="utf-8")

        with self.assertRaises(DocumentUnreadable):
            self.registry.import_map(target)
        with self.assertRaises(DocumentUnreadable):
            self.registry.import_map(self.root / "absent.filemap")

        self.assertEqual(self.registry.list_maps(), [])

    def test_write_and_read_round_trip(self) -> None:
        self.registry.add_map(self._info("One", lastOpened=_ts(1)))
        self.registry.add_map(self._info("Two", lastOpened=_ts(2)))
        self.registry.write()

        payload = json.loads(self.registry.storage_path.read_text(encoding="utf-8"))
        self.assertEqual(payload["schemaVersion"], codec.REGISTRY_VERSION)
        self.assertEqual({m["title"] for m in payload["maps"]}, {"One", "Two"})

        fresh = MapRegistry(self.registry.storage_path)
        fresh.read()
        self.assertEqual(fresh.list_maps(), self.registry.list_maps())
        self.assertEqual(fresh.add_map(self._info("Three"))[0], 3)

    def test_read_missing_registry_creates_file(self) -> None:
        self.registry.read()

        self.assertTrue(self.registry.storage_path.exists())
        self.assertEqual(self.registry.list_maps(), [])

    def test_read_legacy_registry(self) -> None:
        self.registry.storage_path.parent.mkdir(parents=True)
        self.registry.storage_path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "maps": [
                        {"id": 4, "title": "Legacy", "base": "/srv/maps", "file": "l.json", "opened": "2017-03-04T05:06:07Z"}
                    ],
                }
            ),
            encoding="utf-8",
        )

        self.registry.read()

        info = self.registry.get_info(4)
        self.assertEqual((info.title, info.baseDir, info.fileName), ("Legacy", "/srv/maps", "l.json"))

    def test_entries_without_utc_offset_sort_with_new_maps(self) -> None:
        self.registry.storage_path.parent.mkdir(parents=True)
        self.registry.storage_path.write_text(
            json.dumps(
                {
                    "schemaVersion": 2,
                    "maps": [
                        {"id": 1, "title": "Naive", "baseDir": "/srv", "fileName": "n.filemap",
                         "lastOpened": "2024-01-01T00:00:00"}
                    ],
                }
            ),
            encoding="utf-8",
        )
        self.registry.read()

        self.registry.add_map(self._info("Fresh"))

        self.assertEqual([m.title for m in self.registry.list_maps()], ["Naive", "Fresh"])
        self.assertEqual(self.registry.get_info(1).lastOpened, datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_read_unknown_registry_version_fails(self) -> None:
        self.registry.storage_path.parent.mkdir(parents=True)
        self.registry.storage_path.write_text('{"schemaVersion": 12, "maps": []}', encoding="utf-8")

        with self.assertRaises(UnsupportedSchemaVersion):
            self.registry.read()

    def test_rename_is_visible_in_registry(self) -> None:
        map_id, store = self.registry.add_map(self._info("Before"))

        store.set_title("After")

        self.assertEqual(self.registry.get_info(map_id).title, "After")

    def test_flush_all_writes_dirty_stores(self) -> None:
        _, store = self.registry.add_map(self._info("Dirty"))
        store.add_resource(Resource(path="a.txt"))

        self.registry.flush_all()

        self.assertFalse(store.is_dirty)
        self.assertTrue(store.file_path.exists())
        self.assertTrue(self.registry.storage_path.exists())


if __name__ == "__main__":
    unittest.main()

import unittest

from app.errors import NotFoundError, ValidationError
from app.pipeline.projects import PROJECTS_KEY, SCHEMA_VERSION, ProjectRegistry, migrate_document
from app.storage import MemoryStore


class ProjectMigrationTests(unittest.TestCase):
    def test_v1_tag_becomes_tags(self):
        doc = {"projects": [{"id": "1", "name": "A", "tag": "defi"}, {"id": "2", "name": "B"}], "customTags": ["defi"]}
        out, changed = migrate_document(doc)
        self.assertTrue(changed)
        self.assertEqual(out["schemaVersion"], SCHEMA_VERSION)
        self.assertEqual(out["projects"][0]["tags"], ["defi"])
        self.assertNotIn("tag", out["projects"][0])
        self.assertEqual(out["projects"][1]["tags"], [])

    def test_current_version_untouched(self):
        doc = {"schemaVersion": 2, "projects": [{"id": "1", "tags": ["x"]}], "customTags": []}
        out, changed = migrate_document(doc)
        self.assertFalse(changed)
        self.assertEqual(out, doc)

    def test_registry_persists_migration_once(self):
        store = MemoryStore({PROJECTS_KEY: {"projects": [{"id": "1", "name": "A", "tag": "nft"}]}})
        registry = ProjectRegistry(store)
        self.assertEqual(registry.projects()[0]["tags"], ["nft"])
        self.assertEqual(store.get(PROJECTS_KEY)["schemaVersion"], SCHEMA_VERSION)


class ProjectRegistryTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryStore()
        self.registry = ProjectRegistry(self.store)

    def test_add_requires_name_and_invested(self):
        with self.assertRaises(ValidationError):
            self.registry.add_project({"name": "X"})
        with self.assertRaises(ValidationError):
            self.registry.add_project({"invested": 10})

    def test_add_fills_defaults(self):
        p = self.registry.add_project({"name": "Node", "invested": "250.5", "tag": "infra"})
        self.assertEqual(p["invested"], 250.5)
        self.assertEqual(p["tags"], ["infra"])
        self.assertEqual(p["status"], "active")
        self.assertIsNone(p["currentValue"])
        self.assertEqual(self.store.get(PROJECTS_KEY)["projects"][0]["id"], p["id"])

    def test_update_merges_and_maps_tag(self):
        p = self.registry.add_project({"name": "Node", "invested": 1})
        updated = self.registry.update_project(p["id"], {"tag": "staking", "notes": "hi"})
        self.assertEqual(updated["tags"], ["staking"])
        self.assertEqual(updated["notes"], "hi")
        self.assertNotIn("tag", updated)
        self.assertEqual(updated["name"], "Node")

    def test_update_and_delete_missing(self):
        with self.assertRaises(NotFoundError):
            self.registry.update_project("missing", {})
        with self.assertRaises(NotFoundError):
            self.registry.delete_project("missing")

    def test_delete(self):
        p = self.registry.add_project({"name": "Node", "invested": 1})
        self.registry.delete_project(p["id"])
        self.assertEqual(self.registry.projects(), [])

    def test_tags_are_normalised_and_unique(self):
        tag, all_tags = self.registry.add_tag("  DeFi ")
        self.assertEqual(tag, "defi")
        self.assertEqual(all_tags, ["defi"])
        with self.assertRaises(ValidationError):
            self.registry.add_tag("defi")
        with self.assertRaises(ValidationError):
            self.registry.add_tag("   ")
        self.assertEqual(self.registry.delete_tag("defi"), [])
        with self.assertRaises(NotFoundError):
            self.registry.delete_tag("defi")


if __name__ == "__main__":
    unittest.main()
